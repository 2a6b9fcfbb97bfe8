"""Error taxonomy for the retrieval-context pipeline."""
from typing import Any, Dict, Optional


class RagServiceError(Exception):
    """Base exception for all retrieval-context errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_type": self.__class__.__name__,
            "details": self.details,
        }


class UnauthorizedError(RagServiceError):
    """No resolvable tenant identity; fatal to the current request."""

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class TransportError(RagServiceError):
    """The vector index answered with a non-success status."""

    def __init__(
        self,
        status: Optional[int],
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status = status
        super().__init__(message, details)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        return data


class NetworkError(TransportError):
    """No response was received from the vector index."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(None, message, details)


class EmptyContextError(RagServiceError):
    """Context assembly was invoked with zero chunks."""

    def __init__(self, message: str = "Cannot build context from empty chunks"):
        super().__init__(message)
