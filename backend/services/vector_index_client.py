"""Tenant-scoped client for the vector index service."""
import logging
from typing import Any, Callable, List, Optional, Sequence, TypeVar

import httpx

from config import (
    DEFAULT_COLLECTION,
    RAG_API_PREFIX,
    RAG_BASE_URL,
    RAG_REQUEST_TIMEOUT,
    TENANT_HEADER,
)
from models.file_record import FilePayload, FileRecord, FileUploadAck
from models.search import SearchRequest, SearchResult
from services.errors import NetworkError, TransportError, UnauthorizedError

T = TypeVar("T")


class VectorIndexClient:
    """
    Async HTTP client for the vector index service.

    Every request carries the tenant identifier in the isolation header.
    Non-success statuses surface as TransportError, missing responses as
    NetworkError. A 404 on search means the tenant has nothing indexed yet
    and yields an empty result.
    """

    def __init__(
        self,
        base_url: str = RAG_BASE_URL,
        timeout: float = RAG_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Root URL of the vector index service
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass httpx.MockTransport)
            logger: Diagnostic logger (defaults to the module logger)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.logger = logger or logging.getLogger(__name__)

        self.logger.info(f"Initialized VectorIndexClient for {self.base_url}")

    def _headers(self, tenant_id: str) -> dict:
        if not tenant_id or not str(tenant_id).strip():
            # Never reach the index without a tenant scope
            raise UnauthorizedError("Missing tenant identifier")
        return {TENANT_HEADER: str(tenant_id)}

    async def _request(self, method: str, path: str, tenant_id: str, **kwargs: Any) -> httpx.Response:
        """Send one tenant-scoped request, mapping transport failures to NetworkError."""
        headers = self._headers(tenant_id)
        url = f"{self.base_url}{RAG_API_PREFIX}{path}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            error_msg = f"Request timeout after {self.timeout}s: {method} {path}"
            self.logger.error(error_msg)
            raise NetworkError(error_msg, {"original_error": str(e)}) from e
        except httpx.RequestError as e:
            error_msg = f"Network error: {method} {path}: {e}"
            self.logger.error(error_msg)
            raise NetworkError(error_msg, {"original_error": str(e)}) from e

        self.logger.debug(f"{method} {path} -> {response.status_code}")
        return response

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        message = response.text or response.reason_phrase
        self.logger.error(f"{action} failed: {response.status_code} {message}")
        raise TransportError(response.status_code, message, {"action": action})

    @staticmethod
    def _json(response: httpx.Response, action: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                response.status_code,
                f"{action} returned an invalid JSON body",
                {"action": action, "original_error": str(e)}
            ) from e

    def _parse(self, response: httpx.Response, action: str, parser: Callable[[Any], T]) -> T:
        """Decode the body and build models from it; bad fields surface as TransportError."""
        data = self._json(response, action)
        try:
            return parser(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self.logger.error(f"{action} returned a malformed body: {e}")
            raise TransportError(
                response.status_code,
                f"Malformed {action.lower()} response: {e}",
                {"action": action, "original_error": str(e)}
            ) from e

    async def search(self, request: SearchRequest, tenant_id: str) -> SearchResult:
        """
        Semantic search for chat context.

        Args:
            request: Search request; `rewrite_query` is ranked when present
            tenant_id: Caller-resolved tenant identifier

        Returns:
            SearchResult, empty when the tenant has nothing indexed (404)

        Raises:
            UnauthorizedError: If tenant_id is empty
            TransportError: On any other non-success status
            NetworkError: If no response was received
        """
        response = await self._request(
            "POST", "/chunk/semanticSearchForChat", tenant_id, json=request.to_payload()
        )

        if response.status_code == 404:
            # No files uploaded yet (not an error)
            self.logger.info("Search returned 404, treating as no indexed content")
            return SearchResult.empty()

        self._raise_for_status(response, "Semantic search")
        result = self._parse(response, "Semantic search", SearchResult.from_dict)

        self.logger.info(
            f"Search returned {len(result.chunks)} chunks (query_id={result.query_id or 'n/a'})"
        )
        return result

    async def upload_files(
        self,
        files: Sequence[FilePayload],
        tenant_id: str,
        collection: str = DEFAULT_COLLECTION
    ) -> FileUploadAck:
        """
        Upload files for chunking and embedding.

        Args:
            files: File parts to upload
            tenant_id: Caller-resolved tenant identifier
            collection: Target collection name

        Returns:
            FileUploadAck listing the accepted files
        """
        if not files:
            raise ValueError("Files list cannot be empty")

        multipart = [("files", (f.filename, f.content, f.content_type)) for f in files]
        response = await self._request(
            "POST", "/file/upload", tenant_id,
            data={"collection": collection or DEFAULT_COLLECTION},
            files=multipart,
        )
        self._raise_for_status(response, "File upload")

        ack = self._parse(response, "File upload", FileUploadAck.from_dict)
        self.logger.info(f"Uploaded {len(ack.files)} files to collection '{collection}'")
        return ack

    async def list_files(self, tenant_id: str) -> List[FileRecord]:
        """List all files of a tenant with their ingestion status."""
        response = await self._request("GET", "/files", tenant_id)
        self._raise_for_status(response, "List files")

        return self._parse(response, "List files", self._file_records)

    @staticmethod
    def _file_records(data: Any) -> List[FileRecord]:
        if isinstance(data, dict):
            data = data.get("files") or []
        if not isinstance(data, list):
            raise TypeError(f"expected a list of files, got {type(data).__name__}")
        return [FileRecord.from_dict(item) for item in data]

    async def get_file(self, file_id: str, tenant_id: str) -> FileRecord:
        """Fetch the ingestion status of a single file."""
        response = await self._request("GET", f"/file/{file_id}", tenant_id)
        self._raise_for_status(response, "File status check")
        return self._parse(response, "File status check", FileRecord.from_dict)

    async def delete_file(self, file_id: str, tenant_id: str) -> None:
        """Delete a file; later reads of it are expected to 404."""
        if not file_id:
            raise ValueError("File ID is required")

        response = await self._request("DELETE", f"/file/{file_id}", tenant_id)
        self._raise_for_status(response, "File deletion")
        self.logger.info(f"Deleted file {file_id}")
