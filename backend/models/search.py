"""Semantic search request/response models."""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .chunk import RetrievedChunk


@dataclass(frozen=True)
class SearchRequest:
    """
    Semantic search request sent to the vector index.

    `rewrite_query`, when set, is what the index ranks with; `user_query`
    is kept for citation and audit.
    """
    user_query: str
    rewrite_query: Optional[str] = None
    top_k: int = 5
    file_ids: Optional[Tuple[str, ...]] = None
    message_id: str = field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:12]}")

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the index's JSON body, omitting absent optionals."""
        payload: Dict[str, Any] = {
            "messageId": self.message_id,
            "userQuery": self.user_query,
            "top_k": self.top_k or 5,
        }
        if self.rewrite_query:
            payload["rewriteQuery"] = self.rewrite_query
        if self.file_ids:
            payload["fileIds"] = list(self.file_ids)
        return payload


@dataclass(frozen=True)
class SearchResult:
    """Ordered chunks for one search; an empty result is not an error."""
    chunks: Tuple[RetrievedChunk, ...]
    query_id: str

    @classmethod
    def empty(cls) -> "SearchResult":
        return cls(chunks=(), query_id="")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchResult":
        return cls(
            chunks=tuple(RetrievedChunk.from_dict(c) for c in data.get("chunks") or []),
            query_id=data.get("queryId") or "",
        )

    @property
    def is_empty(self) -> bool:
        return not self.chunks
