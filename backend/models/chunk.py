"""Chunk data models."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ChunkRole(str, Enum):
    """Structural importance assigned to a chunk by the vector index."""
    ENTRY = "entry"
    DEPENDENCY = "dependency"
    SUPPORTING = "supporting"


# Lower sorts first
ROLE_PRIORITY = {
    ChunkRole.ENTRY: 1,
    ChunkRole.DEPENDENCY: 2,
    ChunkRole.SUPPORTING: 3,
}


@dataclass(frozen=True)
class RetrievedChunk:
    """A snippet of one of the tenant's files returned by semantic search."""
    id: str
    file_id: str
    filename: str
    file_type: str
    file_url: str
    text: str
    similarity: float  # 0.0 to 1.0
    role: ChunkRole
    page_number: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetrievedChunk":
        """Build a chunk from the index's camelCase JSON representation."""
        similarity = float(data.get("similarity", 0.0))
        page_number = data.get("pageNumber")
        return cls(
            id=str(data["id"]),
            file_id=str(data.get("fileId", "")),
            filename=data.get("filename", ""),
            file_type=data.get("fileType", ""),
            file_url=data.get("fileUrl", ""),
            text=data.get("text", ""),
            # Ensure score is in [0, 1] range
            similarity=max(0.0, min(1.0, similarity)),
            role=ChunkRole(data.get("role", ChunkRole.SUPPORTING.value)),
            page_number=int(page_number) if page_number is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fileId": self.file_id,
            "filename": self.filename,
            "fileType": self.file_type,
            "fileUrl": self.file_url,
            "text": self.text,
            "similarity": self.similarity,
            "pageNumber": self.page_number,
            "role": self.role.value,
        }
