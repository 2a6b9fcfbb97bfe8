"""File ingestion models."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ProcessingStatus(str, Enum):
    """State of one ingestion track (chunking or embedding)."""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.SUCCESS, ProcessingStatus.FAILED)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the index, tolerating a trailing 'Z'."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class FileRecord:
    """
    Ingestion state of one uploaded file, as reported by the vector index.

    The record is owned by the index; this side only reads it.
    """
    id: str
    name: str
    size: int
    file_type: str
    chunk_count: int
    chunking_status: ProcessingStatus
    embedding_status: ProcessingStatus
    finish_embedding: bool
    chunking_error: Optional[str] = None
    embedding_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileRecord":
        embedding_status = ProcessingStatus(data.get("embeddingStatus", "pending"))
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            size=int(data.get("size") or 0),
            file_type=data.get("fileType", ""),
            chunk_count=int(data.get("chunkCount") or 0),
            chunking_status=ProcessingStatus(data.get("chunkingStatus", "pending")),
            embedding_status=embedding_status,
            finish_embedding=bool(
                data.get("finishEmbedding", embedding_status is ProcessingStatus.SUCCESS)
            ),
            chunking_error=data.get("chunkingError") or None,
            embedding_error=data.get("embeddingError") or None,
            created_at=_parse_timestamp(data.get("createdAt")),
            updated_at=_parse_timestamp(data.get("updatedAt")),
            url=data.get("url"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "fileType": self.file_type,
            "chunkCount": self.chunk_count,
            "chunkingStatus": self.chunking_status.value,
            "embeddingStatus": self.embedding_status.value,
            "finishEmbedding": self.finish_embedding,
            "chunkingError": self.chunking_error,
            "embeddingError": self.embedding_error,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "url": self.url,
            "displayState": self.display_state,
        }

    @property
    def is_failed(self) -> bool:
        """Terminal failure on either track; only a re-upload recovers it."""
        return (
            self.chunking_status is ProcessingStatus.FAILED
            or self.embedding_status is ProcessingStatus.FAILED
            or self.chunking_error is not None
            or self.embedding_error is not None
        )

    @property
    def is_actionable(self) -> bool:
        """Safe to use in search."""
        return self.finish_embedding and self.embedding_error is None

    @property
    def is_settled(self) -> bool:
        """No further status change is expected without user action."""
        return self.finish_embedding or self.is_failed

    @property
    def display_state(self) -> str:
        if self.is_failed:
            return "Failed"
        if self.finish_embedding:
            return "Ready"
        if (
            self.chunking_status is ProcessingStatus.PENDING
            and self.embedding_status is ProcessingStatus.PENDING
        ):
            return "Pending"
        return "Processing"


@dataclass(frozen=True)
class UploadedFile:
    """One accepted file in an upload acknowledgement."""
    id: str
    name: str
    size: int
    url: str
    finish_embedding: bool
    chunk_count: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UploadedFile":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            size=int(data.get("size") or 0),
            url=data.get("url", ""),
            finish_embedding=bool(data.get("finishEmbedding", False)),
            chunk_count=int(data.get("chunkCount") or 0),
        )


@dataclass(frozen=True)
class FileUploadAck:
    """Response of an accepted multipart upload."""
    files: List[UploadedFile]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileUploadAck":
        return cls(files=[UploadedFile.from_dict(f) for f in data.get("files") or []])

    @property
    def file_ids(self) -> List[str]:
        return [f.id for f in self.files]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": [
                {
                    "id": f.id,
                    "name": f.name,
                    "size": f.size,
                    "url": f.url,
                    "finishEmbedding": f.finish_embedding,
                    "chunkCount": f.chunk_count,
                }
                for f in self.files
            ]
        }


@dataclass(frozen=True)
class FilePayload:
    """One file part of a multipart upload."""
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"
