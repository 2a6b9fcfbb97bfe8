"""Data models for the DevForge RAG context service."""
from .chunk import ChunkRole, RetrievedChunk, ROLE_PRIORITY
from .search import SearchRequest, SearchResult
from .file_record import (
    FilePayload,
    FileRecord,
    FileUploadAck,
    ProcessingStatus,
    UploadedFile,
)
from .conversation import (
    ChatMessage,
    ContextUnit,
    Message,
    RAG_CONTEXT_TAG,
    is_rag_context,
)
from .api import ContextRequest, ContextResponse, HistoryMessage

__all__ = [
    "ChunkRole",
    "RetrievedChunk",
    "ROLE_PRIORITY",
    "SearchRequest",
    "SearchResult",
    "FilePayload",
    "FileRecord",
    "FileUploadAck",
    "ProcessingStatus",
    "UploadedFile",
    "ChatMessage",
    "ContextUnit",
    "Message",
    "RAG_CONTEXT_TAG",
    "is_rag_context",
    "ContextRequest",
    "ContextResponse",
    "HistoryMessage",
]
