"""API request/response models for the HTTP surface."""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .conversation import ChatMessage


class HistoryMessage(BaseModel):
    """One prior conversation turn sent by the chat layer."""
    author: Literal["user", "assistant", "system"]
    content: str

    def to_message(self) -> ChatMessage:
        return ChatMessage(author=self.author, content=self.content)


class ContextRequest(BaseModel):
    """Request to prepare retrieved context for a user turn."""
    query: str = Field(..., min_length=1)
    history: List[HistoryMessage] = Field(default_factory=list)
    file_ids: Optional[List[str]] = None
    known_filenames: List[str] = Field(default_factory=list)
    message_id: Optional[str] = None
    top_k: int = Field(default=5, ge=1, le=50)


class ChunkOut(BaseModel):
    id: str
    fileId: str
    filename: str
    fileType: str
    fileUrl: str
    text: str
    similarity: float
    pageNumber: Optional[int] = None
    role: str


class ContextUnitOut(BaseModel):
    id: str
    content: str
    createdAt: str
    chunkIds: List[str]
    type: str


class ContextResponse(BaseModel):
    """Search query actually used, retrieved chunks and the context unit (if any)."""
    search_query: str
    rewritten: bool
    rewrite_rule: str
    query_id: str
    chunks: List[ChunkOut]
    context: Optional[ContextUnitOut] = None
