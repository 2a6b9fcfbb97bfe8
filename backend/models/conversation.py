"""Conversation message models.

Messages form a closed union discriminated by `role_tag`: ordinary chat
turns carry "text", retrieved context carries "rag-context". Consumers
switch on the tag instead of inspecting message contents.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Tuple, Union

TEXT_TAG = "text"
RAG_CONTEXT_TAG = "rag-context"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatMessage:
    """A single conversational turn."""
    author: str  # "user", "assistant" or "system"
    content: str
    id: str = field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=_now)
    role_tag: str = field(default=TEXT_TAG, init=False)


@dataclass(frozen=True)
class ContextUnit:
    """Retrieved file context assembled for one turn, with citation ids."""
    id: str
    text_body: str
    created_at: datetime
    chunk_ids: Tuple[str, ...]
    role_tag: str = field(default=RAG_CONTEXT_TAG, init=False)

    @property
    def author(self) -> str:
        return "system"

    @property
    def content(self) -> str:
        return self.text_body


Message = Union[ChatMessage, ContextUnit]


def is_rag_context(message: Any) -> bool:
    """Check whether a message is retrieved context (for filtering/display)."""
    return isinstance(message, ContextUnit) and message.role_tag == RAG_CONTEXT_TAG
