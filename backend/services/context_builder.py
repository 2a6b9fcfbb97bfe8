"""
Formats retrieved chunks into a single prompt-ready context unit.

Each chunk becomes a tagged <coderef> block so the model can cite it and the
presentation layer can match citations back to chunk ids.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from models.chunk import ROLE_PRIORITY, RetrievedChunk
from models.conversation import ContextUnit
from services.errors import EmptyContextError

LANGUAGE_BY_EXTENSION: Dict[str, str] = {
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "jsx": "javascript",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "go": "go",
    "rs": "rust",
    "rb": "ruby",
    "php": "php",
    "swift": "swift",
    "kt": "kotlin",
    "cs": "csharp",
}

DEFAULT_LANGUAGE = "text"

BLOCK_SEPARATOR = "\n\n---\n\n"

CONTEXT_PREAMBLE = """# Retrieved Code Context

The following snippets have been retrieved from the user's uploaded files and are relevant to their question. Use these references to provide accurate, code-aware answers."""

CONTEXT_POSTAMBLE = """---

**Instructions:**
- Reference specific files and line numbers when answering
- Prioritize chunks marked as "entry" role
- If multiple files are relevant, explain their relationships
- If the context doesn't contain enough information, say so clearly"""


def language_for(filename: str) -> str:
    """Detect the display language from a filename's extension."""
    if "." not in filename:
        return DEFAULT_LANGUAGE
    ext = filename.rsplit(".", 1)[-1].lower()
    return LANGUAGE_BY_EXTENSION.get(ext, DEFAULT_LANGUAGE)


def sort_by_role(chunks: Sequence[RetrievedChunk]) -> List[RetrievedChunk]:
    """Stable sort: entry, then dependency, then supporting; ties keep index order."""
    return sorted(chunks, key=lambda chunk: ROLE_PRIORITY[chunk.role])


class ContextBuilder:
    """Builds one ContextUnit from a non-empty chunk sequence."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def build(self, chunks: Sequence[RetrievedChunk]) -> ContextUnit:
        """
        Assemble chunks into a context unit.

        Args:
            chunks: Chunks in the order returned by the index (by similarity)

        Returns:
            ContextUnit whose chunk_ids follow the role-sorted order

        Raises:
            EmptyContextError: If chunks is empty
        """
        if not chunks:
            raise EmptyContextError()

        sorted_chunks = sort_by_role(chunks)

        formatted_chunks = BLOCK_SEPARATOR.join(
            self.format_chunk(chunk, idx)
            for idx, chunk in enumerate(sorted_chunks, start=1)
        )
        text_body = f"{CONTEXT_PREAMBLE}\n\n{formatted_chunks}\n\n{CONTEXT_POSTAMBLE}"

        unit = ContextUnit(
            id=f"rag_{uuid.uuid4().hex[:12]}",
            text_body=text_body,
            created_at=datetime.now(timezone.utc),
            chunk_ids=tuple(chunk.id for chunk in sorted_chunks),
        )

        self.logger.info(
            f"Built context unit {unit.id} from {len(sorted_chunks)} chunks "
            f"({len(text_body)} chars)"
        )
        return unit

    @staticmethod
    def format_chunk(chunk: RetrievedChunk, index: int) -> str:
        """Render one chunk as a tagged block."""
        lang = language_for(chunk.filename)
        relevance_percent = int(round(chunk.similarity * 100))

        lines = [
            f'<coderef id="{chunk.id}" index="{index}">',
            f"File: {chunk.filename}",
            f"Relevance: {relevance_percent}%",
            f"Role: {chunk.role.value}",
        ]
        if chunk.page_number is not None:
            # Code chunks are addressed by line, documents by page
            label = "Page" if lang == DEFAULT_LANGUAGE else "Line"
            lines.append(f"{label}: {chunk.page_number}")
        lines.extend([
            "",
            f"```{lang}",
            chunk.text.strip(),
            "```",
            "</coderef>",
        ])
        return "\n".join(lines)
