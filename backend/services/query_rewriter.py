"""
Query Rewriter for the retrieval-context pipeline.

Turns a context-dependent user query ("fix that bug") into a self-contained
search query using the last few conversation turns. Rewriting is heuristic
and gated: queries that are already usable for search are passed through
untouched, and any model output that fails validation is discarded in favor
of the original query. The rewriter never raises to its caller.
"""

from dataclasses import dataclass
import logging
import re
from typing import List, Optional, Sequence

from config import (
    REWRITE_HISTORY_CHARS,
    REWRITE_MAX_FILENAMES,
    REWRITE_MAX_HISTORY,
    REWRITE_MAX_QUERY_LENGTH,
    REWRITE_MIN_QUERY_LENGTH,
    REWRITE_MODEL,
    REWRITE_OUTPUT_FACTOR,
    REWRITE_OUTPUT_FLOOR,
)
from models.conversation import Message
from services.llm_client import LLMClient


@dataclass(frozen=True)
class RewriteDecision:
    """
    Outcome of a rewrite attempt.

    Attributes:
        query: The query to search with (rewritten or original)
        rewritten: Whether `query` differs from the input
        rule_triggered: Which gate or validation rule decided the outcome
    """
    query: str
    rewritten: bool
    rule_triggered: str


SYSTEM_PROMPT = """You are a query rewriter for a semantic search system over a user's code and documents.

STRICT RULES:
- Do NOT include reasoning
- Do NOT include explanations
- Do NOT include <think> blocks
- Do NOT include analysis or meta-commentary
- Output ONLY the rewritten query as plain text
- One single sentence
- No quotes

RULES:
- Resolve references like "above", "this", "that", "it" using the conversation.
- Keep every filename mentioned by the user exactly as written.
- Prefer concrete technical terms and filenames from the conversation.
- Do NOT add details that are not in the conversation.
- Output MUST be 5-25 words."""


class QueryRewriter:
    """
    Rewrites user queries using recent conversation history.

    Gates are evaluated in order; the first one that matches returns the
    original query:
    0. Length bounds: shorter than 5 or longer than 500 characters
    1. Filename with action intent: exact-match retrieval must see the query verbatim
    2. Search-friendly: already phrased as a technical search
    3. No history: nothing to resolve references against
    """

    # Extensions recognised in filename tokens
    FILE_EXTENSIONS = {
        "py", "js", "ts", "tsx", "jsx", "java", "cpp", "cc", "c", "h", "hpp",
        "go", "rs", "rb", "php", "swift", "kt", "cs", "scala", "sh", "sql",
        "html", "css", "json", "yaml", "yml", "toml", "xml", "ipynb",
        "md", "txt", "pdf", "docx", "csv",
    }

    ACTION_INTENT_PHRASES = {
        "summarize", "summarise", "summary of", "explain", "what does",
        "walk through", "walk me through", "describe", "review", "analyze",
        "tell me about", "break down", "overview of",
    }

    SEARCH_FRIENDLY_PATTERNS = (
        r"\bhow\s+(?:to|do|does)\b",
        r"\bimplementation\s+of\b",
        r"\b(?:function|class|method)\s+`?[A-Za-z_]\w*",
        r"\bapi\b",
        r"\berror\s+in\s+\S+",
    )

    THINK_BLOCK_RE = re.compile(r"<think>.*?(?:</think>|$)", re.IGNORECASE | re.DOTALL)
    LABEL_RE = re.compile(r"^(?:rewritten\s+query|query)\s*:\s*", re.IGNORECASE)
    WRAPPING_CHARS = "\"'`"

    def __init__(
        self,
        llm_client: LLMClient,
        model: str = REWRITE_MODEL,
        max_history_messages: int = REWRITE_MAX_HISTORY,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the rewriter.

        Args:
            llm_client: Client used to call the rewriting model
            model: Model name for rewriting
            max_history_messages: How many recent non-system messages to use
            logger: Diagnostic logger (defaults to the module logger)
        """
        self.llm_client = llm_client
        self.model = model
        self.max_history_messages = max_history_messages
        self.logger = logger or logging.getLogger(__name__)

        extensions = "|".join(sorted(self.FILE_EXTENSIONS, key=len, reverse=True))
        self._filename_re = re.compile(rf"[\w\-./]*\w\.(?:{extensions})\b", re.IGNORECASE)
        self._search_friendly_res = [re.compile(p, re.IGNORECASE) for p in self.SEARCH_FRIENDLY_PATTERNS]

    async def rewrite(
        self,
        query: str,
        history: Sequence[Message],
        known_filenames: Sequence[str] = ()
    ) -> str:
        """Return a search-optimized query, or the original query."""
        decision = await self.rewrite_with_reason(query, history, known_filenames)
        return decision.query

    async def rewrite_with_reason(
        self,
        query: str,
        history: Sequence[Message],
        known_filenames: Sequence[str] = ()
    ) -> RewriteDecision:
        """
        Rewrite a query and report which rule decided the outcome.

        Args:
            query: Current user query
            history: Conversation so far, oldest first
            known_filenames: Names of the tenant's uploaded files

        Returns:
            RewriteDecision; `query` is always usable for search
        """
        skip_rule = self._skip_rule(query)
        if skip_rule:
            self.logger.debug(f"Rewrite skipped ({skip_rule}): {query[:50]}")
            return RewriteDecision(query=query, rewritten=False, rule_triggered=skip_rule)

        turns = self.recent_history(history)
        if not turns:
            self.logger.debug("Rewrite skipped (no_history)")
            return RewriteDecision(query=query, rewritten=False, rule_triggered="no_history")

        prompt = self.build_prompt(query, turns, known_filenames)

        try:
            response = await self.llm_client.generate(
                model=self.model,
                prompt=prompt,
                max_tokens=80,
                system_prompt=SYSTEM_PROMPT,
                temperature=0.2
            )
        except Exception as e:
            # Rewriting is best-effort; search proceeds with the original
            self.logger.warning(f"Query rewrite failed, using original: {e}")
            return RewriteDecision(query=query, rewritten=False, rule_triggered="model_error")

        cleaned = self.clean_output(response.text)
        self.logger.info(f"Generated rewrite: {cleaned[:150]}")

        rejection = self._rejection_rule(query, cleaned)
        if rejection:
            self.logger.warning(f"Rewrite rejected ({rejection}), using original")
            return RewriteDecision(query=query, rewritten=False, rule_triggered=rejection)

        return RewriteDecision(query=cleaned, rewritten=True, rule_triggered="rewritten")

    def _skip_rule(self, query: str) -> Optional[str]:
        """Return the name of the first gate that matches, if any."""
        if len(query) < REWRITE_MIN_QUERY_LENGTH or len(query) > REWRITE_MAX_QUERY_LENGTH:
            return "length_bounds"

        query_lower = query.lower()
        if self.extract_filenames(query) and self._has_action_intent(query_lower):
            return "filename_with_intent"

        if any(regex.search(query_lower) for regex in self._search_friendly_res):
            return "search_friendly"

        return None

    def _has_action_intent(self, query_lower: str) -> bool:
        sorted_phrases = sorted(self.ACTION_INTENT_PHRASES, key=len, reverse=True)
        patterns_regex = "|".join(re.escape(p) for p in sorted_phrases)
        return bool(re.search(rf"\b({patterns_regex})\b", query_lower))

    def extract_filenames(self, text: str) -> List[str]:
        """Find filename tokens such as `auth.py` or `docs/setup.md`."""
        return [match.group(0).lower() for match in self._filename_re.finditer(text)]

    def recent_history(self, history: Sequence[Message]) -> List[Message]:
        """Drop system-authored messages, keep the last N, then drop blank ones."""
        if self.max_history_messages <= 0:
            return []
        conversational = [msg for msg in history if msg.author != "system"]
        window = conversational[-self.max_history_messages:]
        return [msg for msg in window if self.strip_reasoning(msg.content).strip()]

    def build_prompt(
        self,
        query: str,
        turns: Sequence[Message],
        known_filenames: Sequence[str] = ()
    ) -> str:
        """Build the user prompt for the rewriting model."""
        context_str = "\n".join(
            f"{msg.author}: {self.strip_reasoning(msg.content).strip()[:REWRITE_HISTORY_CHARS]}"
            for msg in turns
        )

        filenames = list(known_filenames)[:REWRITE_MAX_FILENAMES]
        files_str = ", ".join(filenames) if filenames else "(none)"

        return f"""Given this conversation history:

{context_str}

Files available to search: {files_str}

The user just asked: "{query}"

Task:
Rewrite the query so it is self-contained and unambiguous for vector search.
If no rewrite is needed, return the original query verbatim.
Output MUST be one sentence of 5-25 words."""

    @classmethod
    def strip_reasoning(cls, text: str) -> str:
        return cls.THINK_BLOCK_RE.sub("", text or "")

    @classmethod
    def clean_output(cls, raw: str) -> str:
        """Strip reasoning blocks, wrapping quotes and labels from model output."""
        text = cls.strip_reasoning(raw).strip()
        text = text.strip(cls.WRAPPING_CHARS).strip()
        text = cls.LABEL_RE.sub("", text)
        text = text.strip().strip(cls.WRAPPING_CHARS)
        return " ".join(text.split())

    def _rejection_rule(self, original: str, cleaned: str) -> Optional[str]:
        """Validate a cleaned rewrite; return the failed rule name, if any."""
        if not cleaned:
            return "empty_output"

        # Runaway generation guard
        if len(cleaned) > max(REWRITE_OUTPUT_FLOOR, REWRITE_OUTPUT_FACTOR * len(original)):
            return "too_long"

        if cleaned.lower() == " ".join(original.split()).lower():
            return "unchanged"

        rewritten_lower = cleaned.lower()
        lost = [name for name in self.extract_filenames(original) if name not in rewritten_lower]
        if lost:
            return "lost_filename"

        return None
