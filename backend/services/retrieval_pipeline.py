"""Retrieval pipeline: rewrite, search, assemble."""
from dataclasses import dataclass
import logging
import time
from typing import List, Optional, Sequence

from config import SEARCH_TOP_K
from models.conversation import ContextUnit, Message
from models.search import SearchRequest, SearchResult
from services.context_builder import ContextBuilder
from services.query_rewriter import QueryRewriter
from services.vector_index_client import VectorIndexClient


@dataclass(frozen=True)
class RetrievalOutcome:
    """
    Result of preparing retrieved context for one user turn.

    Attributes:
        search_query: Query the index ranked with
        rewritten: Whether search_query came from the rewriter
        rewrite_rule: Gate or validation rule that decided the rewrite
        result: Raw search result
        context: Assembled context unit, None when nothing was retrieved
    """
    search_query: str
    rewritten: bool
    rewrite_rule: str
    result: SearchResult
    context: Optional[ContextUnit]


class RetrievalPipeline:
    """Runs the per-turn stages in sequence; each stage gets the previous one's value."""

    def __init__(
        self,
        client: VectorIndexClient,
        rewriter: QueryRewriter,
        builder: ContextBuilder,
        top_k: int = SEARCH_TOP_K,
        logger: Optional[logging.Logger] = None
    ):
        self.client = client
        self.rewriter = rewriter
        self.builder = builder
        self.top_k = top_k
        self.logger = logger or logging.getLogger(__name__)

    async def retrieve(
        self,
        tenant_id: str,
        user_query: str,
        history: Sequence[Message] = (),
        file_ids: Optional[Sequence[str]] = None,
        known_filenames: Sequence[str] = (),
        message_id: Optional[str] = None,
        top_k: Optional[int] = None
    ) -> RetrievalOutcome:
        """
        Prepare retrieved context for one user turn.

        Args:
            tenant_id: Caller-resolved tenant identifier
            user_query: Raw user utterance
            history: Conversation so far, oldest first
            file_ids: Optional restriction to specific files
            known_filenames: Tenant's file names, used as rewrite hints
            message_id: Id of the user message (generated when omitted)
            top_k: Number of chunks to request

        Returns:
            RetrievalOutcome; `context` is None when the search was empty

        Raises:
            UnauthorizedError, TransportError, NetworkError from the search
        """
        start_time = time.time()

        decision = await self.rewriter.rewrite_with_reason(user_query, history, known_filenames)

        request_kwargs = {
            "user_query": user_query,
            "rewrite_query": decision.query if decision.rewritten else None,
            "top_k": top_k or self.top_k,
            "file_ids": tuple(file_ids) if file_ids else None,
        }
        if message_id:
            request_kwargs["message_id"] = message_id
        request = SearchRequest(**request_kwargs)

        result = await self.client.search(request, tenant_id)

        context = None
        if result.is_empty:
            self.logger.info("No chunks retrieved, skipping context injection")
        else:
            context = self.builder.build(result.chunks)

        latency_ms = int((time.time() - start_time) * 1000)
        self.logger.info(
            f"Retrieval finished: rewrite={decision.rule_triggered}, "
            f"chunks={len(result.chunks)}, latency={latency_ms}ms"
        )

        return RetrievalOutcome(
            search_query=decision.query,
            rewritten=decision.rewritten,
            rewrite_rule=decision.rule_triggered,
            result=result,
            context=context,
        )


def inject_context(messages: Sequence[Message], context: Optional[ContextUnit]) -> List[Message]:
    """
    Return a new message list with the context unit placed right before the
    latest user message (appended when there is none).
    """
    injected = list(messages)
    if context is None:
        return injected

    for idx in range(len(injected) - 1, -1, -1):
        if injected[idx].author == "user":
            injected.insert(idx, context)
            return injected

    injected.append(context)
    return injected
