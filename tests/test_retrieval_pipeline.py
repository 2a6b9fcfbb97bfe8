"""Unit tests for RetrievalPipeline and context injection."""
import sys
sys.path.insert(0, 'backend')

import asyncio
from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, Mock
from models.chunk import ChunkRole, RetrievedChunk
from models.conversation import ChatMessage, ContextUnit, is_rag_context
from models.search import SearchResult
from services.context_builder import ContextBuilder
from services.errors import NetworkError, UnauthorizedError
from services.query_rewriter import RewriteDecision
from services.retrieval_pipeline import RetrievalPipeline, inject_context

CHUNK = RetrievedChunk(
    id="chunk-1",
    file_id="file-1",
    filename="auth.py",
    file_type="text/x-python",
    file_url="http://files.test/auth.py",
    text="cursor.execute(f\"SELECT * FROM users WHERE name = '{name}'\")",
    similarity=0.93,
    role=ChunkRole.ENTRY,
    page_number=27,
)


def make_context(chunk_ids=("chunk-1",)):
    return ContextUnit(
        id="rag_test",
        text_body="# Retrieved Code Context",
        created_at=datetime.now(timezone.utc),
        chunk_ids=chunk_ids,
    )


class TestRetrievalPipeline:
    """Test suite for RetrievalPipeline."""

    @pytest.fixture
    def client(self):
        client = Mock()
        client.search = AsyncMock(return_value=SearchResult(chunks=(CHUNK,), query_id="q-1"))
        return client

    @pytest.fixture
    def rewriter(self):
        rewriter = Mock()
        rewriter.rewrite_with_reason = AsyncMock(return_value=RewriteDecision(
            query="fix SQL injection in auth.py login",
            rewritten=True,
            rule_triggered="rewritten",
        ))
        return rewriter

    @pytest.fixture
    def pipeline(self, client, rewriter):
        return RetrievalPipeline(client=client, rewriter=rewriter, builder=ContextBuilder(), top_k=5)

    def test_rewritten_query_is_sent_alongside_original(self, pipeline, client, rewriter):
        history = [ChatMessage(author="user", content="check auth.py")]

        outcome = asyncio.run(pipeline.retrieve(
            tenant_id="tenant-1",
            user_query="fix that bug",
            history=history,
            known_filenames=["auth.py"],
            message_id="msg-42",
        ))

        rewriter.rewrite_with_reason.assert_awaited_once_with("fix that bug", history, ["auth.py"])
        request, tenant_id = client.search.call_args.args
        assert tenant_id == "tenant-1"
        assert request.user_query == "fix that bug"
        assert request.rewrite_query == "fix SQL injection in auth.py login"
        assert request.message_id == "msg-42"
        assert request.top_k == 5
        assert request.file_ids is None

        assert outcome.search_query == "fix SQL injection in auth.py login"
        assert outcome.rewritten is True
        assert outcome.rewrite_rule == "rewritten"
        assert outcome.result.query_id == "q-1"

    def test_unrewritten_query_omits_rewrite(self, pipeline, client, rewriter):
        rewriter.rewrite_with_reason.return_value = RewriteDecision(
            query="summarize auth.py", rewritten=False, rule_triggered="filename_with_intent"
        )

        outcome = asyncio.run(pipeline.retrieve("tenant-1", "summarize auth.py"))

        request = client.search.call_args.args[0]
        assert request.rewrite_query is None
        assert "rewriteQuery" not in request.to_payload()
        assert outcome.search_query == "summarize auth.py"
        assert outcome.rewritten is False

    def test_context_built_from_chunks(self, pipeline):
        outcome = asyncio.run(pipeline.retrieve("tenant-1", "fix that bug"))

        assert outcome.context is not None
        assert is_rag_context(outcome.context)
        assert outcome.context.chunk_ids == ("chunk-1",)
        assert "auth.py" in outcome.context.text_body

    def test_empty_result_skips_context(self, client, rewriter):
        client.search.return_value = SearchResult.empty()
        builder = Mock()
        pipeline = RetrievalPipeline(client=client, rewriter=rewriter, builder=builder)

        outcome = asyncio.run(pipeline.retrieve("tenant-1", "fix that bug"))

        assert outcome.context is None
        assert outcome.result.is_empty
        builder.build.assert_not_called()

    def test_file_filter_and_top_k_forwarded(self, pipeline, client):
        asyncio.run(pipeline.retrieve("tenant-1", "fix that bug", file_ids=["f1", "f2"], top_k=8))

        request = client.search.call_args.args[0]
        assert request.file_ids == ("f1", "f2")
        assert request.top_k == 8

    def test_message_id_generated_when_missing(self, pipeline, client):
        asyncio.run(pipeline.retrieve("tenant-1", "fix that bug"))

        request = client.search.call_args.args[0]
        assert request.message_id.startswith("msg_")

    def test_search_errors_propagate(self, pipeline, client):
        client.search.side_effect = NetworkError("Request timeout after 30.0s")

        with pytest.raises(NetworkError):
            asyncio.run(pipeline.retrieve("tenant-1", "fix that bug"))

    def test_unauthorized_propagates(self, pipeline, client):
        client.search.side_effect = UnauthorizedError()

        with pytest.raises(UnauthorizedError):
            asyncio.run(pipeline.retrieve("", "fix that bug"))

    def test_search_waits_for_rewrite(self, client, rewriter):
        calls = []
        rewriter.rewrite_with_reason.side_effect = lambda *a: calls.append("rewrite") or RewriteDecision(
            query="q", rewritten=False, rule_triggered="no_history"
        )
        client.search.side_effect = lambda *a: calls.append("search") or SearchResult.empty()
        pipeline = RetrievalPipeline(client=client, rewriter=rewriter, builder=ContextBuilder())

        asyncio.run(pipeline.retrieve("tenant-1", "fix that bug"))

        assert calls == ["rewrite", "search"]


class TestInjectContext:
    """Placement of the context unit in the message list."""

    def test_inserted_before_latest_user_message(self):
        messages = [
            ChatMessage(author="user", content="check auth.py"),
            ChatMessage(author="assistant", content="found a bug"),
            ChatMessage(author="user", content="fix that bug"),
        ]
        context = make_context()

        injected = inject_context(messages, context)

        assert injected[2] is context
        assert injected[3] is messages[2]
        assert len(injected) == 4
        assert len(messages) == 3

    def test_appended_without_user_message(self):
        messages = [ChatMessage(author="assistant", content="hello")]
        context = make_context()

        injected = inject_context(messages, context)

        assert injected[-1] is context

    def test_none_context_returns_copy(self):
        messages = [ChatMessage(author="user", content="hi")]

        injected = inject_context(messages, None)

        assert injected == messages
        assert injected is not messages
