"""Integration tests for the HTTP endpoints."""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, Mock
from datetime import datetime, timezone
import sys
import os

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

PREFIX = "/api/v1/rag"
TENANT = {"X-User-ID": "tenant-1"}


@pytest.fixture
def client():
    """Create a test client with mocked services."""
    # Import after path is set
    import main

    # Not entered as a context manager, so the startup event does not run
    client = TestClient(main.app)

    original = (main.vector_index_client, main.retrieval_pipeline)
    main.vector_index_client = Mock()
    main.retrieval_pipeline = Mock()

    yield client

    main.vector_index_client, main.retrieval_pipeline = original


@pytest.fixture
def index():
    import main
    return main.vector_index_client


@pytest.fixture
def pipeline():
    import main
    return main.retrieval_pipeline


def make_record(**overrides):
    from models.file_record import FileRecord
    data = {
        "id": "file-1",
        "name": "auth.py",
        "size": 2048,
        "fileType": "text/x-python",
        "chunkCount": 4,
        "chunkingStatus": "success",
        "embeddingStatus": "processing",
        "finishEmbedding": False,
    }
    data.update(overrides)
    return FileRecord.from_dict(data)


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["service"] == "devforge-rag-context"


class TestTenantResolution:
    """Every RAG endpoint requires a tenant identity."""

    def test_missing_headers_unauthorized(self, client, index):
        index.list_files = AsyncMock(return_value=[])

        response = client.get(f"{PREFIX}/files")

        assert response.status_code == 401
        assert response.json()["detail"] == "Unauthorized"
        index.list_files.assert_not_called()

    def test_blank_user_id_unauthorized(self, client, index):
        index.list_files = AsyncMock(return_value=[])

        response = client.get(f"{PREFIX}/files", headers={"X-User-ID": "  "})

        assert response.status_code == 401

    def test_session_id_fallback(self, client, index):
        index.list_files = AsyncMock(return_value=[])

        response = client.get(f"{PREFIX}/files", headers={"X-Session-ID": "session-9"})

        assert response.status_code == 200
        index.list_files.assert_awaited_once_with("session-9")

    def test_user_id_preferred_over_session(self, client, index):
        index.list_files = AsyncMock(return_value=[])

        client.get(f"{PREFIX}/files", headers={"X-User-ID": "user-1", "X-Session-ID": "session-9"})

        index.list_files.assert_awaited_once_with("user-1")


class TestFileEndpoints:
    def test_list_files(self, client, index):
        index.list_files = AsyncMock(return_value=[make_record()])

        response = client.get(f"{PREFIX}/files", headers=TENANT)

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["id"] == "file-1"
        assert data[0]["displayState"] == "Processing"
        index.list_files.assert_awaited_once_with("tenant-1")

    def test_get_file(self, client, index):
        index.get_file = AsyncMock(return_value=make_record(embeddingStatus="success", finishEmbedding=True))

        response = client.get(f"{PREFIX}/file/file-1", headers=TENANT)

        assert response.status_code == 200
        assert response.json()["finishEmbedding"] is True
        index.get_file.assert_awaited_once_with("file-1", "tenant-1")

    def test_upload(self, client, index):
        from models.file_record import FileUploadAck
        index.upload_files = AsyncMock(return_value=FileUploadAck.from_dict({"files": [{
            "id": "file-1", "name": "auth.py", "size": 5, "url": "http://files.test/auth.py",
            "finishEmbedding": False, "chunkCount": 0,
        }]}))

        response = client.post(
            f"{PREFIX}/file/upload",
            headers=TENANT,
            files=[
                ("files", ("auth.py", b"x = 1", "text/x-python")),
                ("files", ("notes.md", b"# notes", "text/markdown")),
            ],
            data={"collection": "project-a"},
        )

        assert response.status_code == 200
        assert response.json()["files"][0]["id"] == "file-1"

        payloads, tenant_id, collection = index.upload_files.call_args.args
        assert tenant_id == "tenant-1"
        assert collection == "project-a"
        assert [p.filename for p in payloads] == ["auth.py", "notes.md"]
        assert payloads[0].content == b"x = 1"
        assert payloads[0].content_type == "text/x-python"

    def test_delete(self, client, index):
        index.delete_file = AsyncMock(return_value=None)

        response = client.delete(f"{PREFIX}/file/file-1", headers=TENANT)

        assert response.status_code == 200
        index.delete_file.assert_awaited_once_with("file-1", "tenant-1")


class TestErrorMapping:
    """Service errors become HTTP errors."""

    def test_index_status_passes_through(self, client, index):
        from services.errors import TransportError
        index.delete_file = AsyncMock(side_effect=TransportError(404, "File not found"))

        response = client.delete(f"{PREFIX}/file/missing", headers=TENANT)

        assert response.status_code == 404
        assert response.json()["detail"] == "File not found"

    def test_network_error_is_bad_gateway(self, client, index):
        from services.errors import NetworkError
        index.list_files = AsyncMock(side_effect=NetworkError("Request timeout after 30.0s"))

        response = client.get(f"{PREFIX}/files", headers=TENANT)

        assert response.status_code == 502
        assert "timeout" in response.json()["detail"]

    def test_malformed_index_body_is_bad_gateway(self, client, index):
        from services.errors import TransportError
        index.list_files = AsyncMock(
            side_effect=TransportError(200, "Malformed list files response: 'queued' is not a valid ProcessingStatus")
        )

        response = client.get(f"{PREFIX}/files", headers=TENANT)

        assert response.status_code == 502
        assert "queued" in response.json()["detail"]

    def test_unauthorized_from_service(self, client, index):
        from services.errors import UnauthorizedError
        index.get_file = AsyncMock(side_effect=UnauthorizedError())

        response = client.get(f"{PREFIX}/file/file-1", headers=TENANT)

        assert response.status_code == 401


class TestContextEndpoint:
    """POST /context"""

    def make_outcome(self, with_context=True):
        from models.chunk import RetrievedChunk
        from models.conversation import ContextUnit
        from models.search import SearchResult
        from services.retrieval_pipeline import RetrievalOutcome

        chunk = RetrievedChunk.from_dict({
            "id": "chunk-1", "fileId": "file-1", "filename": "auth.py",
            "fileType": "text/x-python", "fileUrl": "http://files.test/auth.py",
            "text": "def login(): ...", "similarity": 0.9, "role": "entry",
        })
        if not with_context:
            return RetrievalOutcome(
                search_query="fix that bug", rewritten=False, rewrite_rule="no_history",
                result=SearchResult.empty(), context=None,
            )
        return RetrievalOutcome(
            search_query="fix SQL injection in auth.py",
            rewritten=True,
            rewrite_rule="rewritten",
            result=SearchResult(chunks=(chunk,), query_id="q-1"),
            context=ContextUnit(
                id="rag_abc",
                text_body="# Retrieved Code Context",
                created_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
                chunk_ids=("chunk-1",),
            ),
        )

    def test_context_with_chunks(self, client, pipeline):
        pipeline.retrieve = AsyncMock(return_value=self.make_outcome())

        response = client.post(f"{PREFIX}/context", headers=TENANT, json={
            "query": "fix that bug",
            "history": [
                {"author": "user", "content": "check auth.py"},
                {"author": "assistant", "content": "found SQL injection"},
            ],
            "known_filenames": ["auth.py"],
            "message_id": "msg-1",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["search_query"] == "fix SQL injection in auth.py"
        assert data["rewritten"] is True
        assert data["query_id"] == "q-1"
        assert data["chunks"][0]["fileId"] == "file-1"
        assert data["context"]["type"] == "rag-context"
        assert data["context"]["chunkIds"] == ["chunk-1"]

        kwargs = pipeline.retrieve.call_args.kwargs
        assert kwargs["tenant_id"] == "tenant-1"
        assert kwargs["user_query"] == "fix that bug"
        assert [m.author for m in kwargs["history"]] == ["user", "assistant"]
        assert kwargs["known_filenames"] == ["auth.py"]
        assert kwargs["message_id"] == "msg-1"
        assert kwargs["top_k"] == 5

    def test_context_empty_result(self, client, pipeline):
        pipeline.retrieve = AsyncMock(return_value=self.make_outcome(with_context=False))

        response = client.post(f"{PREFIX}/context", headers=TENANT, json={"query": "fix that bug"})

        assert response.status_code == 200
        data = response.json()
        assert data["context"] is None
        assert data["chunks"] == []

    def test_context_rejects_empty_query(self, client, pipeline):
        pipeline.retrieve = AsyncMock()

        response = client.post(f"{PREFIX}/context", headers=TENANT, json={"query": ""})

        assert response.status_code == 422
        pipeline.retrieve.assert_not_called()

    def test_context_search_failure(self, client, pipeline):
        from services.errors import TransportError
        pipeline.retrieve = AsyncMock(side_effect=TransportError(500, "index unavailable"))

        response = client.post(f"{PREFIX}/context", headers=TENANT, json={"query": "fix that bug"})

        assert response.status_code == 500
        assert response.json()["detail"] == "index unavailable"
