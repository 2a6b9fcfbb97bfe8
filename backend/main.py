"""Main entry point for the DevForge RAG context service API."""
import logging
from typing import List, Optional
from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from config import CORS_ORIGINS, DEFAULT_COLLECTION, LOG_LEVEL, PORT, RAG_API_PREFIX
from logger import setup_logging
from models.api import ChunkOut, ContextRequest, ContextResponse, ContextUnitOut
from models.file_record import FilePayload
from services.context_builder import ContextBuilder
from services.errors import RagServiceError, TransportError, UnauthorizedError
from services.llm_client import LLMClient
from services.query_rewriter import QueryRewriter
from services.retrieval_pipeline import RetrievalPipeline
from services.vector_index_client import VectorIndexClient

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="DevForge RAG Context Service",
    description="Retrieval-augmented context for chat over a user's uploaded files",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
vector_index_client: VectorIndexClient = None
retrieval_pipeline: RetrievalPipeline = None


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global vector_index_client, retrieval_pipeline

    setup_logging(LOG_LEVEL)
    logger.info("Initializing RAG context services...")

    try:
        vector_index_client = VectorIndexClient()

        llm_client = LLMClient()
        logger.info("Initialized LLMClient")

        retrieval_pipeline = RetrievalPipeline(
            client=vector_index_client,
            rewriter=QueryRewriter(llm_client),
            builder=ContextBuilder(),
        )
        logger.info("Initialized RetrievalPipeline")

        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


def resolve_tenant_id(
    x_user_id: Optional[str] = Header(None),
    x_session_id: Optional[str] = Header(None)
) -> str:
    """Resolve the tenant from the authenticated user, falling back to the session."""
    tenant_id = (x_user_id or "").strip() or (x_session_id or "").strip()
    if not tenant_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return tenant_id


def _to_http_error(e: RagServiceError, action: str) -> HTTPException:
    """Map a service error to the HTTP error shown to the user."""
    if isinstance(e, UnauthorizedError):
        return HTTPException(status_code=401, detail="Unauthorized")
    if isinstance(e, TransportError) and e.status and e.status >= 400:
        return HTTPException(status_code=e.status, detail=e.message)
    if isinstance(e, TransportError):
        # No response, or a success status with an unusable body
        return HTTPException(status_code=502, detail=f"Failed to {action}: {e.message}")
    return HTTPException(status_code=500, detail=f"Failed to {action}: {e.message}")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "DevForge RAG Context API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "devforge-rag-context",
        "version": "1.0.0"
    }


@app.get(f"{RAG_API_PREFIX}/files")
async def list_files(tenant_id: str = Depends(resolve_tenant_id)):
    """List the tenant's files with their ingestion status."""
    try:
        records = await vector_index_client.list_files(tenant_id)
    except RagServiceError as e:
        logger.error(f"RAG list error: {e.message}")
        raise _to_http_error(e, "fetch files from RAG service")
    return [record.to_dict() for record in records]


@app.get(f"{RAG_API_PREFIX}/file/{{file_id}}")
async def get_file(file_id: str, tenant_id: str = Depends(resolve_tenant_id)):
    """Ingestion status of a single file."""
    try:
        record = await vector_index_client.get_file(file_id, tenant_id)
    except RagServiceError as e:
        logger.error(f"RAG status error for {file_id}: {e.message}")
        raise _to_http_error(e, "fetch file status")
    return record.to_dict()


@app.post(f"{RAG_API_PREFIX}/file/upload")
async def upload_files(
    files: List[UploadFile] = File(...),
    collection: str = Form(DEFAULT_COLLECTION),
    tenant_id: str = Depends(resolve_tenant_id)
):
    """Forward uploaded files to the vector index for ingestion."""
    payloads = [
        FilePayload(
            filename=upload.filename or "upload",
            content=await upload.read(),
            content_type=upload.content_type or "application/octet-stream",
        )
        for upload in files
    ]

    logger.info(f"Uploading {len(payloads)} files for tenant {tenant_id}")
    try:
        ack = await vector_index_client.upload_files(payloads, tenant_id, collection)
    except RagServiceError as e:
        logger.error(f"RAG upload error: {e.message}")
        raise _to_http_error(e, "upload files")
    return ack.to_dict()


@app.delete(f"{RAG_API_PREFIX}/file/{{file_id}}")
async def delete_file(file_id: str, tenant_id: str = Depends(resolve_tenant_id)):
    """Delete one of the tenant's files."""
    logger.info(f"Deleting file {file_id} for tenant {tenant_id}")
    try:
        await vector_index_client.delete_file(file_id, tenant_id)
    except RagServiceError as e:
        logger.error(f"RAG delete error for {file_id}: {e.message}")
        raise _to_http_error(e, "delete file")
    return Response(status_code=200)


@app.post(f"{RAG_API_PREFIX}/context", response_model=ContextResponse)
async def context_endpoint(
    request: ContextRequest,
    tenant_id: str = Depends(resolve_tenant_id)
) -> ContextResponse:
    """
    Prepare retrieved context for one chat turn.

    Rewrites the query against recent history, runs a tenant-scoped semantic
    search and assembles the retrieved chunks into one context unit.

    Args:
        request: ContextRequest with the query and recent history

    Returns:
        ContextResponse; `context` is null when nothing was retrieved

    Raises:
        HTTPException: For missing tenant or vector index failures
    """
    logger.info(f"Preparing context for query: {request.query[:100]}...")

    try:
        outcome = await retrieval_pipeline.retrieve(
            tenant_id=tenant_id,
            user_query=request.query,
            history=[message.to_message() for message in request.history],
            file_ids=request.file_ids,
            known_filenames=request.known_filenames,
            message_id=request.message_id,
            top_k=request.top_k,
        )
    except RagServiceError as e:
        logger.error(f"RAG search error: {e.message}")
        raise _to_http_error(e, "retrieve context")

    context = None
    if outcome.context is not None:
        context = ContextUnitOut(
            id=outcome.context.id,
            content=outcome.context.text_body,
            createdAt=outcome.context.created_at.isoformat(),
            chunkIds=list(outcome.context.chunk_ids),
            type=outcome.context.role_tag,
        )

    return ContextResponse(
        search_query=outcome.search_query,
        rewritten=outcome.rewritten,
        rewrite_rule=outcome.rewrite_rule,
        query_id=outcome.result.query_id,
        chunks=[ChunkOut(**chunk.to_dict()) for chunk in outcome.result.chunks],
        context=context,
    )


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting DevForge RAG Context API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
