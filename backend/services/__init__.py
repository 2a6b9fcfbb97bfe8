"""Services for the DevForge RAG context service."""
from .errors import RagServiceError, UnauthorizedError, TransportError, NetworkError, EmptyContextError
from .vector_index_client import VectorIndexClient
from .llm_client import LLMClient, LLMResponse, LLMError, LLMClientError
from .query_rewriter import QueryRewriter, RewriteDecision
from .context_builder import ContextBuilder
from .ingestion_tracker import IngestionTracker, IngestionSession
from .retrieval_pipeline import RetrievalPipeline, RetrievalOutcome, inject_context

__all__ = ['RagServiceError', 'UnauthorizedError', 'TransportError', 'NetworkError', 'EmptyContextError', 'VectorIndexClient', 'LLMClient', 'LLMResponse', 'LLMError', 'LLMClientError', 'QueryRewriter', 'RewriteDecision', 'ContextBuilder', 'IngestionTracker', 'IngestionSession', 'RetrievalPipeline', 'RetrievalOutcome', 'inject_context']
