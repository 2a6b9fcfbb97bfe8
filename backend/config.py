"""Configuration management for the DevForge RAG context service."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")

# Vector Index Service
RAG_BASE_URL = os.getenv("RAG_BASE_URL", "http://localhost:8000")
RAG_API_PREFIX = "/api/v1/rag"
TENANT_HEADER = "X-User-ID"
RAG_REQUEST_TIMEOUT = float(os.getenv("RAG_REQUEST_TIMEOUT", "30"))

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:5173,http://localhost:3000"
).split(",")

# Query Rewriting Configuration
REWRITE_MODEL = os.getenv("REWRITE_MODEL", "llama-3.1-8b-instant")
REWRITE_MAX_HISTORY = int(os.getenv("REWRITE_MAX_HISTORY", "3"))
REWRITE_HISTORY_CHARS = 300  # per message
REWRITE_MAX_FILENAMES = 20
REWRITE_MIN_QUERY_LENGTH = 5
REWRITE_MAX_QUERY_LENGTH = 500
REWRITE_OUTPUT_FLOOR = 150  # chars
REWRITE_OUTPUT_FACTOR = 4  # x original length

# Retrieval Configuration
SEARCH_TOP_K = int(os.getenv("SEARCH_TOP_K", "5"))
DEFAULT_COLLECTION = "default"

# Ingestion Polling Configuration
STATUS_POLL_INTERVAL = 1.0  # seconds, batched list polling
FILE_POLL_INTERVAL = 2.0  # seconds, single-file polling
FILE_POLL_MAX_ATTEMPTS = 30

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
