"""Configuration management for the documentation chat assistant."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Provider selection
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai")
LLM_API_KEY = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")
LLM_MODEL = os.getenv("LLM_MODEL")

EMBEDDING_PROVIDER = os.getenv("EMBEDDING_PROVIDER", "openai")
EMBEDDING_API_KEY = os.getenv("EMBEDDING_API_KEY") or os.getenv("OPENAI_API_KEY")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL")

# Offline development mode: deterministic mock providers, no network
MOCK_MODE = _env_flag("MOCK_MODE")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Content locations
SITE_DIR = os.getenv("SITE_DIR", ".")
OUTPUT_DIR = os.getenv("OUTPUT_DIR", ".docs-chat")
CONTENT_DIRS = [d.strip() for d in os.getenv("CONTENT_DIRS", "docs,src/pages").split(",") if d.strip()]
CONTENT_EXTENSIONS = (".md", ".mdx")
AUDIT_ENABLED = _env_flag("AUDIT_ENABLED")
AUDIT_AI_REVIEW = _env_flag("AUDIT_AI_REVIEW")

# Chat state persistence
STATE_STORE = os.getenv("STATE_STORE", "memory")  # memory|file|supabase
STATE_DIR = os.getenv("STATE_DIR", ".docs-chat/state")
STATE_STORAGE_KEY = "docs-chat-state"
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # text|json

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Chunking Configuration
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))  # characters
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "0"))  # characters

# Retrieval Configuration
DEFAULT_TOP_K = 3
# Chunks scoring below this are dropped; 0.0 disables the filter
DEFAULT_SIMILARITY_THRESHOLD = 0.0
TOP_K = int(os.getenv("TOP_K", str(DEFAULT_TOP_K)))
SIMILARITY_THRESHOLD = float(os.getenv("SIMILARITY_THRESHOLD", str(DEFAULT_SIMILARITY_THRESHOLD)))

# Provider network settings
EMBEDDING_BATCH_SIZE = 20
EMBEDDING_MAX_CONCURRENCY = 4
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60"))
MOCK_EMBEDDING_DIMENSION = 1536
MOCK_STREAM_DELAY = 0.005  # seconds between mock fragments

# Default models per provider kind
DEFAULT_LLM_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
    "google-genai": "gemini-1.5-flash",
    "xai": "grok-2-latest",
    "groq": "llama-3.1-8b-instant",
}

DEFAULT_EMBEDDING_MODELS = {
    "openai": "text-embedding-3-small",
    "google-genai": "text-embedding-004",
    "pinecone": "llama-text-embed-v2",
}

# Maximum context windows in tokens, used to trim conversation history
MAX_CONTEXT_WINDOW = {
    "openai": 128000,
    "anthropic": 200000,
    "google-genai": 32768,
    "xai": 32000,
    "groq": 128000,
}

DEFAULT_TEMPERATURE = 0.7

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
