"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
EXEMPLARS_DIR = Path(os.getenv("EXEMPLARS_DIR", str(BASE_DIR / "exemplars")))

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_API_KEY = os.getenv("OLLAMA_API_KEY")  # Only for hosted/proxied endpoints
OLLAMA_TIMEOUT = float(os.getenv("OLLAMA_TIMEOUT", "120.0"))
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "mxbai-embed-large:latest")
# None = detect from the first embedding response
EMBEDDING_DIMENSION = int(os.environ["EMBEDDING_DIMENSION"]) if os.getenv("EMBEDDING_DIMENSION") else None

# Chunking parameters (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))

# Embedding throughput
EMBED_BATCH_SIZE = int(os.getenv("EMBED_BATCH_SIZE", "16"))    # texts per /api/embed call
EMBED_CONCURRENCY = int(os.getenv("EMBED_CONCURRENCY", "4"))   # sub-batches in flight

# Retrieval
RETRIEVAL_QUERY = os.getenv("RETRIEVAL_QUERY", "Formal Verification using SVO Logic")
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "10"))
RETRIEVAL_MIN_SIMILARITY = float(os.getenv("RETRIEVAL_MIN_SIMILARITY", "0.0"))

# Generation
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.5"))
GENERATION_MAX_TOKENS = int(os.getenv("GENERATION_MAX_TOKENS", "10000"))

# Provider retry policy (attempts include the first try)
PROVIDER_MAX_ATTEMPTS = int(os.getenv("PROVIDER_MAX_ATTEMPTS", "3"))
PROVIDER_INITIAL_DELAY = float(os.getenv("PROVIDER_INITIAL_DELAY", "0.5"))  # seconds
PROVIDER_MAX_DELAY = float(os.getenv("PROVIDER_MAX_DELAY", "8.0"))          # seconds

# Output validation policy
REPAIR_BUDGET = int(os.getenv("REPAIR_BUDGET", "2"))
STRICT_PHASE_ORDER = os.getenv("STRICT_PHASE_ORDER", "false").lower() in ("1", "true", "yes")

# Whole-request deadline in seconds (0 disables)
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "300.0"))

# Upload limits
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))
MAX_DIAGRAM_CHARS = int(os.getenv("MAX_DIAGRAM_CHARS", "20000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
