"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# Ensure data directory exists
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text:latest")
# Leave unset to detect the dimension from the embedding model at startup
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "0")) or None
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60.0"))
CHAT_TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", "0.7"))

# Chunking (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "500"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "50"))
MAX_CHUNKS = int(os.getenv("MAX_CHUNKS", "1000"))
MAX_TEXT_LENGTH = int(os.getenv("MAX_TEXT_LENGTH", "500000"))  # ~500KB

# Retrieval
RETRIEVAL_LIMIT = int(os.getenv("RETRIEVAL_LIMIT", "5"))
SIMILARITY_THRESHOLD = float(os.getenv("SIMILARITY_THRESHOLD", "0.3"))

# Chat
MAX_HISTORY_MESSAGES = int(os.getenv("MAX_HISTORY_MESSAGES", "20"))
MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", "4000"))

# Uploads
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# Storage: "faiss" (persistent) or "memory" (process lifetime only)
STORE_BACKEND = os.getenv("STORE_BACKEND", "faiss")
DB_PATH = DATA_DIR / "knowledge.sqlite"
VECTOR_INDEX_PATH = DATA_DIR / "vectors.index"
INDEX_INFO_PATH = DATA_DIR / "index_info.json"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
