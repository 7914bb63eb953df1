#!/usr/bin/env python
"""Validate setup - check dependencies, configuration, the model server and the index."""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

DEPENDENCIES = [
    ("quart", "Quart web framework"),
    ("hypercorn", "Hypercorn ASGI server"),
    ("httpx", "HTTP client"),
    ("faiss", "FAISS vector index"),
    ("numpy", "Numerical arrays"),
    ("pydantic", "Request validation"),
    ("PyPDF2", "PDF text extraction"),
    ("structlog", "Structured logging"),
]


class Report:
    """Collects check outcomes and prints them as they happen."""

    def __init__(self):
        self.errors = []
        self.warnings = []

    def section(self, title):
        print(f"\n{BLUE}{'=' * 60}{RESET}")
        print(f"{BLUE}{title:^60}{RESET}")
        print(f"{BLUE}{'=' * 60}{RESET}\n")

    def ok(self, msg):
        print(f"{GREEN}✓{RESET} {msg}")

    def info(self, msg):
        print(f"{BLUE}ℹ{RESET} {msg}")

    def fail(self, msg, summary=None):
        print(f"{RED}✗{RESET} {msg}")
        self.errors.append(summary or msg)

    def warn(self, msg, summary=None):
        print(f"{YELLOW}⚠{RESET} {msg}")
        self.warnings.append(summary or msg)


def check_python(report):
    report.section("1. Python Environment")

    version = ".".join(str(part) for part in sys.version_info[:3])
    report.info(f"Python version: {version}")
    if sys.version_info >= (3, 10):
        report.ok("Python version >= 3.10")
    else:
        report.fail("Python version < 3.10 (required)", "Python version too old")

    if sys.base_prefix != sys.prefix:
        report.ok("Running in virtual environment")
    else:
        report.warn("Not running in virtual environment (recommended)", "Not in venv")


def check_dependencies(report):
    report.section("2. Dependencies")

    for module_name, description in DEPENDENCIES:
        try:
            __import__(module_name)
            report.ok(f"{description:30} ({module_name})")
        except ImportError as e:
            report.fail(f"{description:30} ({module_name}) - {e}", f"Missing: {module_name}")


def check_configuration(report):
    """Returns the loaded config module, or None when it cannot be imported."""
    report.section("3. Configuration")

    try:
        from kbchat import config
    except Exception as e:
        report.fail(f"Failed to load config: {e}", "Config loading failed")
        return None

    from kbchat.errors import InvalidParameters
    from kbchat.rag.chunker import TextChunker

    report.ok("Config loaded")
    report.info(f"  Chat model:       {config.CHAT_MODEL}")
    report.info(f"  Embedding model:  {config.EMBEDDING_MODEL}")
    report.info(f"  Ollama URL:       {config.OLLAMA_BASE_URL}")
    report.info(f"  Retrieval:        limit={config.RETRIEVAL_LIMIT} threshold={config.SIMILARITY_THRESHOLD}")
    report.info(f"  Store backend:    {config.STORE_BACKEND}")

    try:
        TextChunker()
        report.ok(f"Chunking: {config.CHUNK_SIZE} chars, {config.CHUNK_OVERLAP} overlap")
    except InvalidParameters as e:
        report.fail(f"Invalid chunk settings: {e}", "Invalid chunk settings")

    if not -1.0 <= config.SIMILARITY_THRESHOLD <= 1.0:
        report.fail("SIMILARITY_THRESHOLD must be within [-1, 1]", "Invalid similarity threshold")

    if config.STORE_BACKEND not in ("faiss", "memory"):
        report.fail(f"Unknown STORE_BACKEND: {config.STORE_BACKEND}", "Invalid store backend")
    elif config.STORE_BACKEND == "memory":
        report.warn("Memory store selected; ingested documents are lost on restart", "Non-persistent store")

    return config


async def check_model_server(report, config, client):
    report.section("4. Ollama Service")

    import httpx

    try:
        models = set(await client.list_models())
    except httpx.ConnectError:
        report.fail("Cannot connect to Ollama service", "Ollama not running")
        report.info("  Make sure Ollama is running: ollama serve")
        return
    except httpx.HTTPError as e:
        report.fail(f"Ollama check failed: {e}", f"Ollama error: {e}")
        return

    report.ok(f"Ollama service running at {config.OLLAMA_BASE_URL} ({len(models)} models)")

    for label, name in (("Chat", config.CHAT_MODEL), ("Embedding", config.EMBEDDING_MODEL)):
        if name in models:
            report.ok(f"{label} model available: {name}")
        else:
            report.fail(f"{label} model missing: {name}", f"Missing {label.lower()} model: {name}")
            report.info(f"  Run: ollama pull {name}")


async def check_embeddings_and_index(report, config, client):
    report.section("5. Embeddings and Index")

    from kbchat.errors import KBChatError
    from kbchat.rag.embedder import EmbeddingClient
    from kbchat.rag.store_faiss import FAISSDocumentStore

    try:
        dimension = await EmbeddingClient(client, dimension=config.EMBEDDING_DIMENSION).detect_dimension()
        report.ok(f"Embedding API working (dimension: {dimension})")
    except KBChatError as e:
        report.fail(f"Embedding API test failed: {e}", "Embedding test failed")
        return

    if config.STORE_BACKEND != "faiss":
        return

    if not config.VECTOR_INDEX_PATH.exists():
        report.info("No FAISS index yet; it is created on the first ingest")
        return

    try:
        store = FAISSDocumentStore()
        await store.init_or_load(dimension)
        report.ok(f"FAISS index loaded ({await store.count()} vectors)")
    except KBChatError as e:
        report.fail(str(e), "FAISS index incompatible")
        report.info("  Run: python scripts/ingest_files.py --rebuild")


async def main():
    report = Report()
    report.section("Knowledge-Base Chat - Setup Validation")

    check_python(report)
    check_dependencies(report)
    config = check_configuration(report)

    if config is not None:
        from kbchat.llm_client import OllamaClient

        client = OllamaClient()
        await check_model_server(report, config, client)
        await check_embeddings_and_index(report, config, client)

    report.section("Summary")

    if not report.errors:
        report.ok("All checks passed! ✨")
        report.info("  Seed the store:  python scripts/ingest_files.py --seed")
        report.info("  Run the server:  hypercorn kbchat.main:app")
    else:
        print(f"{RED}Found {len(report.errors)} error(s):{RESET}")
        for i, error in enumerate(report.errors, 1):
            print(f"  {i}. {error}")

    if report.warnings:
        print(f"\n{YELLOW}Found {len(report.warnings)} warning(s):{RESET}")
        for i, warning in enumerate(report.warnings, 1):
            print(f"  {i}. {warning}")

    print()
    return report


if __name__ == "__main__":
    sys.exit(1 if asyncio.run(main()).errors else 0)
