"""Main Quart application for the knowledge-base chat service."""
import json
import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional

from pydantic import ValidationError
from quart import Blueprint, Quart, Response, current_app, jsonify, request
import structlog

from kbchat import config
from kbchat.errors import GenerationStreamError, InvalidParameters, KBChatError
from kbchat.rag.chat import ChatPipeline, ChatTurn
from kbchat.rag.seed import seed_default_knowledge
from kbchat.schemas import ChatRequest, QueryRequest
from kbchat.services import Services, build_services

# Configure structured logging
logging.basicConfig(format="%(message)s", level=config.LOG_LEVEL)
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()

api = Blueprint("api", __name__)


def _services() -> Services:
    return current_app.extensions["kbchat"]


def _validation_message(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
        for err in error.errors()
    )


async def stream_answer(chat_pipeline: ChatPipeline, turn: ChatTurn) -> AsyncIterator[bytes]:
    """Encode a prepared turn's answer for a streamed response body.

    Runs after the view has returned, outside the app context, so it only
    touches the pipeline it was given.
    """
    try:
        async with aclosing(chat_pipeline.stream(turn)) as fragments:
            async for fragment in fragments:
                yield fragment.encode("utf-8")
    except GenerationStreamError as e:
        # Headers are already sent; aborting the body marks the turn as failed
        logger.error("chat_stream_aborted", error=str(e))
        raise


@api.route("/api/chat", methods=["POST"])
async def chat():
    """Stream a grounded answer to the latest user message.

    Expects JSON body:
    {
        "messages": [{"role": "user", "content": "..."}, ...],
        "limit": 5,          // optional
        "threshold": 0.3     // optional
    }

    Returns a text/plain streamed body. The X-Sources header carries a JSON
    list of {index, content, similarity, metadata} for the whole answer.
    """
    data = await request.get_json(silent=True)

    try:
        payload = ChatRequest.model_validate(data or {})
    except ValidationError as e:
        logger.warning("chat_request_invalid", error=_validation_message(e))
        return jsonify({"error": _validation_message(e)}), 400

    history = [message.model_dump() for message in payload.messages]
    chat_pipeline = _services().chat

    try:
        turn = await chat_pipeline.prepare(
            history, limit=payload.limit, threshold=payload.threshold
        )
    except InvalidParameters as e:
        return jsonify({"error": str(e)}), 400

    logger.info(
        "chat_request_received",
        message_count=len(history),
        query_preview=turn.query[:100],
        grounded=turn.grounded,
    )

    response = Response(
        stream_answer(chat_pipeline, turn), content_type="text/plain; charset=utf-8"
    )
    response.headers["X-Sources"] = json.dumps([s.to_dict() for s in turn.sources])
    response.timeout = None
    return response


@api.route("/api/retrieve", methods=["POST"])
async def retrieve():
    """Return the chunks most similar to a query.

    Expects JSON body:
    {
        "query": "text",
        "limit": 5,          // optional
        "threshold": 0.3     // optional
    }

    Returns JSON:
    {
        "results": [{"content": "...", "similarity": 0.82, "metadata": {...}}, ...]
    }
    """
    data = await request.get_json(silent=True)

    try:
        payload = QueryRequest.model_validate(data or {})
    except ValidationError as e:
        return jsonify({"error": _validation_message(e)}), 400

    results = await _services().retriever.retrieve(
        payload.query, limit=payload.limit, threshold=payload.threshold
    )
    return jsonify({"results": [r.to_dict() for r in results]})


@api.route("/api/upload", methods=["POST"])
async def upload():
    """Ingest an uploaded PDF or text file.

    Expects multipart form data with a 'file' field and an optional
    'replace' flag that drops chunks from an earlier upload of the same file.
    """
    files = await request.files
    form = await request.form
    file = files.get("file")

    if file is None or not file.filename:
        return jsonify({"error": "No file provided"}), 400

    replace = form.get("replace", "false").lower() in ("1", "true", "yes")

    try:
        result = await _services().ingest.ingest_upload(
            filename=file.filename,
            content_type=file.content_type,
            data=file.read(),
            replace=replace,
        )
    except InvalidParameters as e:
        return jsonify({"error": str(e)}), 400
    except KBChatError as e:
        logger.error("upload_failed", filename=file.filename, error=str(e))
        return jsonify({"error": str(e)}), 500

    return jsonify({
        "success": True,
        "message": f"Successfully processed {file.filename}",
        **result.to_dict(),
    })


@api.route("/api/init-kb", methods=["POST"])
async def init_kb():
    """Seed the store with the built-in FAQ knowledge."""
    services = _services()

    try:
        stored = await seed_default_knowledge(services.embedder, services.store)
    except KBChatError as e:
        logger.error("knowledge_base_init_failed", error=str(e))
        return jsonify({"error": str(e)}), 500

    return jsonify({
        "success": True,
        "message": "Default knowledge base initialized successfully",
        "entries": stored,
    })


@api.route("/api/documents/<path:filename>", methods=["DELETE"])
async def delete_document(filename: str):
    """Delete every chunk ingested from one file.

    Returns:
        200 with the number of chunks removed
        404 Not Found if no chunk came from that file
    """
    try:
        removed = await _services().store.delete_document(filename)
    except KBChatError as e:
        logger.error("document_delete_failed", filename=filename, error=str(e))
        return jsonify({"error": str(e)}), 500

    if not removed:
        return jsonify({"error": "Document not found"}), 404

    return jsonify({"filename": filename, "chunks_removed": removed})


@api.route("/api/stats", methods=["GET"])
async def stats():
    """Report document store statistics."""
    services = _services()
    return jsonify({
        "store": services.store.get_stats(),
        "ingest": services.ingest.stats,
        "chat_model": config.CHAT_MODEL,
        "embedding_model": services.embedder.model,
    })


@api.route("/health/ready")
async def health_ready():
    """Readiness probe - check if app can serve requests.

    Checks:
    - Ollama service is reachable
    - Required models are available
    """
    checks = {
        "status": "healthy",
        "ollama": False,
        "models": False,
    }

    services = _services()

    try:
        models = await services.llm_client.list_models()
        checks["ollama"] = True

        missing = [
            name for name in (config.CHAT_MODEL, services.embedder.model)
            if name not in models
        ]
        if missing:
            checks["status"] = "unhealthy"
            checks["error"] = f"Missing models: {', '.join(missing)}"
        else:
            checks["models"] = True

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        checks["status"] = "unhealthy"
        checks["error"] = str(e)
        return jsonify(checks), 503


@api.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


def create_app(services: Optional[Services] = None) -> Quart:
    """Build the Quart application.

    Args:
        services: Pre-built pipeline collaborators (built from config when None)
    """
    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES + 64 * 1024
    app.extensions["kbchat"] = services or build_services()
    app.register_blueprint(api)

    @app.before_serving
    async def startup():
        await app.extensions["kbchat"].startup()
        logger.info("kbchat_started", store=app.extensions["kbchat"].store.get_stats())

    @app.errorhandler(404)
    async def not_found(error):
        """Handle 404 errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        """Handle 500 errors."""
        logger.error("internal_server_error", error=str(error))
        return jsonify({
            "error": "An error occurred processing your request. Please try again."
        }), 500

    return app


app = create_app()


if __name__ == "__main__":
    # For development - run with `hypercorn kbchat.main:app` in production
    app.run(host="0.0.0.0", port=5000, debug=True)
