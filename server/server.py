import logging
from typing import Any, Callable, Dict, List, Optional

from flask import Flask, Response, jsonify, request, stream_with_context
from flask_cors import CORS

from chat_utils import ChatOrchestrator, relay
from config_utils import Settings, configure_logging
from data_utils import Dataset, load_dataset
from errors import ConfigurationError, InvalidRequestError, error_response, register_error_handlers
from memory_utils import SessionStore, create_memory_blueprint, resolve_session_id
from search_utils import web_search
from token_utils import create_token_blueprint


logger = logging.getLogger(__name__)

CHAT_ERROR = "Failed to generate a response"


def _warn_unconfigured(settings: Settings) -> None:
    for concern, names in settings.missing().items():
        if names:
            logger.warning("%s is not configured, missing: %s", concern, ", ".join(names))


def _completion_client(app: Flask) -> Any:
    client = app.extensions.get("completion_client")
    if client is not None:
        return client
    settings: Settings = app.config["SETTINGS"]
    if not settings.llm_enabled:
        logger.error("Chat requested but OPENAI_API_KEY is not set")
        raise ConfigurationError(CHAT_ERROR, missing=["OPENAI_API_KEY"])
    from openai import OpenAI
    client = OpenAI(api_key=settings.openai_api_key)
    app.extensions["completion_client"] = client
    return client


def create_app(
    settings: Optional[Settings] = None,
    dataset: Optional[Dataset] = None,
    completion_client: Any = None,
    search: Callable[..., List[Dict[str, str]]] = web_search,
) -> Flask:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    _warn_unconfigured(settings)

    app = Flask(__name__)
    app.config["SETTINGS"] = settings
    CORS(
        app,
        resources={r"/*": {"origins": "*"}},
        allow_headers=["Content-Type"],
        methods=["OPTIONS", "POST", "GET", "DELETE"],
        send_wildcard=True,
    )

    dataset = dataset if dataset is not None else load_dataset(settings.dataset_path)
    store = SessionStore()
    app.extensions["dataset"] = dataset
    app.extensions["sessions"] = store
    if completion_client is not None:
        app.extensions["completion_client"] = completion_client

    register_error_handlers(app)
    app.register_blueprint(create_token_blueprint(settings))
    app.register_blueprint(create_memory_blueprint(store))

    @app.post("/chat")
    def chat() -> Response:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            data = {}
        message = data.get("message")
        if not isinstance(message, str) or not message.strip():
            raise InvalidRequestError("'message' must be a non-empty string")
        session_id = resolve_session_id(data.get("sessionId"))

        orchestrator = ChatOrchestrator(
            _completion_client(app),
            store,
            dataset.text,
            model=settings.openai_model,
            search=search,
            search_limit=settings.search_result_limit,
            http_timeout=settings.http_timeout,
        )
        try:
            fragments = relay(orchestrator.stream(message, session_id))
        except Exception as e:
            logger.error("Chat completion failed before streaming: %s", e, exc_info=True)
            return error_response(CHAT_ERROR, 500)

        return Response(stream_with_context(fragments), mimetype="text/event-stream")

    @app.get("/health")
    def health() -> Response:
        return jsonify({
            "status": "ok",
            "records": len(dataset),
            "llm_enabled": settings.llm_enabled,
            "identity_configured": settings.identity_configured,
            "embed_configured": settings.embed_configured,
        })

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=app.config["SETTINGS"].port, debug=True)
