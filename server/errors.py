"""
Exception types and Flask error handlers.

Every error carries the message that is safe to show the client; details
that only belong in the server log (upstream bodies, missing variable
names) are kept on the exception and never rendered.
"""
import logging
from typing import Any, Dict, Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException, NotFound


logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Base error rendered as ``{"error": message}`` with ``status_code``."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}


class InvalidRequestError(BackendError):
    status_code = 400


class ConfigurationError(BackendError):
    """Required settings are not present."""

    def __init__(self, message: str, missing: Optional[list] = None):
        super().__init__(message, details={"missing": list(missing or [])})


class UpstreamError(BackendError):
    """A third-party API answered with a non-success status or could not be reached."""

    def __init__(self, message: str, upstream_status: Optional[int] = None, upstream_body: str = ""):
        super().__init__(message, details={"upstream_status": upstream_status})
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body


def error_response(message: str, status_code: int) -> tuple:
    return jsonify({"error": message}), status_code


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(BackendError)
    def handle_backend_error(exc: BackendError):
        if exc.status_code >= 500:
            logger.warning("%s returned to client as %r, details: %s", type(exc).__name__, exc.message, exc.details)
        return error_response(exc.message, exc.status_code)

    @app.errorhandler(NotFound)
    def handle_not_found(exc: NotFound):
        return error_response("Not found", 404)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return error_response(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return error_response("Internal server error", 500)
