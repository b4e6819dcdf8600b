"""Extension wiring for the streamhub Flask application."""
from __future__ import annotations

from typing import Iterable, Optional, Sequence

from flask import Flask, Response, request

from .providers import socketio


def resolve_cors_origins(raw_origin: Optional[str]) -> Sequence[str] | str:
    """Return a Socket.IO compatible CORS configuration."""

    if not raw_origin or raw_origin.strip() == "*":
        return "*"
    candidates: Iterable[str] = (fragment.strip() for fragment in raw_origin.split(","))
    allowed = [origin for origin in candidates if origin]
    return allowed or "*"


def init_socketio(app: Flask, cors_allowed: Sequence[str] | str) -> None:
    """Configure Socket.IO, with a Redis message queue when one is configured."""

    socketio.init_app(
        app,
        cors_allowed_origins=cors_allowed,
        message_queue=app.config.get("SOCKETIO_MESSAGE_QUEUE") or None,
    )


def register_blueprints(app: Flask) -> None:
    """Register HTTP blueprints for the streaming surface."""

    from ..routes import API_BLUEPRINTS

    for blueprint in API_BLUEPRINTS:
        if blueprint.name == "ingest" and not app.config.get("INGEST_HOOKS_ENABLED", True):
            app.logger.info("Ingest hooks disabled; /ingest endpoints not registered")
            continue
        app.register_blueprint(blueprint)


def register_socket_handlers() -> None:
    """Queue the Socket.IO event handlers on the shared ``socketio`` instance.

    Must run before the first ``init_app``; later calls are no-ops because the
    queued handlers are replayed on every ``init_app``.
    """

    from .. import sockets  # noqa: F401


def configure_cors(app: Flask, cors_origin: Optional[str]) -> None:
    """Attach CORS headers to every HTTP response."""

    allowed_default = cors_origin or "*"

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        origin = request.headers.get("Origin")
        allowed_origin = allowed_default
        if allowed_default == "*" and origin:
            allowed_origin = origin
        response.headers["Access-Control-Allow-Origin"] = allowed_origin
        response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type")
        response.headers.setdefault("Access-Control-Allow-Methods", "GET,POST,OPTIONS")
        if allowed_origin != "*":
            response.headers.setdefault("Access-Control-Allow-Credentials", "true")
        if origin:
            response.headers.add("Vary", "Origin")
        return response


__all__ = [
    "configure_cors",
    "init_socketio",
    "register_blueprints",
    "register_socket_handlers",
    "resolve_cors_origins",
]
