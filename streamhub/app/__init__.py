"""Streaming service application factory."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Flask

from .bootstrap import ensure_message_queue, ensure_storage_paths, init_logging, load_configuration
from .extensions import (
    configure_cors,
    init_socketio,
    register_blueprints,
    register_socket_handlers,
    resolve_cors_origins,
)
from .providers import socketio
from .runtime import AppServices, init_services


def create_app(config_overrides: Optional[Mapping[str, Any]] = None, **service_options: Any) -> Flask:
    """Create and configure the streaming Flask application.

    ``service_options`` are forwarded to :func:`init_services` (``runner``,
    ``timer_factory``) so tests can swap the process and timer seams.
    """

    init_logging()
    app = Flask(__name__)
    load_configuration(app, config_overrides)
    ensure_storage_paths(app)
    ensure_message_queue(app)

    init_services(app, **service_options)

    cors_origin = app.config.get("STREAMHUB_CORS_ORIGIN", "*")
    # Handlers must be queued on ``socketio`` before init_app so every app's server gets them.
    register_socket_handlers()
    init_socketio(app, resolve_cors_origins(cors_origin))
    register_blueprints(app)
    configure_cors(app, cors_origin)

    return app


__all__ = ["AppServices", "create_app", "socketio"]
