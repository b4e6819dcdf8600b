"""Bootstrap helpers for the streamhub Flask application."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

from flask import Flask

from ..config import build_default_config
from ..logging_config import configure_logging
from .redis import ensure_connection


def init_logging() -> None:
    """Configure structured logging for the streaming service."""

    configure_logging("streamhub")


def load_configuration(app: Flask, overrides: Optional[Mapping[str, Any]] = None) -> None:
    """Populate the default configuration values on the Flask app."""

    app.config.from_mapping(build_default_config())
    if overrides:
        app.config.from_mapping(overrides)


def ensure_storage_paths(app: Flask) -> None:
    """Ensure the HLS output root exists on disk."""

    hls_root = Path(app.config["STREAMHUB_HLS_ROOT"]).expanduser().resolve()
    hls_root.mkdir(parents=True, exist_ok=True)
    app.config["STREAMHUB_HLS_ROOT"] = str(hls_root)


def ensure_message_queue(app: Flask) -> None:
    """Verify the Socket.IO message queue is reachable when one is configured."""

    url = app.config.get("SOCKETIO_MESSAGE_QUEUE")
    if not url:
        return
    ensure_connection(url, label="Socket.IO message queue")


__all__ = [
    "ensure_message_queue",
    "ensure_storage_paths",
    "init_logging",
    "load_configuration",
]
