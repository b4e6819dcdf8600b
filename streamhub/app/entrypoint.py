"""Socket.IO-enabled server entrypoint."""
from __future__ import annotations

import logging
import signal
import sys
from types import FrameType
from typing import Optional

from flask import Flask

from . import create_app
from .providers import socketio
from ..services import StreamOrchestrator

LOGGER = logging.getLogger(__name__)


def install_signal_handlers(orchestrator: StreamOrchestrator) -> None:
    """Stop workers and the ingest server on SIGINT/SIGTERM, then exit."""

    def _handle(signum: int, _frame: Optional[FrameType]) -> None:
        LOGGER.info("Received %s; shutting down", signal.Signals(signum).name)
        orchestrator.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def run(app: Flask) -> None:
    orchestrator: StreamOrchestrator = app.extensions["stream_orchestrator"]
    host = app.config.get("STREAMHUB_HOST", "0.0.0.0")
    port = int(app.config.get("STREAMHUB_PORT", 3000))

    install_signal_handlers(orchestrator)
    orchestrator.start()
    LOGGER.info("Streaming server listening on http://%s:%s", host, port)
    LOGGER.info("Publish to %s", app.config.get("INGEST_READ_URL_TEMPLATE", "").format(stream_id="<stream key>"))

    run_kwargs = {}
    if socketio.async_mode == "threading":
        run_kwargs["allow_unsafe_werkzeug"] = True
    socketio.run(app, host=host, port=port, **run_kwargs)


def main() -> None:
    run(create_app())


if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    main()


__all__ = ["install_signal_handlers", "main", "run"]
