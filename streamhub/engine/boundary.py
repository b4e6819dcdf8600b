"""Supervision of the external RTMP ingest server process."""
from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from typing import Callable, Optional, Sequence

from .stop_strategy import StopStrategy

LOGGER = logging.getLogger(__name__)


class IngestBoundary:
    """Run the push-protocol server the publishers connect to.

    The server itself is an external program (nginx-rtmp, MediaMTX, ...)
    configured to call the ``/ingest`` hooks. When no command is configured
    the server is assumed to be managed elsewhere and start/stop are no-ops.
    """

    def __init__(
        self,
        command: Optional[Sequence[str] | str] = None,
        *,
        stop_strategy: Optional[StopStrategy] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        if isinstance(command, str):
            command = shlex.split(command)
        self._command = tuple(command) if command else ()
        self._stopper = stop_strategy or StopStrategy()
        self._popen = popen
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None

    @property
    def managed(self) -> bool:
        return bool(self._command)

    @property
    def running(self) -> bool:
        with self._lock:
            process = self._process
        return process is not None and process.poll() is None

    def start(self) -> bool:
        if not self._command:
            LOGGER.info("No ingest server command configured; expecting an external RTMP server")
            return False
        with self._lock:
            if self._process is not None and self._process.poll() is None:
                LOGGER.debug("Ingest server already running (pid=%s)", self._process.pid)
                return False
            LOGGER.info("Starting ingest server: %s", shlex.join(self._command))
            self._process = self._popen(list(self._command), stdin=subprocess.DEVNULL)
            LOGGER.info("Ingest server running (pid=%s)", self._process.pid)
        return True

    def stop(self) -> Optional[int]:
        with self._lock:
            process = self._process
            self._process = None
        if process is None:
            return None
        result = self._stopper.shutdown(process, label="ingest server")
        return result.returncode


__all__ = ["IngestBoundary"]
