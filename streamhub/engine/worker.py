"""Controller that owns one FFmpeg worker per stream session."""
from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from ..exceptions import WorkerAlreadyRunning, WorkerFailure
from .encoder import EncoderSettings, HlsCommandBuilder
from .runner import TranscodeRunner, WorkerCallbacks
from .session import WorkerHandle, WorkerState
from .stop_strategy import StopStrategy

LOGGER = logging.getLogger(__name__)


class WorkerController:
    """Start, stop and track transcode workers keyed by session id.

    ``start`` returns as soon as the runner thread is launched; the
    ``on_started`` callback fires once the process has actually spawned.
    ``stop`` only delivers SIGTERM; escalation to SIGKILL happens on a
    helper thread so callers never block on process exit.
    """

    def __init__(
        self,
        settings: Optional[EncoderSettings] = None,
        *,
        runner: Optional[TranscodeRunner] = None,
        stop_strategy: Optional[StopStrategy] = None,
        command_builder: Optional[HlsCommandBuilder] = None,
    ) -> None:
        self._builder = command_builder or HlsCommandBuilder(settings or EncoderSettings())
        self._runner = runner or TranscodeRunner()
        self._stopper = stop_strategy or StopStrategy()
        self._lock = threading.Lock()
        self._workers: Dict[str, WorkerHandle] = {}
        self._threads: Dict[str, threading.Thread] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, session_id: str, output_dir: Path, callbacks: WorkerCallbacks) -> WorkerHandle:
        """Launch the worker for ``session_id`` writing into ``output_dir``."""

        try:
            command = tuple(self._builder.build(session_id, output_dir))
        except (KeyError, IndexError, ValueError) as exc:
            raise WorkerFailure(f"Cannot build transcoder command for {session_id!r}: {exc!r}") from exc
        handle = WorkerHandle(session_id, command)
        with self._lock:
            current = self._workers.get(session_id)
            if current is not None and current.state in (WorkerState.PENDING, WorkerState.RUNNING):
                raise WorkerAlreadyRunning(
                    f"Worker {current.worker_id} for {session_id!r} is still {current.state.value}"
                )
            self._workers[session_id] = handle

        wrapped = WorkerCallbacks(
            on_started=callbacks.on_started,
            on_failed=self._retiring(callbacks.on_failed),
            on_completed=self._retiring(callbacks.on_completed),
        )
        thread = self._runner.launch(handle, wrapped)
        with self._lock:
            if self._workers.get(session_id) is handle:
                self._threads[session_id] = thread
        LOGGER.debug("Launched worker %s for %s", handle.worker_id, session_id)
        return handle

    def stop(self, session_id: str) -> bool:
        """Signal the worker for ``session_id``; no-op when nothing is running."""

        with self._lock:
            handle = self._workers.get(session_id)
        if handle is None:
            LOGGER.debug("No active worker to stop for %s", session_id)
            return False

        requested, process = handle.request_stop()
        if not requested:
            LOGGER.debug("Worker for %s already %s", session_id, handle.state.value)
            return False
        if process is None:
            LOGGER.info("Stop requested for %s before FFmpeg spawned", session_id)
            return True

        label = f"ffmpeg[{session_id}]"
        if self._stopper.signal_stop(process, label=label):
            threading.Thread(
                target=self._stopper.escalate,
                args=(process,),
                kwargs={"label": label},
                name=f"worker-stop-{session_id}",
                daemon=True,
            ).start()
        return True

    def stop_all(self) -> List[str]:
        """Signal every live worker; return the ids that were signalled."""

        with self._lock:
            session_ids = list(self._workers)
        return [session_id for session_id in session_ids if self.stop(session_id)]

    def wait_all(self, timeout: float) -> bool:
        """Join runner threads until ``timeout`` elapses; return True if all exited."""

        deadline = time.monotonic() + max(0.0, timeout)
        with self._lock:
            threads = list(self._threads.values())
        for thread in threads:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            thread.join(timeout=remaining)
        return not any(thread.is_alive() for thread in threads)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    def active(self, session_id: str) -> Optional[WorkerHandle]:
        with self._lock:
            return self._workers.get(session_id)

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._workers)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _retire(self, handle: WorkerHandle) -> None:
        with self._lock:
            if self._workers.get(handle.session_id) is handle:
                del self._workers[handle.session_id]
                self._threads.pop(handle.session_id, None)

    def _retiring(self, callback):
        def _wrapped(handle: WorkerHandle, *args: object) -> None:
            self._retire(handle)
            callback(handle, *args)

        _wrapped.__name__ = getattr(callback, "__name__", "callback")
        return _wrapped


__all__ = ["WorkerController"]
