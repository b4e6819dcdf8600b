"""Background thread that runs one FFmpeg worker process."""
from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque

from .session import WorkerHandle, WorkerState

LOGGER = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20


@dataclass(frozen=True)
class WorkerCallbacks:
    """Callbacks used to surface worker lifecycle events from the runner thread."""

    on_started: Callable[[WorkerHandle], None]
    on_failed: Callable[[WorkerHandle, str], None]
    on_completed: Callable[[WorkerHandle], None]


class TranscodeRunner:
    """Launch a worker process in a background thread and watch it exit."""

    def __init__(self, *, popen: Callable[..., subprocess.Popen] = subprocess.Popen) -> None:
        self._popen = popen

    def launch(self, handle: WorkerHandle, callbacks: WorkerCallbacks) -> threading.Thread:
        """Start ``handle.command`` on a daemon thread and return the thread."""

        thread = threading.Thread(
            target=self._run,
            args=(handle, callbacks),
            name=f"worker-{handle.session_id}",
            daemon=True,
        )
        thread.start()
        return thread

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------
    def _run(self, handle: WorkerHandle, callbacks: WorkerCallbacks) -> None:
        if handle.stop_requested:
            LOGGER.info("Worker for %s stopped before launch", handle.session_id)
            self._complete(handle, callbacks)
            return

        try:
            LOGGER.info("Starting FFmpeg for %s: %s", handle.session_id, shlex.join(handle.command))
            process = self._popen(
                list(handle.command),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            reason = f"Failed to launch transcoder: {exc}"
            LOGGER.error("Worker for %s could not start: %s", handle.session_id, exc)
            self._fail(handle, callbacks, reason)
            return

        if handle.attach_process(process):
            # stop arrived between spawn and attach
            try:
                process.terminate()
            except OSError:  # pragma: no cover - system dependent
                LOGGER.debug("Late terminate failed for pid %s", process.pid, exc_info=True)
        elif handle.advance(WorkerState.RUNNING):
            LOGGER.info("FFmpeg process started for %s (pid=%s)", handle.session_id, process.pid)
            self._notify(callbacks.on_started, handle)

        tail = self._drain_stderr(handle, process)
        returncode = process.wait()
        handle.returncode = returncode

        if handle.stop_requested:
            LOGGER.info("FFmpeg for %s exited with %s after stop request", handle.session_id, returncode)
            self._complete(handle, callbacks)
        elif returncode == 0:
            LOGGER.info("FFmpeg process ended for stream: %s", handle.session_id)
            self._complete(handle, callbacks)
        else:
            detail = tail[-1] if tail else "no output"
            reason = f"ffmpeg exited with code {returncode}: {detail}"
            LOGGER.error("FFmpeg error for %s: %s", handle.session_id, reason)
            self._fail(handle, callbacks, reason)

    @staticmethod
    def _drain_stderr(handle: WorkerHandle, process: subprocess.Popen) -> list[str]:
        tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        stream = process.stderr
        if stream is None:
            return []
        try:
            for line in stream:
                text = line.rstrip()
                if not text:
                    continue
                tail.append(text)
                LOGGER.debug("[ffmpeg %s] %s", handle.session_id, text)
        except (OSError, ValueError):
            LOGGER.debug("stderr closed early for %s", handle.session_id, exc_info=True)
        finally:
            stream.close()
        return list(tail)

    def _complete(self, handle: WorkerHandle, callbacks: WorkerCallbacks) -> None:
        handle.advance(WorkerState.COMPLETED)
        self._notify(callbacks.on_completed, handle)

    def _fail(self, handle: WorkerHandle, callbacks: WorkerCallbacks, reason: str) -> None:
        handle.error = reason
        if handle.advance(WorkerState.FAILED):
            self._notify(callbacks.on_failed, handle, reason)
        else:
            # stopped while launching; report as a normal completion
            self._complete(handle, callbacks)

    @staticmethod
    def _notify(callback: Callable[..., None], *args: object) -> None:
        try:
            callback(*args)
        except Exception:
            LOGGER.exception("Worker lifecycle callback %s failed", getattr(callback, "__name__", callback))


__all__ = ["STDERR_TAIL_LINES", "TranscodeRunner", "WorkerCallbacks"]
