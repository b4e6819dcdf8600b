"""Per-session HLS output directories and their delayed removal."""
from __future__ import annotations

import logging
import shutil
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Set

from ..exceptions import ArtifactIOFailure
from ..utils import resolve_within

LOGGER = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


def _default_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class ArtifactManager:
    """Create session directories and remove them after a grace period.

    Pending deletions are keyed by session id. Scheduling again replaces the
    previous timer, and ``prepare`` cancels any pending deletion for the id so
    a recreated session never loses its fresh segments to a stale timer.
    """

    def __init__(
        self,
        root: Path,
        *,
        retry_delay: float = 5.0,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self._root = Path(root).expanduser().resolve()
        self._retry_delay = max(0.0, retry_delay)
        self._timer_factory = timer_factory or _default_timer
        self._lock = threading.RLock()
        self._pending: Dict[str, threading.Timer] = {}

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------
    def path_for(self, session_id: str) -> Path:
        target = resolve_within(self._root, session_id)
        if target is None or target.parent != self._root:
            raise ArtifactIOFailure(f"Invalid session directory name {session_id!r}")
        return target

    def prepare(self, session_id: str) -> Path:
        """Create (if needed) and return the output directory for ``session_id``."""

        target = self.path_for(session_id)
        with self._lock:
            if self.cancel_cleanup(session_id):
                LOGGER.info("Kept artifacts for recreated session %s", session_id)
            try:
                target.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise ArtifactIOFailure(f"Unable to create {target}: {exc}") from exc
        LOGGER.debug("Prepared artifact directory %s", target)
        return target

    def remove_now(self, session_id: str) -> bool:
        """Delete the session directory immediately; return True if removed."""

        target = self.path_for(session_id)
        if not target.exists():
            return False
        try:
            shutil.rmtree(target)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ArtifactIOFailure(f"Unable to remove {target}: {exc}") from exc
        LOGGER.info("Removed artifacts for %s (%s)", session_id, target)
        return True

    # ------------------------------------------------------------------
    # Scheduled cleanup
    # ------------------------------------------------------------------
    def schedule_cleanup(self, session_id: str, delay: float) -> None:
        """Remove the session directory after ``delay`` seconds unless cancelled."""

        self.path_for(session_id)
        self._arm(session_id, max(0.0, delay), attempt=1)
        LOGGER.info("Scheduled cleanup of %s in %.1fs", session_id, delay)

    def cancel_cleanup(self, session_id: str) -> bool:
        with self._lock:
            timer = self._pending.pop(session_id, None)
        if timer is None:
            return False
        timer.cancel()
        LOGGER.debug("Cancelled pending cleanup for %s", session_id)
        return True

    def pending(self) -> Set[str]:
        with self._lock:
            return set(self._pending)

    def shutdown(self) -> None:
        """Cancel every pending deletion; artifacts stay on disk."""

        with self._lock:
            timers = list(self._pending.values())
            self._pending.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            LOGGER.info("Cancelled %d pending artifact cleanup(s)", len(timers))

    def _arm(self, session_id: str, delay: float, *, attempt: int) -> None:
        holder: Dict[str, threading.Timer] = {}

        def _fire() -> None:
            self._run_cleanup(session_id, holder["timer"], attempt)

        timer = self._timer_factory(delay, _fire)
        holder["timer"] = timer
        with self._lock:
            previous = self._pending.pop(session_id, None)
            self._pending[session_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def _run_cleanup(self, session_id: str, timer: threading.Timer, attempt: int) -> None:
        with self._lock:
            if self._pending.get(session_id) is not timer:
                # cancelled or superseded after the timer fired
                return
            del self._pending[session_id]
            try:
                self.remove_now(session_id)
            except ArtifactIOFailure as exc:
                if attempt == 1:
                    LOGGER.warning("Cleanup of %s failed (%s); retrying in %.1fs", session_id, exc, self._retry_delay)
                    self._arm(session_id, self._retry_delay, attempt=attempt + 1)
                else:
                    LOGGER.error("Abandoning cleanup of %s after %d attempts: %s", session_id, attempt, exc)


__all__ = ["ArtifactManager", "TimerFactory"]
