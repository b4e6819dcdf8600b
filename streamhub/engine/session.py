"""Data structures that describe stream sessions and their workers."""
from __future__ import annotations

import subprocess
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Set, Tuple

from ..exceptions import InvalidStateTransition
from ..utils.streams import manifest_url as build_manifest_url


class SessionState(str, Enum):
    """Lifecycle states of a stream session."""

    STARTING = "starting"
    STREAMING = "streaming"
    ERROR = "error"
    ENDED = "ended"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.ERROR, SessionState.ENDED)

    @property
    def has_worker(self) -> bool:
        return self in (SessionState.STARTING, SessionState.STREAMING)

    def can_transition_to(self, target: "SessionState") -> bool:
        return target in _SESSION_EDGES[self]


_SESSION_EDGES: Mapping[SessionState, FrozenSet[SessionState]] = {
    SessionState.STARTING: frozenset({SessionState.STREAMING, SessionState.ERROR, SessionState.ENDED}),
    SessionState.STREAMING: frozenset({SessionState.ERROR, SessionState.ENDED}),
    SessionState.ERROR: frozenset(),
    SessionState.ENDED: frozenset(),
}


class WorkerState(str, Enum):
    """Lifecycle of a single FFmpeg worker process."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPING = "stopping"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def finished(self) -> bool:
        return self in (WorkerState.COMPLETED, WorkerState.FAILED)


_WORKER_EDGES: Mapping[WorkerState, FrozenSet[WorkerState]] = {
    WorkerState.PENDING: frozenset({WorkerState.RUNNING, WorkerState.STOPPING, WorkerState.FAILED}),
    WorkerState.RUNNING: frozenset({WorkerState.STOPPING, WorkerState.COMPLETED, WorkerState.FAILED}),
    WorkerState.STOPPING: frozenset({WorkerState.COMPLETED}),
    WorkerState.COMPLETED: frozenset(),
    WorkerState.FAILED: frozenset(),
}


class WorkerHandle:
    """Opaque reference to a launched transcode worker.

    The handle keeps its own small state machine so the session record only
    needs to know whether a worker is attached.
    """

    def __init__(self, session_id: str, command: Tuple[str, ...]) -> None:
        self.worker_id = uuid.uuid4().hex
        self.session_id = session_id
        self.command = command
        self.pid: Optional[int] = None
        self.returncode: Optional[int] = None
        self.error: Optional[str] = None
        self.process: Optional[subprocess.Popen] = None
        self._state = WorkerState.PENDING
        self._lock = threading.Lock()

    @property
    def state(self) -> WorkerState:
        with self._lock:
            return self._state

    @property
    def stop_requested(self) -> bool:
        with self._lock:
            return self._state is WorkerState.STOPPING

    def advance(self, target: WorkerState) -> bool:
        """Move to ``target`` if the edge is allowed; return whether it moved."""

        with self._lock:
            if target not in _WORKER_EDGES[self._state]:
                return False
            self._state = target
            return True

    def attach_process(self, process: subprocess.Popen) -> bool:
        """Record the spawned process; return True if a stop was requested meanwhile."""

        with self._lock:
            self.process = process
            self.pid = process.pid
            return self._state is WorkerState.STOPPING

    def request_stop(self) -> tuple[bool, Optional[subprocess.Popen]]:
        """Flag the worker as stopping and hand back its process, if spawned."""

        with self._lock:
            if self._state not in (WorkerState.PENDING, WorkerState.RUNNING):
                return False, None
            self._state = WorkerState.STOPPING
            return True, self.process

    def __repr__(self) -> str:
        return f"WorkerHandle(session={self.session_id!r}, worker={self.worker_id[:8]}, pid={self.pid}, state={self.state.value})"


@dataclass(frozen=True)
class StreamSession:
    """Immutable snapshot of a stream session."""

    id: str
    display_name: str
    state: SessionState
    viewer_count: int
    started_at: datetime
    worker_id: Optional[str] = None
    worker_pid: Optional[int] = None
    last_error: Optional[str] = None
    connection_id: Optional[str] = None

    @property
    def manifest_url(self) -> str:
        return build_manifest_url(self.id)

    def to_summary(self) -> Dict[str, Any]:
        """Render the listing payload used by ``/api/streams``."""

        return {
            "id": self.id,
            "name": self.display_name,
            "viewers": self.viewer_count,
            "status": self.state.value,
            "startTime": self.started_at.isoformat(),
        }

    def to_detail(self) -> Dict[str, Any]:
        payload = self.to_summary()
        payload["hlsUrl"] = self.manifest_url
        if self.last_error:
            payload["error"] = self.last_error
        return payload

    def to_info(self) -> Dict[str, Any]:
        """Payload sent to a socket right after it joins the stream topic."""

        return {
            "id": self.id,
            "name": self.display_name,
            "status": self.state.value,
            "hlsUrl": self.manifest_url,
        }


@dataclass
class SessionRecord:
    """Mutable registry entry; only touched while holding ``lock``."""

    id: str
    display_name: str
    connection_id: Optional[str] = None
    state: SessionState = SessionState.STARTING
    viewer_count: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    worker: Optional[WorkerHandle] = None
    last_error: Optional[str] = None
    detached: bool = False
    viewers: Set[str] = field(default_factory=set, repr=False, compare=False)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def transition(self, target: SessionState) -> None:
        if not self.state.can_transition_to(target):
            raise InvalidStateTransition(self.id, self.state.value, target.value)
        self.state = target
        if not target.has_worker:
            self.worker = None

    def fail(self, reason: str) -> None:
        self.transition(SessionState.ERROR)
        self.last_error = reason

    def attach_worker(self, worker: WorkerHandle) -> None:
        if not self.state.has_worker:
            raise InvalidStateTransition(self.id, self.state.value, "worker attached")
        self.worker = worker

    def add_viewer(self, key: Optional[str] = None) -> Optional[int]:
        """Count a viewer; returns ``None`` when ``key`` is already counted."""

        if key is not None:
            if key in self.viewers:
                return None
            self.viewers.add(key)
        self.viewer_count += 1
        return self.viewer_count

    def remove_viewer(self, key: Optional[str] = None) -> Optional[int]:
        """Uncount a viewer, floored at zero.

        With a ``key`` only a counted viewer is released; ``None`` is returned
        for keys that were never counted.
        """

        if key is not None:
            if key not in self.viewers:
                return None
            self.viewers.discard(key)
        if self.viewer_count > 0:
            self.viewer_count -= 1
        return self.viewer_count

    def snapshot(self) -> StreamSession:
        worker = self.worker
        return StreamSession(
            id=self.id,
            display_name=self.display_name,
            state=self.state,
            viewer_count=self.viewer_count,
            started_at=self.started_at,
            worker_id=worker.worker_id if worker else None,
            worker_pid=worker.pid if worker else None,
            last_error=self.last_error,
            connection_id=self.connection_id,
        )


__all__ = [
    "SessionRecord",
    "SessionState",
    "StreamSession",
    "WorkerHandle",
    "WorkerState",
]
