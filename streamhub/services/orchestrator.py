"""Stream session orchestrator: the single entry point for session mutations."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from ..config import DUPLICATE_POLICIES
from ..engine import (
    ArtifactManager,
    IngestBoundary,
    SessionRecord,
    SessionRegistry,
    SessionState,
    StreamSession,
    WorkerCallbacks,
    WorkerController,
    WorkerHandle,
)
from ..exceptions import SessionAlreadyExists, SessionNotFound, StreamHubError
from .commands import (
    Command,
    PublishStarted,
    PublishStopped,
    WorkerCompleted,
    WorkerFailed,
    WorkerStarted,
)
from .fanout import (
    GLOBAL_TOPIC,
    STREAM_CREATED,
    STREAM_ENDED,
    STREAM_ERROR,
    STREAM_REMOVED,
    STREAM_STARTED,
    Event,
    NotificationHub,
    ViewerTracker,
    session_topic,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_GRACE_SECONDS = 30.0


class StreamOrchestrator:
    """Apply ingest and worker commands to the session registry.

    Every command runs inside the affected session's lock (via
    ``SessionRegistry.create``/``mutate``), and the resulting events are
    published before the lock is released so subscribers see them in the
    same order as the state changes.
    """

    def __init__(
        self,
        *,
        registry: SessionRegistry,
        workers: WorkerController,
        artifacts: ArtifactManager,
        hub: NotificationHub,
        boundary: Optional[IngestBoundary] = None,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        duplicate_policy: str = "reject",
        shutdown_timeout: float = 5.0,
    ) -> None:
        if duplicate_policy not in DUPLICATE_POLICIES:
            raise ValueError(f"Unknown duplicate publish policy {duplicate_policy!r}")
        self.registry = registry
        self.workers = workers
        self.artifacts = artifacts
        self.hub = hub
        self.viewers = ViewerTracker(registry, hub)
        self.boundary = boundary or IngestBoundary()
        self._grace_seconds = max(0.0, grace_seconds)
        self._duplicate_policy = duplicate_policy
        self._shutdown_timeout = max(0.0, shutdown_timeout)
        self._handlers: Dict[type, Callable[[Any], Optional[StreamSession]]] = {
            PublishStarted: self._publish_started,
            PublishStopped: self._publish_stopped,
            WorkerStarted: self._worker_started,
            WorkerFailed: self._worker_failed,
            WorkerCompleted: self._worker_completed,
        }

    @property
    def grace_seconds(self) -> float:
        return self._grace_seconds

    @property
    def duplicate_policy(self) -> str:
        return self._duplicate_policy

    # ------------------------------------------------------------------
    # Command dispatch
    # ------------------------------------------------------------------
    def dispatch(self, command: Command) -> Optional[StreamSession]:
        """Apply ``command`` and return the affected session snapshot, if any."""

        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unsupported orchestrator command {command!r}")
        return handler(command)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def list_sessions(self) -> list[StreamSession]:
        return self.registry.list_all()

    def get_session(self, stream_id: str) -> StreamSession:
        return self.registry.get(stream_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        self.boundary.start()

    def shutdown(self) -> None:
        """Stop the ingest server, signal every worker, and drop pending timers."""

        LOGGER.info("Shutting down stream orchestrator (%d active session(s))", len(self.registry))
        self.boundary.stop()
        signalled = self.workers.stop_all()
        if signalled:
            LOGGER.info("Sent termination to %d worker(s): %s", len(signalled), ", ".join(signalled))
            if not self.workers.wait_all(self._shutdown_timeout):
                LOGGER.warning("Some workers were still running after %.1fs", self._shutdown_timeout)
        self.artifacts.shutdown()

    # ------------------------------------------------------------------
    # Publish commands
    # ------------------------------------------------------------------
    def _publish_started(self, command: PublishStarted) -> StreamSession:
        stream_id = command.stream_id
        if stream_id in self.registry:
            if self._duplicate_policy == "reject":
                LOGGER.warning(
                    "Rejecting publish for %s from %s: stream already active",
                    stream_id,
                    command.connection_id,
                )
                raise SessionAlreadyExists(stream_id)
            LOGGER.warning("Replacing active stream %s with publish from %s", stream_id, command.connection_id)
            try:
                self._teardown(stream_id, connection_id=None)
            except SessionNotFound:
                pass

        def _setup(record: SessionRecord) -> None:
            output_dir = self.artifacts.prepare(stream_id)
            try:
                handle = self.workers.start(stream_id, output_dir, self._worker_callbacks(stream_id))
            except StreamHubError:
                LOGGER.error("Worker launch failed for %s; discarding its output directory", stream_id)
                self.artifacts.schedule_cleanup(stream_id, self._grace_seconds)
                raise
            record.attach_worker(handle)
            self.hub.publish(GLOBAL_TOPIC, Event(STREAM_CREATED, record.snapshot().to_info()))

        snapshot = self.registry.create(
            stream_id,
            display_name=command.display_name,
            connection_id=command.connection_id,
            setup=_setup,
        )
        LOGGER.info("Stream created: %s (%s)", snapshot.display_name, stream_id)
        return snapshot

    def _publish_stopped(self, command: PublishStopped) -> Optional[StreamSession]:
        try:
            return self._teardown(command.stream_id, connection_id=command.connection_id)
        except SessionNotFound:
            LOGGER.info("Publish stopped for unknown stream %s", command.stream_id)
            return None

    def _teardown(self, stream_id: str, *, connection_id: Optional[str]) -> Optional[StreamSession]:
        def _end(record: SessionRecord) -> bool:
            if connection_id and record.connection_id and record.connection_id != connection_id:
                LOGGER.warning(
                    "Ignoring publish stop for %s from %s; stream is owned by %s",
                    stream_id,
                    connection_id,
                    record.connection_id,
                )
                return False
            self.workers.stop(stream_id)
            if record.state.can_transition_to(SessionState.ENDED):
                record.transition(SessionState.ENDED)
                self._broadcast(record, Event(STREAM_ENDED, self._identity(record)))
            self.artifacts.schedule_cleanup(stream_id, self._grace_seconds)
            self.registry.remove(stream_id)
            return True

        snapshot, removed = self.registry.mutate_with_result(stream_id, _end)
        if not removed:
            return None
        self.hub.broadcast((session_topic(stream_id), GLOBAL_TOPIC), Event(STREAM_REMOVED, {"id": stream_id}))
        LOGGER.info("Stream removed: %s", stream_id)
        return snapshot

    # ------------------------------------------------------------------
    # Worker commands
    # ------------------------------------------------------------------
    def _worker_started(self, command: WorkerStarted) -> Optional[StreamSession]:
        def _started(record: SessionRecord) -> None:
            if not self._accepts(record, command.worker_id, SessionState.STREAMING):
                return
            record.transition(SessionState.STREAMING)
            payload = self._identity(record)
            payload["hlsUrl"] = record.snapshot().manifest_url
            self._broadcast(record, Event(STREAM_STARTED, payload))

        return self._apply(command.stream_id, _started)

    def _worker_failed(self, command: WorkerFailed) -> Optional[StreamSession]:
        def _failed(record: SessionRecord) -> None:
            if not self._accepts(record, command.worker_id, SessionState.ERROR):
                return
            record.fail(command.reason)
            payload = self._identity(record)
            payload["error"] = command.reason
            self._broadcast(record, Event(STREAM_ERROR, payload))

        snapshot = self._apply(command.stream_id, _failed)
        if snapshot is not None and snapshot.state is SessionState.ERROR:
            LOGGER.error("Stream %s failed: %s", command.stream_id, command.reason)
        return snapshot

    def _worker_completed(self, command: WorkerCompleted) -> Optional[StreamSession]:
        def _completed(record: SessionRecord) -> None:
            if not self._accepts(record, command.worker_id, SessionState.ENDED):
                return
            record.transition(SessionState.ENDED)
            self._broadcast(record, Event(STREAM_ENDED, self._identity(record)))

        return self._apply(command.stream_id, _completed)

    def _worker_callbacks(self, stream_id: str) -> WorkerCallbacks:
        def _on_started(handle: WorkerHandle) -> None:
            self.dispatch(WorkerStarted(stream_id, handle.worker_id))

        def _on_failed(handle: WorkerHandle, reason: str) -> None:
            self.dispatch(WorkerFailed(stream_id, handle.worker_id, reason))

        def _on_completed(handle: WorkerHandle) -> None:
            self.dispatch(WorkerCompleted(stream_id, handle.worker_id))

        return WorkerCallbacks(on_started=_on_started, on_failed=_on_failed, on_completed=_on_completed)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _apply(self, stream_id: str, fn: Callable[[SessionRecord], None]) -> Optional[StreamSession]:
        try:
            return self.registry.mutate(stream_id, fn)
        except SessionNotFound:
            LOGGER.debug("Worker event for %s ignored: stream no longer active", stream_id)
            return None

    @staticmethod
    def _accepts(record: SessionRecord, worker_id: str, target: SessionState) -> bool:
        worker = record.worker
        if worker is None or worker.worker_id != worker_id:
            LOGGER.debug("Dropping stale worker event for %s (worker=%s)", record.id, worker_id[:8])
            return False
        if not record.state.can_transition_to(target):
            LOGGER.debug("Stream %s already %s; ignoring %s", record.id, record.state.value, target.value)
            return False
        return True

    def _broadcast(self, record: SessionRecord, event: Event) -> None:
        self.hub.broadcast((session_topic(record.id), GLOBAL_TOPIC), event)

    @staticmethod
    def _identity(record: SessionRecord) -> Dict[str, Any]:
        return {"id": record.id, "name": record.display_name}


__all__ = ["DEFAULT_GRACE_SECONDS", "StreamOrchestrator"]
