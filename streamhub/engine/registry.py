"""Concurrency-safe keyed store of active stream sessions."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, TypeVar

from ..exceptions import SessionAlreadyExists, SessionNotFound
from .session import SessionRecord, StreamSession

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class SessionRegistry:
    """Track active sessions keyed by stream id.

    A registry-wide lock guards the key map and each record carries its own
    re-entrant lock, so mutations of one session never wait on another.
    Records removed from the map are flagged ``detached``; a ``mutate`` that
    loses the race against ``remove`` raises :class:`SessionNotFound` instead
    of updating an orphaned record.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, SessionRecord] = {}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(
        self,
        session_id: str,
        *,
        display_name: Optional[str] = None,
        connection_id: Optional[str] = None,
        setup: Optional[Callable[[SessionRecord], None]] = None,
    ) -> StreamSession:
        """Insert a new session in ``starting`` state and return its snapshot.

        ``setup`` runs while the new record's lock is held, so no other caller
        observes the session before it completes. If ``setup`` raises, the
        record is discarded and the exception propagates.
        """

        record = SessionRecord(
            id=session_id,
            display_name=display_name or session_id,
            connection_id=connection_id,
        )
        with record.lock:
            with self._lock:
                if session_id in self._records:
                    raise SessionAlreadyExists(session_id)
                self._records[session_id] = record
            if setup is not None:
                try:
                    setup(record)
                except BaseException:
                    self._discard(record)
                    raise
            snapshot = record.snapshot()
        LOGGER.debug("Registered stream session %s", session_id)
        return snapshot

    def remove(self, session_id: str) -> StreamSession:
        """Remove a session and return its final snapshot."""

        record = self._lookup(session_id)
        with record.lock:
            with self._lock:
                if self._records.get(session_id) is not record:
                    raise SessionNotFound(session_id)
                del self._records[session_id]
            record.detached = True
            snapshot = record.snapshot()
        LOGGER.debug("Removed stream session %s", session_id)
        return snapshot

    def mutate(self, session_id: str, fn: Callable[[SessionRecord], T]) -> StreamSession:
        """Apply ``fn`` to the session under its lock; return the new snapshot."""

        snapshot, _ = self.mutate_with_result(session_id, fn)
        return snapshot

    def mutate_with_result(
        self,
        session_id: str,
        fn: Callable[[SessionRecord], T],
    ) -> tuple[StreamSession, T]:
        """Like :meth:`mutate` but also hand back the return value of ``fn``."""

        record = self._lookup(session_id)
        with record.lock:
            if record.detached:
                raise SessionNotFound(session_id)
            result = fn(record)
            return record.snapshot(), result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, session_id: str) -> StreamSession:
        record = self._lookup(session_id)
        with record.lock:
            if record.detached:
                raise SessionNotFound(session_id)
            return record.snapshot()

    def find(self, session_id: str) -> Optional[StreamSession]:
        try:
            return self.get(session_id)
        except SessionNotFound:
            return None

    def list_all(self) -> List[StreamSession]:
        """Return a point-in-time snapshot of every active session."""

        with self._lock:
            records = list(self._records.values())
        snapshots: List[StreamSession] = []
        for record in records:
            with record.lock:
                if record.detached:
                    continue
                snapshots.append(record.snapshot())
        snapshots.sort(key=lambda item: item.started_at)
        return snapshots

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _lookup(self, session_id: str) -> SessionRecord:
        with self._lock:
            record = self._records.get(session_id)
        if record is None:
            raise SessionNotFound(session_id)
        return record

    def _discard(self, record: SessionRecord) -> None:
        with self._lock:
            if self._records.get(record.id) is record:
                del self._records[record.id]
        record.detached = True


__all__ = ["SessionRegistry"]
