"""Translate ingest server callbacks into orchestrator commands."""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Mapping, Optional

from ..exceptions import StreamHubError
from ..utils import stream_id_from_path
from .commands import PublishStarted, PublishStopped
from .orchestrator import StreamOrchestrator

LOGGER = logging.getLogger(__name__)

ConnectionPolicy = Callable[[str, Mapping[str, Any]], bool]
PublishPolicy = Callable[[str, str, Mapping[str, Any]], bool]


def accept_all(*_args: Any) -> bool:
    return True


def _format_meta(meta: Mapping[str, Any]) -> str:
    try:
        return json.dumps(dict(meta), sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(meta)


class IngestEventAdapter:
    """Boundary-facing half of the orchestrator.

    The ingest server calls these methods from its own threads (HTTP hook
    requests in practice). Return values of the ``*_attempt`` methods tell
    the server whether to accept the connection or publish.
    """

    def __init__(
        self,
        orchestrator: StreamOrchestrator,
        *,
        connection_policy: Optional[ConnectionPolicy] = None,
        publish_policy: Optional[PublishPolicy] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._connection_policy = connection_policy or accept_all
        self._publish_policy = publish_policy or accept_all
        self._lock = threading.Lock()
        self._open_connections = 0
        self._closed_connections = 0

    @property
    def orchestrator(self) -> StreamOrchestrator:
        return self._orchestrator

    def connection_counts(self) -> dict[str, int]:
        with self._lock:
            return {"open": self._open_connections, "closed": self._closed_connections}

    def on_connect_attempt(self, conn_id: str, meta: Mapping[str, Any]) -> bool:
        LOGGER.info("[IngestEvent on connect] id=%s args=%s", conn_id, _format_meta(meta))
        accepted = bool(self._connection_policy(conn_id, meta))
        if accepted:
            with self._lock:
                self._open_connections += 1
        else:
            LOGGER.warning("Connection %s rejected by policy", conn_id)
        return accepted

    def on_publish_attempt(self, conn_id: str, path: str, meta: Mapping[str, Any]) -> bool:
        LOGGER.info(
            "[IngestEvent on publish] id=%s StreamPath=%s args=%s",
            conn_id,
            path,
            _format_meta(meta),
        )
        stream_id = stream_id_from_path(path)
        if stream_id is None:
            LOGGER.warning("Rejecting publish from %s: no stream name in %r", conn_id, path)
            return False
        if not self._publish_policy(conn_id, path, meta):
            LOGGER.warning("Publish of %s from %s rejected by policy", stream_id, conn_id)
            return False
        display_name = meta.get("display_name") or meta.get("title")
        command = PublishStarted(
            stream_id=stream_id,
            connection_id=conn_id,
            display_name=str(display_name) if display_name else None,
            stream_path=path,
            meta=dict(meta),
        )
        try:
            self._orchestrator.dispatch(command)
        except StreamHubError as exc:
            LOGGER.warning("Publish of %s from %s refused: %s", stream_id, conn_id, exc)
            return False
        return True

    def on_publish_stop(self, conn_id: str, path: str, meta: Mapping[str, Any]) -> None:
        LOGGER.info(
            "[IngestEvent on publish_done] id=%s StreamPath=%s args=%s",
            conn_id,
            path,
            _format_meta(meta),
        )
        stream_id = stream_id_from_path(path)
        if stream_id is None:
            LOGGER.debug("Ignoring publish stop from %s without stream name (%r)", conn_id, path)
            return
        self._orchestrator.dispatch(PublishStopped(stream_id=stream_id, connection_id=conn_id, stream_path=path))

    def on_connect_closed(self, conn_id: str, meta: Mapping[str, Any]) -> None:
        LOGGER.info("[IngestEvent on done] id=%s args=%s", conn_id, _format_meta(meta))
        with self._lock:
            self._open_connections = max(0, self._open_connections - 1)
            self._closed_connections += 1


__all__ = ["ConnectionPolicy", "IngestEventAdapter", "PublishPolicy", "accept_all"]
