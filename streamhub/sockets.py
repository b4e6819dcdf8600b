"""Socket.IO bridge between browser clients and the notification hub."""
from __future__ import annotations

import logging
from typing import Any, Optional

from flask import current_app, request
from flask_socketio import SocketIO

from .app.providers import socketio
from .services import GLOBAL_TOPIC, NotificationHub, StreamOrchestrator, Subscription
from .services.fanout import STREAM_INFO, Event

LOGGER = logging.getLogger(__name__)


class SocketSubscriber:
    """Deliver hub events to a single Socket.IO client."""

    def __init__(self, server: SocketIO, sid: str) -> None:
        self.key = sid
        self._server = server

    def deliver(self, event: Event) -> None:
        self._server.emit(event.name, event.payload, to=self.key)


def _hub() -> NotificationHub:
    hub: NotificationHub = current_app.extensions["notification_hub"]
    return hub


def _orchestrator() -> StreamOrchestrator:
    orchestrator: StreamOrchestrator = current_app.extensions["stream_orchestrator"]
    return orchestrator


def _current_subscriber() -> SocketSubscriber:
    return SocketSubscriber(socketio, request.sid)  # type: ignore[attr-defined]


def _stream_id(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        data = data.get("streamId") or data.get("id")
    if data is None:
        return None
    text = str(data).strip()
    return text or None


@socketio.on("connect")
def handle_socket_connect(auth: Any = None):
    subscriber = _current_subscriber()
    _hub().subscribe(GLOBAL_TOPIC, subscriber)
    LOGGER.info("Client connected: %s", subscriber.key)


@socketio.on("join-stream")
def handle_join_stream(data: Any):
    stream_id = _stream_id(data)
    if stream_id is None:
        LOGGER.debug("join-stream without a stream id from %s", request.sid)  # type: ignore[attr-defined]
        return
    subscriber = _current_subscriber()
    snapshot = _orchestrator().viewers.join(stream_id, subscriber)
    if snapshot is not None:
        subscriber.deliver(Event(STREAM_INFO, snapshot.to_info()))


@socketio.on("leave-stream")
def handle_leave_stream(data: Any):
    stream_id = _stream_id(data)
    if stream_id is None:
        return
    _orchestrator().viewers.leave(stream_id, _current_subscriber())


@socketio.on("disconnect")
def handle_socket_disconnect(reason: Any = None):
    subscriber = _current_subscriber()
    left = _orchestrator().viewers.leave_all(subscriber)
    _hub().unsubscribe(Subscription(topic=GLOBAL_TOPIC, key=subscriber.key))
    LOGGER.info("Client disconnected: %s (left %d stream(s))", subscriber.key, len(left))


__all__ = ["SocketSubscriber"]
