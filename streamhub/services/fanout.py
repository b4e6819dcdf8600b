"""In-memory topic fan-out for session events and viewer counts."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

from ..engine import SessionRecord, SessionRegistry, StreamSession
from ..exceptions import SessionNotFound

LOGGER = logging.getLogger(__name__)

GLOBAL_TOPIC = "streams"
SESSION_TOPIC_PREFIX = "stream:"

STREAM_CREATED = "stream-created"
STREAM_STARTED = "stream-started"
STREAM_ERROR = "stream-error"
STREAM_ENDED = "stream-ended"
STREAM_REMOVED = "stream-removed"
STREAM_INFO = "stream-info"
VIEWER_COUNT = "viewer-count"


def session_topic(stream_id: str) -> str:
    return f"{SESSION_TOPIC_PREFIX}{stream_id}"


@dataclass(frozen=True)
class Event:
    """A named notification and its JSON-serialisable payload."""

    name: str
    payload: Any


class Subscriber(Protocol):
    key: str

    def deliver(self, event: Event) -> None:
        ...


@dataclass(frozen=True)
class Subscription:
    topic: str
    key: str


class CallbackSubscriber:
    """Subscriber that hands every event to a plain callable."""

    def __init__(self, key: str, callback) -> None:
        self.key = key
        self._callback = callback

    def deliver(self, event: Event) -> None:
        self._callback(event)


class NotificationHub:
    """Topic-based publish/subscribe without replay.

    Each topic has its own delivery lock, so events published on one topic
    reach every subscriber in publish order. Subscribers are keyed; one
    subscriber present on several topics of a ``broadcast`` receives the
    event once.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._topics: Dict[str, Dict[str, Subscriber]] = {}
        self._delivery_locks: Dict[str, threading.RLock] = {}

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def subscribe(self, topic: str, subscriber: Subscriber) -> Subscription:
        with self._lock:
            self._topics.setdefault(topic, {})[subscriber.key] = subscriber
        return Subscription(topic=topic, key=subscriber.key)

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            members = self._topics.get(subscription.topic)
            if not members or subscription.key not in members:
                return False
            del members[subscription.key]
            if not members:
                del self._topics[subscription.topic]
            return True

    def is_subscribed(self, topic: str, key: str) -> bool:
        with self._lock:
            return key in self._topics.get(topic, {})

    def subscribers(self, topic: str) -> List[Subscriber]:
        with self._lock:
            return list(self._topics.get(topic, {}).values())

    def topics_for(self, key: str) -> List[str]:
        with self._lock:
            return [topic for topic, members in self._topics.items() if key in members]

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    def publish(self, topic: str, event: Event) -> int:
        """Deliver ``event`` to every current subscriber of ``topic``."""

        return self.broadcast((topic,), event)

    def broadcast(self, topics: Iterable[str], event: Event) -> int:
        """Deliver ``event`` once to each distinct subscriber of ``topics``."""

        ordered = sorted(set(topics))
        locks = [self._delivery_lock(topic) for topic in ordered]
        for lock in locks:
            lock.acquire()
        try:
            with self._lock:
                recipients: Dict[str, Subscriber] = {}
                for topic in ordered:
                    for key, subscriber in self._topics.get(topic, {}).items():
                        recipients.setdefault(key, subscriber)
            delivered = 0
            for subscriber in recipients.values():
                try:
                    subscriber.deliver(event)
                    delivered += 1
                except Exception:
                    LOGGER.exception("Delivery of %s to %s failed", event.name, subscriber.key)
            return delivered
        finally:
            for lock in reversed(locks):
                lock.release()

    def _delivery_lock(self, topic: str) -> threading.RLock:
        with self._lock:
            lock = self._delivery_locks.get(topic)
            if lock is None:
                lock = threading.RLock()
                self._delivery_locks[topic] = lock
            return lock


class ViewerTracker:
    """The only component that changes ``viewer_count``.

    The count is updated and the ``viewer-count`` event published while the
    session lock is held, so published totals follow the order the changes
    were made in.
    """

    def __init__(self, registry: SessionRegistry, hub: NotificationHub) -> None:
        self._registry = registry
        self._hub = hub

    def join(self, stream_id: str, subscriber: Subscriber) -> Optional[StreamSession]:
        """Subscribe to the stream topic and count the viewer once per key.

        Returns ``None`` for unknown streams; the subscription is still kept so
        the socket hears about the stream once it starts. A repeated join from
        the same key returns the snapshot without counting again.
        """

        topic = session_topic(stream_id)
        self._hub.subscribe(topic, subscriber)

        def _join(record: SessionRecord) -> None:
            count = record.add_viewer(subscriber.key)
            if count is not None:
                self._hub.publish(topic, Event(VIEWER_COUNT, count))

        try:
            snapshot = self._registry.mutate(stream_id, _join)
        except SessionNotFound:
            LOGGER.debug("Viewer %s joined unknown stream %s", subscriber.key, stream_id)
            return None
        LOGGER.info("Viewer %s joined %s (viewers=%d)", subscriber.key, stream_id, snapshot.viewer_count)
        return snapshot

    def leave(self, stream_id: str, subscriber: Subscriber) -> Optional[StreamSession]:
        """Unsubscribe and decrement, never below zero."""

        return self._release(stream_id, subscriber, explicit=True)

    def leave_all(self, subscriber: Subscriber) -> List[str]:
        """Leave every stream the subscriber joined (used on disconnect).

        Only streams that counted this subscriber are decremented.
        """

        left: List[str] = []
        for topic in self._hub.topics_for(subscriber.key):
            if not topic.startswith(SESSION_TOPIC_PREFIX):
                continue
            stream_id = topic[len(SESSION_TOPIC_PREFIX):]
            self._release(stream_id, subscriber, explicit=False)
            left.append(stream_id)
        return left

    def _release(self, stream_id: str, subscriber: Subscriber, *, explicit: bool) -> Optional[StreamSession]:
        topic = session_topic(stream_id)
        self._hub.unsubscribe(Subscription(topic=topic, key=subscriber.key))

        def _leave(record: SessionRecord) -> None:
            count = record.remove_viewer(subscriber.key)
            if count is None:
                if not explicit:
                    return
                # an unmatched leave-stream still reports the (floored) total
                count = record.viewer_count
            self._hub.publish(topic, Event(VIEWER_COUNT, count))

        try:
            snapshot = self._registry.mutate(stream_id, _leave)
        except SessionNotFound:
            return None
        LOGGER.info("Viewer %s left %s (viewers=%d)", subscriber.key, stream_id, snapshot.viewer_count)
        return snapshot


__all__ = [
    "CallbackSubscriber",
    "Event",
    "GLOBAL_TOPIC",
    "NotificationHub",
    "STREAM_CREATED",
    "STREAM_ENDED",
    "STREAM_ERROR",
    "STREAM_INFO",
    "STREAM_REMOVED",
    "STREAM_STARTED",
    "Subscriber",
    "Subscription",
    "ViewerTracker",
    "VIEWER_COUNT",
    "session_topic",
]
