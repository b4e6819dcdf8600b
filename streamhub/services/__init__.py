"""Service layer: orchestrator, fan-out and ingest adapter."""
from __future__ import annotations

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
    CallbackSubscriber,
    Event,
    NotificationHub,
    Subscriber,
    Subscription,
    ViewerTracker,
    session_topic,
)
from .ingest_adapter import IngestEventAdapter
from .orchestrator import StreamOrchestrator

__all__ = [
    "CallbackSubscriber",
    "Command",
    "Event",
    "GLOBAL_TOPIC",
    "IngestEventAdapter",
    "NotificationHub",
    "PublishStarted",
    "PublishStopped",
    "StreamOrchestrator",
    "Subscriber",
    "Subscription",
    "ViewerTracker",
    "WorkerCompleted",
    "WorkerFailed",
    "WorkerStarted",
    "session_topic",
]
