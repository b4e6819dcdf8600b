"""Inbound messages consumed by the stream orchestrator."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union


@dataclass(frozen=True)
class PublishStarted:
    stream_id: str
    connection_id: Optional[str] = None
    display_name: Optional[str] = None
    stream_path: Optional[str] = None
    meta: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PublishStopped:
    stream_id: str
    connection_id: Optional[str] = None
    stream_path: Optional[str] = None


@dataclass(frozen=True)
class WorkerStarted:
    stream_id: str
    worker_id: str


@dataclass(frozen=True)
class WorkerFailed:
    stream_id: str
    worker_id: str
    reason: str


@dataclass(frozen=True)
class WorkerCompleted:
    stream_id: str
    worker_id: str


Command = Union[PublishStarted, PublishStopped, WorkerStarted, WorkerFailed, WorkerCompleted]


__all__ = [
    "Command",
    "PublishStarted",
    "PublishStopped",
    "WorkerCompleted",
    "WorkerFailed",
    "WorkerStarted",
]
