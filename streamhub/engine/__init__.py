"""Engine layer: session registry, workers, artifacts and the ingest server."""
from __future__ import annotations

from .artifacts import ArtifactManager
from .boundary import IngestBoundary
from .encoder import EncoderSettings, HlsCommandBuilder
from .registry import SessionRegistry
from .runner import TranscodeRunner, WorkerCallbacks
from .session import SessionRecord, SessionState, StreamSession, WorkerHandle, WorkerState
from .stop_strategy import StopResult, StopStrategy
from .worker import WorkerController

__all__ = [
    "ArtifactManager",
    "EncoderSettings",
    "HlsCommandBuilder",
    "IngestBoundary",
    "SessionRecord",
    "SessionRegistry",
    "SessionState",
    "StopResult",
    "StopStrategy",
    "StreamSession",
    "TranscodeRunner",
    "WorkerCallbacks",
    "WorkerController",
    "WorkerHandle",
    "WorkerState",
]
