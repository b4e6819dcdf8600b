"""Service wiring for the streamhub Flask application."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from flask import Flask

from ..engine import (
    ArtifactManager,
    EncoderSettings,
    IngestBoundary,
    SessionRegistry,
    StopStrategy,
    TranscodeRunner,
    WorkerController,
)
from ..engine.artifacts import TimerFactory
from ..services import IngestEventAdapter, NotificationHub, StreamOrchestrator


@dataclass
class AppServices:
    """Container for instantiated application services."""

    registry: SessionRegistry
    hub: NotificationHub
    workers: WorkerController
    artifacts: ArtifactManager
    boundary: IngestBoundary
    orchestrator: StreamOrchestrator
    ingest_adapter: IngestEventAdapter


def init_services(
    app: Flask,
    *,
    runner: Optional[TranscodeRunner] = None,
    timer_factory: Optional[TimerFactory] = None,
) -> AppServices:
    """Instantiate application services and attach them to the Flask app."""

    config = app.config
    stop_strategy = StopStrategy(
        terminate_timeout=float(config.get("WORKER_TERMINATE_TIMEOUT", 5.0)),
        kill_timeout=float(config.get("WORKER_KILL_TIMEOUT", 2.0)),
    )

    registry = SessionRegistry()
    app.extensions["session_registry"] = registry

    hub = NotificationHub()
    app.extensions["notification_hub"] = hub

    workers = WorkerController(
        EncoderSettings.from_config(config),
        runner=runner,
        stop_strategy=stop_strategy,
    )
    app.extensions["worker_controller"] = workers

    artifacts = ArtifactManager(
        Path(config["STREAMHUB_HLS_ROOT"]),
        retry_delay=float(config.get("CLEANUP_RETRY_SECONDS", 5.0)),
        timer_factory=timer_factory,
    )
    app.extensions["artifact_manager"] = artifacts

    boundary = IngestBoundary(config.get("INGEST_SERVER_COMMAND"), stop_strategy=stop_strategy)
    app.extensions["ingest_boundary"] = boundary

    orchestrator = StreamOrchestrator(
        registry=registry,
        workers=workers,
        artifacts=artifacts,
        hub=hub,
        boundary=boundary,
        grace_seconds=float(config.get("ARTIFACT_GRACE_SECONDS", 30.0)),
        duplicate_policy=config.get("DUPLICATE_PUBLISH_POLICY", "reject"),
        shutdown_timeout=stop_strategy.terminate_timeout,
    )
    app.extensions["stream_orchestrator"] = orchestrator

    ingest_adapter = IngestEventAdapter(orchestrator)
    app.extensions["ingest_adapter"] = ingest_adapter

    return AppServices(
        registry=registry,
        hub=hub,
        workers=workers,
        artifacts=artifacts,
        boundary=boundary,
        orchestrator=orchestrator,
        ingest_adapter=ingest_adapter,
    )


__all__ = ["AppServices", "init_services"]
