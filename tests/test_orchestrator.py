from __future__ import annotations

from pathlib import Path

import pytest

from streamhub.engine import (
    ArtifactManager,
    EncoderSettings,
    IngestBoundary,
    SessionRegistry,
    SessionState,
    WorkerController,
    WorkerState,
)
from streamhub.exceptions import ArtifactIOFailure, SessionAlreadyExists, WorkerFailure
from streamhub.services import (
    GLOBAL_TOPIC,
    NotificationHub,
    PublishStarted,
    PublishStopped,
    StreamOrchestrator,
    WorkerCompleted,
    session_topic,
)


@pytest.fixture()
def lobby(orchestrator, subscriber):
    watcher = subscriber("lobby")
    orchestrator.hub.subscribe(GLOBAL_TOPIC, watcher)
    return watcher


def test_publish_start_creates_starting_session(orchestrator, hls_root: Path, lobby) -> None:
    session = orchestrator.dispatch(PublishStarted("alpha", connection_id="conn-1"))

    assert session.state is SessionState.STARTING
    assert [s.id for s in orchestrator.list_sessions()] == ["alpha"]
    assert (hls_root / "alpha").is_dir()
    assert session.worker_id is not None
    assert lobby.named("stream-created") == [
        {"id": "alpha", "name": "alpha", "status": "starting", "hlsUrl": "/hls/alpha/index.m3u8"}
    ]


def test_worker_start_moves_session_to_streaming(orchestrator, fake_runner, lobby) -> None:
    orchestrator.dispatch(PublishStarted("alpha"))

    fake_runner.start("alpha")

    assert orchestrator.get_session("alpha").state is SessionState.STREAMING
    [started] = lobby.named("stream-started")
    assert started["id"] == "alpha"
    assert started["hlsUrl"] == "/hls/alpha/index.m3u8"


def test_viewer_counts_for_two_viewers(orchestrator, fake_runner, subscriber) -> None:
    orchestrator.dispatch(PublishStarted("alpha"))
    fake_runner.start("alpha")
    first, second = subscriber("first"), subscriber("second")

    orchestrator.viewers.join("alpha", first)
    orchestrator.viewers.join("alpha", second)
    orchestrator.viewers.leave("alpha", second)

    assert first.named("viewer-count") == [1, 2, 1]
    assert orchestrator.get_session("alpha").viewer_count == 1


def test_worker_failure_moves_session_to_error(orchestrator, fake_runner, lobby, subscriber) -> None:
    orchestrator.dispatch(PublishStarted("alpha"))
    fake_runner.start("alpha")
    viewer = subscriber("viewer")
    orchestrator.viewers.join("alpha", viewer)

    fake_runner.fail("alpha", "decode error")

    session = orchestrator.get_session("alpha")
    assert session.state is SessionState.ERROR
    assert session.last_error == "decode error"
    assert session.worker_id is None
    assert orchestrator.workers.active("alpha") is None
    assert lobby.named("stream-error") == [{"id": "alpha", "name": "alpha", "error": "decode error"}]
    assert viewer.named("stream-error") == [{"id": "alpha", "name": "alpha", "error": "decode error"}]


def test_errored_session_stays_listed_until_publish_stop(orchestrator, fake_runner) -> None:
    orchestrator.dispatch(PublishStarted("alpha"))
    fake_runner.fail("alpha", "decode error")

    assert [s.id for s in orchestrator.list_sessions()] == ["alpha"]

    orchestrator.dispatch(PublishStopped("alpha"))

    assert orchestrator.list_sessions() == []


def test_worker_completion_ends_session(orchestrator, fake_runner, lobby) -> None:
    orchestrator.dispatch(PublishStarted("alpha"))
    fake_runner.start("alpha")

    fake_runner.complete("alpha")

    assert orchestrator.get_session("alpha").state is SessionState.ENDED
    assert lobby.named("stream-ended") == [{"id": "alpha", "name": "alpha"}]


def test_publish_stop_removes_session_and_delays_cleanup(orchestrator, fake_runner, timers, hls_root: Path, lobby) -> None:
    orchestrator.dispatch(PublishStarted("alpha"))
    handle = fake_runner.start("alpha")

    final = orchestrator.dispatch(PublishStopped("alpha"))

    assert final.state is SessionState.ENDED
    assert "alpha" not in orchestrator.registry
    assert handle.state is WorkerState.STOPPING
    assert (hls_root / "alpha").is_dir()
    assert lobby.named("stream-ended") == [{"id": "alpha", "name": "alpha"}]
    assert lobby.named("stream-removed") == [{"id": "alpha"}]

    [timer] = timers.live
    assert timer.delay == 30.0
    timer.fire()
    assert not (hls_root / "alpha").exists()


def test_late_worker_events_after_removal_are_ignored(orchestrator, fake_runner, lobby) -> None:
    orchestrator.dispatch(PublishStarted("alpha"))
    fake_runner.start("alpha")
    orchestrator.dispatch(PublishStopped("alpha"))

    fake_runner.complete("alpha")

    assert lobby.named("stream-ended") == [{"id": "alpha", "name": "alpha"}]
    assert orchestrator.workers.active("alpha") is None


def test_publish_stop_for_unknown_stream_is_noop(orchestrator) -> None:
    assert orchestrator.dispatch(PublishStopped("ghost")) is None


def test_publish_stop_from_other_connection_is_ignored(orchestrator) -> None:
    orchestrator.dispatch(PublishStarted("alpha", connection_id="owner"))

    assert orchestrator.dispatch(PublishStopped("alpha", connection_id="intruder")) is None
    assert "alpha" in orchestrator.registry


def test_duplicate_publish_is_rejected_by_default(orchestrator, fake_runner) -> None:
    orchestrator.dispatch(PublishStarted("alpha", connection_id="first"))

    with pytest.raises(SessionAlreadyExists):
        orchestrator.dispatch(PublishStarted("alpha", connection_id="second"))

    assert orchestrator.get_session("alpha").connection_id == "first"
    assert len(fake_runner.launches) == 1


def test_replace_policy_stops_old_worker(fake_runner, timers, hls_root: Path, subscriber) -> None:
    orchestrator = StreamOrchestrator(
        registry=SessionRegistry(),
        workers=WorkerController(runner=fake_runner),
        artifacts=ArtifactManager(hls_root, timer_factory=timers),
        hub=NotificationHub(),
        duplicate_policy="replace",
    )
    lobby = subscriber("lobby")
    orchestrator.hub.subscribe(GLOBAL_TOPIC, lobby)
    orchestrator.dispatch(PublishStarted("alpha", connection_id="first"))
    old_handle = fake_runner.start("alpha")

    replacement = orchestrator.dispatch(PublishStarted("alpha", connection_id="second"))

    assert old_handle.state is WorkerState.STOPPING
    assert replacement.connection_id == "second"
    assert replacement.state is SessionState.STARTING
    assert lobby.named("stream-removed") == [{"id": "alpha"}]
    assert timers.live == []
    assert (hls_root / "alpha").is_dir()

    old_callbacks = fake_runner.launches[0][1]
    old_handle.advance(WorkerState.COMPLETED)
    old_callbacks.on_completed(old_handle)
    assert orchestrator.get_session("alpha").state is SessionState.STARTING


def test_stale_worker_id_is_dropped(orchestrator) -> None:
    orchestrator.dispatch(PublishStarted("alpha"))

    orchestrator.dispatch(WorkerCompleted("alpha", "not-the-current-worker"))

    assert orchestrator.get_session("alpha").state is SessionState.STARTING


def test_artifact_failure_aborts_creation(tmp_path: Path, fake_runner, timers) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    orchestrator = StreamOrchestrator(
        registry=SessionRegistry(),
        workers=WorkerController(runner=fake_runner),
        artifacts=ArtifactManager(blocker, timer_factory=timers),
        hub=NotificationHub(),
    )

    with pytest.raises(ArtifactIOFailure):
        orchestrator.dispatch(PublishStarted("alpha"))

    assert len(orchestrator.registry) == 0
    assert fake_runner.launches == []


def test_worker_launch_failure_schedules_directory_cleanup(fake_runner, timers, hls_root: Path) -> None:
    settings = EncoderSettings(read_url_template="rtmp://127.0.0.1/{app}/{stream_id}")
    orchestrator = StreamOrchestrator(
        registry=SessionRegistry(),
        workers=WorkerController(settings, runner=fake_runner),
        artifacts=ArtifactManager(hls_root, timer_factory=timers),
        hub=NotificationHub(),
        grace_seconds=30.0,
    )

    with pytest.raises(WorkerFailure):
        orchestrator.dispatch(PublishStarted("alpha"))

    assert len(orchestrator.registry) == 0
    assert fake_runner.launches == []
    assert [timer.delay for timer in timers.live] == [30.0]

    timers.live[0].fire()

    assert not (hls_root / "alpha").exists()


def test_registry_size_tracks_open_sessions(orchestrator) -> None:
    for name in ("a", "b", "c"):
        orchestrator.dispatch(PublishStarted(name))
    orchestrator.dispatch(PublishStopped("b"))
    orchestrator.dispatch(PublishStarted("d"))
    orchestrator.dispatch(PublishStopped("a"))

    assert sorted(orchestrator.registry.ids()) == ["c", "d"]
    assert len(orchestrator.registry) == 2


def test_session_topic_receives_lifecycle_events(orchestrator, fake_runner, subscriber) -> None:
    orchestrator.dispatch(PublishStarted("alpha"))
    viewer = subscriber("viewer")
    orchestrator.hub.subscribe(session_topic("alpha"), viewer)

    fake_runner.start("alpha")
    orchestrator.dispatch(PublishStopped("alpha"))

    assert [event.name for event in viewer.events] == ["stream-started", "stream-ended", "stream-removed"]


def test_shutdown_stops_workers_boundary_and_timers(orchestrator, fake_runner, timers) -> None:
    class RecordingBoundary(IngestBoundary):
        def __init__(self) -> None:
            super().__init__()
            self.stopped = False

        def stop(self):
            self.stopped = True
            return None

    boundary = RecordingBoundary()
    orchestrator.boundary = boundary
    orchestrator.dispatch(PublishStarted("alpha"))
    orchestrator.dispatch(PublishStarted("beta"))
    orchestrator.dispatch(PublishStopped("beta"))

    orchestrator.shutdown()

    assert boundary.stopped is True
    assert fake_runner.latest("alpha")[0].state is WorkerState.STOPPING
    assert timers.live == []


def test_unknown_command_type_raises(orchestrator) -> None:
    with pytest.raises(TypeError):
        orchestrator.dispatch(object())  # type: ignore[arg-type]
