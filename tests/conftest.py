from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest

from streamhub.engine import (
    ArtifactManager,
    SessionRegistry,
    WorkerCallbacks,
    WorkerController,
    WorkerHandle,
    WorkerState,
)
from streamhub.services import CallbackSubscriber, Event, NotificationHub, StreamOrchestrator


@pytest.fixture(autouse=True, scope="session")
def _isolated_log_dir(tmp_path_factory: pytest.TempPathFactory):
    mp = pytest.MonkeyPatch()
    mp.setenv("STREAMHUB_LOG_DIR", str(tmp_path_factory.mktemp("logs")))
    yield
    mp.undo()


class FakeThread:
    def __init__(self) -> None:
        self.join_called = False

    def is_alive(self) -> bool:
        return False

    def join(self, timeout: Optional[float] = None) -> None:
        self.join_called = True


class FakeRunner:
    """Runner that never spawns anything; tests drive the callbacks by hand."""

    def __init__(self) -> None:
        self.launches: List[Tuple[WorkerHandle, WorkerCallbacks]] = []

    def launch(self, handle: WorkerHandle, callbacks: WorkerCallbacks) -> FakeThread:
        self.launches.append((handle, callbacks))
        return FakeThread()

    def latest(self, session_id: str) -> Tuple[WorkerHandle, WorkerCallbacks]:
        for handle, callbacks in reversed(self.launches):
            if handle.session_id == session_id:
                return handle, callbacks
        raise AssertionError(f"no worker launched for {session_id}")

    def start(self, session_id: str) -> WorkerHandle:
        handle, callbacks = self.latest(session_id)
        handle.advance(WorkerState.RUNNING)
        callbacks.on_started(handle)
        return handle

    def fail(self, session_id: str, reason: str) -> WorkerHandle:
        handle, callbacks = self.latest(session_id)
        handle.advance(WorkerState.FAILED)
        callbacks.on_failed(handle, reason)
        return handle

    def complete(self, session_id: str) -> WorkerHandle:
        handle, callbacks = self.latest(session_id)
        handle.advance(WorkerState.COMPLETED)
        callbacks.on_completed(handle)
        return handle


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.callback()


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> List[FakeTimer]:
        return [timer for timer in self.timers if timer.started and not timer.cancelled]


class RecordingSubscriber(CallbackSubscriber):
    def __init__(self, key: str) -> None:
        self.events: List[Event] = []
        super().__init__(key, self.events.append)

    def named(self, name: str) -> list:
        return [event.payload for event in self.events if event.name == name]


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture()
def hls_root(tmp_path: Path) -> Path:
    root = tmp_path / "hls"
    root.mkdir()
    return root


@pytest.fixture()
def orchestrator(fake_runner: FakeRunner, timers: FakeTimerFactory, hls_root: Path) -> StreamOrchestrator:
    return StreamOrchestrator(
        registry=SessionRegistry(),
        workers=WorkerController(runner=fake_runner),
        artifacts=ArtifactManager(hls_root, retry_delay=5.0, timer_factory=timers),
        hub=NotificationHub(),
        grace_seconds=30.0,
    )


@pytest.fixture()
def app(fake_runner: FakeRunner, timers: FakeTimerFactory, hls_root: Path):
    from streamhub.app import create_app

    overrides = {
        "STREAMHUB_HLS_ROOT": str(hls_root),
        "SOCKETIO_MESSAGE_QUEUE": None,
        "INGEST_SERVER_COMMAND": None,
        "TESTING": True,
    }
    return create_app(overrides, runner=fake_runner, timer_factory=timers)


@pytest.fixture()
def subscriber() -> Callable[[str], RecordingSubscriber]:
    return RecordingSubscriber
