from __future__ import annotations

import threading

import pytest

from streamhub.engine import SessionRegistry, SessionState, WorkerHandle, WorkerState
from streamhub.engine.session import SessionRecord
from streamhub.exceptions import InvalidStateTransition, SessionAlreadyExists, SessionNotFound


def test_create_returns_starting_snapshot() -> None:
    registry = SessionRegistry()

    session = registry.create("alpha", connection_id="conn-1")

    assert session.id == "alpha"
    assert session.display_name == "alpha"
    assert session.state is SessionState.STARTING
    assert session.viewer_count == 0
    assert session.connection_id == "conn-1"
    assert session.manifest_url == "/hls/alpha/index.m3u8"
    assert "alpha" in registry
    assert len(registry) == 1


def test_create_rejects_duplicate_ids() -> None:
    registry = SessionRegistry()
    registry.create("alpha")

    with pytest.raises(SessionAlreadyExists) as excinfo:
        registry.create("alpha")

    assert excinfo.value.session_id == "alpha"
    assert len(registry) == 1


def test_failed_setup_discards_the_record() -> None:
    registry = SessionRegistry()

    def _boom(_record: SessionRecord) -> None:
        raise RuntimeError("disk full")

    with pytest.raises(RuntimeError):
        registry.create("alpha", setup=_boom)

    assert "alpha" not in registry
    registry.create("alpha")


def test_get_and_remove_unknown_ids_raise() -> None:
    registry = SessionRegistry()

    with pytest.raises(SessionNotFound):
        registry.get("ghost")
    with pytest.raises(SessionNotFound):
        registry.remove("ghost")
    assert registry.find("ghost") is None


def test_mutate_after_remove_raises_not_found() -> None:
    registry = SessionRegistry()
    registry.create("alpha")

    final = registry.remove("alpha")

    assert final.id == "alpha"
    with pytest.raises(SessionNotFound):
        registry.mutate("alpha", lambda record: record.add_viewer())


def test_list_all_is_a_point_in_time_copy() -> None:
    registry = SessionRegistry()
    registry.create("alpha")
    registry.create("beta")

    listing = registry.list_all()
    registry.remove("alpha")

    assert [session.id for session in listing] == ["alpha", "beta"]
    assert [session.id for session in registry.list_all()] == ["beta"]


def test_concurrent_viewer_updates_are_serialized() -> None:
    registry = SessionRegistry()
    registry.create("alpha")

    def _bump() -> None:
        for _ in range(200):
            registry.mutate("alpha", lambda record: record.add_viewer())

    threads = [threading.Thread(target=_bump) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert registry.get("alpha").viewer_count == 1600


def test_viewer_count_is_floored_at_zero() -> None:
    registry = SessionRegistry()
    registry.create("alpha")

    session = registry.mutate("alpha", lambda record: record.remove_viewer())

    assert session.viewer_count == 0


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (SessionState.STARTING, SessionState.STREAMING, True),
        (SessionState.STARTING, SessionState.ERROR, True),
        (SessionState.STARTING, SessionState.ENDED, True),
        (SessionState.STREAMING, SessionState.ERROR, True),
        (SessionState.STREAMING, SessionState.ENDED, True),
        (SessionState.STREAMING, SessionState.STARTING, False),
        (SessionState.ERROR, SessionState.STREAMING, False),
        (SessionState.ERROR, SessionState.ENDED, False),
        (SessionState.ENDED, SessionState.STREAMING, False),
        (SessionState.ENDED, SessionState.ERROR, False),
    ],
)
def test_session_state_edges(current: SessionState, target: SessionState, allowed: bool) -> None:
    assert current.can_transition_to(target) is allowed


def test_transition_out_of_terminal_state_raises() -> None:
    record = SessionRecord(id="alpha", display_name="alpha")
    record.transition(SessionState.ENDED)

    with pytest.raises(InvalidStateTransition):
        record.transition(SessionState.STREAMING)


def test_worker_is_cleared_when_session_leaves_active_states() -> None:
    record = SessionRecord(id="alpha", display_name="alpha")
    record.attach_worker(WorkerHandle("alpha", ("ffmpeg",)))
    record.transition(SessionState.STREAMING)
    assert record.worker is not None

    record.fail("decode error")

    snapshot = record.snapshot()
    assert snapshot.state is SessionState.ERROR
    assert snapshot.worker_id is None
    assert snapshot.last_error == "decode error"
    assert snapshot.to_detail()["error"] == "decode error"


def test_worker_handle_stop_before_spawn() -> None:
    handle = WorkerHandle("alpha", ("ffmpeg",))

    requested, process = handle.request_stop()

    assert requested is True
    assert process is None
    assert handle.stop_requested is True
    assert handle.advance(WorkerState.RUNNING) is False
    assert handle.advance(WorkerState.FAILED) is False
    assert handle.advance(WorkerState.COMPLETED) is True
    assert handle.request_stop() == (False, None)


def test_summary_payload_shape() -> None:
    registry = SessionRegistry()
    session = registry.create("alpha", display_name="Alpha Cam")

    summary = session.to_summary()

    assert summary["id"] == "alpha"
    assert summary["name"] == "Alpha Cam"
    assert summary["viewers"] == 0
    assert summary["status"] == "starting"
    assert "startTime" in summary
