from __future__ import annotations

from pathlib import Path

import pytest

from streamhub.services import IngestEventAdapter


def _form(call: str, name: str = "alpha", clientid: str = "17") -> dict:
    return {"call": call, "app": "live", "name": name, "addr": "127.0.0.1", "clientid": clientid}


def test_publish_hook_creates_session(app, hls_root: Path) -> None:
    client = app.test_client()

    response = client.post("/ingest/on_publish", data=_form("publish"))

    assert response.status_code == 200
    session = app.extensions["session_registry"].get("alpha")
    assert session.connection_id == "17"
    assert (hls_root / "alpha").is_dir()


def test_duplicate_publish_is_refused_with_403(app) -> None:
    client = app.test_client()
    client.post("/ingest/on_publish", data=_form("publish", clientid="1"))

    response = client.post("/ingest/on_publish", data=_form("publish", clientid="2"))

    assert response.status_code == 403
    assert app.extensions["session_registry"].get("alpha").connection_id == "1"


def test_publish_with_empty_name_is_refused(app) -> None:
    response = app.test_client().post("/ingest/on_publish", data=_form("publish", name=""))

    assert response.status_code == 403
    assert len(app.extensions["session_registry"]) == 0


def test_publish_done_removes_session(app, timers) -> None:
    client = app.test_client()
    client.post("/ingest/on_publish", data=_form("publish"))

    response = client.post("/ingest/on_publish_done", data=_form("publish_done"))

    assert response.status_code == 200
    assert "alpha" not in app.extensions["session_registry"]
    assert len(timers.live) == 1


def test_rejected_publisher_cannot_stop_active_stream(app) -> None:
    client = app.test_client()
    client.post("/ingest/on_publish", data=_form("publish", clientid="owner"))
    client.post("/ingest/on_publish", data=_form("publish", clientid="intruder"))

    client.post("/ingest/on_publish_done", data=_form("publish_done", clientid="intruder"))

    assert "alpha" in app.extensions["session_registry"]


def test_connect_and_done_hooks_are_accepted(app) -> None:
    client = app.test_client()

    connect = client.post("/ingest/on_connect", data={"call": "connect", "app": "live", "clientid": "9"})
    done = client.post("/ingest/on_done", data={"call": "done", "app": "live", "clientid": "9"})

    assert connect.status_code == 200
    assert done.status_code == 200
    adapter: IngestEventAdapter = app.extensions["ingest_adapter"]
    assert adapter.connection_counts() == {"open": 0, "closed": 1}


def test_json_payloads_are_accepted(app) -> None:
    response = app.test_client().post("/ingest/on_publish", json={"path": "/live/beta", "clientid": "5"})

    assert response.status_code == 200
    assert "beta" in app.extensions["session_registry"]


@pytest.mark.parametrize(
    ("path", "expected"),
    [("/live/alpha", "alpha"), ("/live/alpha/", None), ("/live/", None), ("", None)],
)
def test_adapter_derives_stream_id_from_path(orchestrator, path: str, expected) -> None:
    adapter = IngestEventAdapter(orchestrator)

    accepted = adapter.on_publish_attempt("c1", path, {})

    assert accepted is (expected is not None)
    assert orchestrator.registry.ids() == ([expected] if expected else [])


def test_publish_policy_can_reject(orchestrator) -> None:
    adapter = IngestEventAdapter(orchestrator, publish_policy=lambda conn_id, path, meta: path != "/live/blocked")

    assert adapter.on_publish_attempt("c1", "/live/blocked", {}) is False
    assert adapter.on_publish_attempt("c1", "/live/open", {}) is True
    assert orchestrator.registry.ids() == ["open"]


def test_connection_policy_can_reject(orchestrator) -> None:
    adapter = IngestEventAdapter(orchestrator, connection_policy=lambda conn_id, meta: conn_id != "banned")

    assert adapter.on_connect_attempt("banned", {}) is False
    assert adapter.on_connect_attempt("ok", {}) is True
    assert adapter.connection_counts()["open"] == 1


def test_hooks_can_be_disabled(fake_runner, timers, hls_root: Path) -> None:
    from streamhub.app import create_app

    app = create_app(
        {"STREAMHUB_HLS_ROOT": str(hls_root), "SOCKETIO_MESSAGE_QUEUE": None, "INGEST_HOOKS_ENABLED": False},
        runner=fake_runner,
        timer_factory=timers,
    )

    response = app.test_client().post("/ingest/on_publish", data=_form("publish"))

    assert response.status_code == 404


def test_publish_refused_when_worker_cannot_launch(fake_runner, timers, hls_root: Path) -> None:
    from streamhub.app import create_app

    app = create_app(
        {
            "STREAMHUB_HLS_ROOT": str(hls_root),
            "SOCKETIO_MESSAGE_QUEUE": None,
            "INGEST_READ_URL_TEMPLATE": "rtmp://127.0.0.1/{app}/{stream_id}",
        },
        runner=fake_runner,
        timer_factory=timers,
    )

    response = app.test_client().post("/ingest/on_publish", data=_form("publish"))

    assert response.status_code == 403
    assert len(app.extensions["session_registry"]) == 0
    assert len(timers.live) == 1
