"""HTTP notification hooks called by the RTMP ingest server.

The payload follows nginx-rtmp's ``on_*`` notifications (form fields ``call``,
``app``, ``name``, ``addr``, ``clientid``). A 2xx answer lets the server accept
the connection or publish; 403 makes it drop the client.
"""
from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict, Tuple

from flask import Blueprint, current_app, request

from ..services import IngestEventAdapter
from ..utils import to_optional_str

INGEST_BLUEPRINT = Blueprint("ingest", __name__, url_prefix="/ingest")


def _adapter() -> IngestEventAdapter:
    adapter: IngestEventAdapter = current_app.extensions["ingest_adapter"]
    return adapter


def _hook_payload() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    payload: Dict[str, Any] = dict(body) if isinstance(body, dict) else {}
    payload.update(request.form.to_dict())
    return payload


def _connection_id(payload: Dict[str, Any]) -> str:
    return to_optional_str(payload.get("clientid")) or to_optional_str(payload.get("addr")) or "unknown"


def _stream_path(payload: Dict[str, Any]) -> str:
    explicit = to_optional_str(payload.get("path"))
    if explicit:
        return explicit
    app_name = to_optional_str(payload.get("app")) or ""
    name = to_optional_str(payload.get("name")) or ""
    return f"/{app_name}/{name}"


def _verdict(accepted: bool) -> Tuple[str, int]:
    if accepted:
        return "OK", HTTPStatus.OK
    return "Forbidden", HTTPStatus.FORBIDDEN


@INGEST_BLUEPRINT.post("/on_connect")
def on_connect():
    payload = _hook_payload()
    return _verdict(_adapter().on_connect_attempt(_connection_id(payload), payload))


@INGEST_BLUEPRINT.post("/on_publish")
def on_publish():
    payload = _hook_payload()
    return _verdict(_adapter().on_publish_attempt(_connection_id(payload), _stream_path(payload), payload))


@INGEST_BLUEPRINT.post("/on_publish_done")
def on_publish_done():
    payload = _hook_payload()
    _adapter().on_publish_stop(_connection_id(payload), _stream_path(payload), payload)
    return _verdict(True)


@INGEST_BLUEPRINT.post("/on_done")
def on_done():
    payload = _hook_payload()
    _adapter().on_connect_closed(_connection_id(payload), payload)
    return _verdict(True)


__all__ = ["INGEST_BLUEPRINT"]
