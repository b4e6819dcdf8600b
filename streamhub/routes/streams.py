"""Read-only listing and detail endpoints for active streams."""
from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify

from ..exceptions import SessionNotFound
from ..services import StreamOrchestrator

STREAMS_BLUEPRINT = Blueprint("streams", __name__, url_prefix="/api")


def _orchestrator() -> StreamOrchestrator:
    orchestrator: StreamOrchestrator = current_app.extensions["stream_orchestrator"]
    return orchestrator


@STREAMS_BLUEPRINT.get("/streams")
def list_streams():
    sessions = _orchestrator().list_sessions()
    return jsonify([session.to_summary() for session in sessions]), HTTPStatus.OK


@STREAMS_BLUEPRINT.get("/stream/<stream_id>")
def stream_detail(stream_id: str):
    try:
        session = _orchestrator().get_session(stream_id)
    except SessionNotFound:
        return jsonify({"error": "Stream not found"}), HTTPStatus.NOT_FOUND
    return jsonify(session.to_detail()), HTTPStatus.OK


__all__ = ["STREAMS_BLUEPRINT"]
