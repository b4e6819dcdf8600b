"""Liveness endpoint."""
from __future__ import annotations

from datetime import datetime, timezone
from http import HTTPStatus

from flask import Blueprint, current_app, jsonify

from ..engine import SessionRegistry

HEALTH_BLUEPRINT = Blueprint("health", __name__)


@HEALTH_BLUEPRINT.route("/health", methods=["GET"])
def health_endpoint():
    registry: SessionRegistry = current_app.extensions["session_registry"]
    payload = {
        "status": "OK",
        "activeStreams": len(registry),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return jsonify(payload), HTTPStatus.OK


__all__ = ["HEALTH_BLUEPRINT"]
