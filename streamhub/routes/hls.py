"""Serve HLS playlists and segments for active streams."""
from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, send_from_directory

from ..engine import ArtifactManager, SessionRegistry
from ..exceptions import ArtifactIOFailure
from ..utils import resolve_within

HLS_BLUEPRINT = Blueprint("hls", __name__, url_prefix="/hls")

PLAYLIST_MIMETYPE = "application/vnd.apple.mpegurl"
SEGMENT_MIMETYPE = "video/mp2t"


def _mimetype_for(filename: str) -> str:
    return PLAYLIST_MIMETYPE if filename.endswith(".m3u8") else SEGMENT_MIMETYPE


@HLS_BLUEPRINT.route("/<stream_id>/<filename>", methods=["GET", "HEAD"])
def serve_hls(stream_id: str, filename: str):
    registry: SessionRegistry = current_app.extensions["session_registry"]
    artifacts: ArtifactManager = current_app.extensions["artifact_manager"]

    if registry.find(stream_id) is None:
        return jsonify({"error": "Stream not found"}), HTTPStatus.NOT_FOUND
    try:
        stream_dir = artifacts.path_for(stream_id)
    except ArtifactIOFailure:
        return jsonify({"error": "Invalid stream path"}), HTTPStatus.BAD_REQUEST

    target = resolve_within(stream_dir, filename)
    if target is None or target.parent != stream_dir:
        return jsonify({"error": "Invalid file path"}), HTTPStatus.BAD_REQUEST
    if not target.is_file():
        return jsonify({"error": "File not found"}), HTTPStatus.NOT_FOUND

    response = send_from_directory(
        str(stream_dir),
        target.name,
        mimetype=_mimetype_for(target.name),
        conditional=True,
    )
    response.headers["Cache-Control"] = "no-cache"
    return response


__all__ = ["HLS_BLUEPRINT"]
