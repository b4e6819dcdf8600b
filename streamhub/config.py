"""Configuration helpers for the streamhub service."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from dotenv import find_dotenv, load_dotenv

from .utils.coerce import to_bool

LOGGER = logging.getLogger(__name__)

_DOTENV_PATH = find_dotenv(usecwd=True)
if _DOTENV_PATH:
    load_dotenv(_DOTENV_PATH, override=False)

PACKAGE_ROOT = Path(__file__).resolve().parents[1]

DUPLICATE_POLICIES = ("reject", "replace")
DEFAULT_READ_URL_TEMPLATE = "rtmp://127.0.0.1:1935/live/{stream_id}"


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    trimmed = raw.strip()
    return trimmed or default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return to_bool(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid integer %s=%r; using %s", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid number %s=%r; using %s", name, raw, default)
        return default


def _env_csv(name: str, default: Iterable[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return [item for item in default]
    values = [value.strip() for value in raw.split(",") if value.strip()]
    return values if values else [item for item in default]


def _duplicate_policy() -> str:
    policy = (_env_str("DUPLICATE_PUBLISH_POLICY", "reject") or "reject").lower()
    if policy not in DUPLICATE_POLICIES:
        LOGGER.warning("Unknown DUPLICATE_PUBLISH_POLICY %r; falling back to 'reject'", policy)
        return "reject"
    return policy


def _read_url_template() -> str:
    template = _env_str("INGEST_READ_URL_TEMPLATE", DEFAULT_READ_URL_TEMPLATE) or DEFAULT_READ_URL_TEMPLATE
    try:
        template.format(stream_id="check")
    except (KeyError, IndexError, ValueError):
        LOGGER.warning(
            "INGEST_READ_URL_TEMPLATE %r must only use {stream_id}; using %r", template, DEFAULT_READ_URL_TEMPLATE
        )
        return DEFAULT_READ_URL_TEMPLATE
    return template


def build_default_config() -> Dict[str, Any]:
    """Return the base configuration mapping for the streamhub service."""

    hls_root = _env_str("STREAMHUB_HLS_ROOT") or str(PACKAGE_ROOT / "hls")
    ffmpeg_binary = _env_str("FFMPEG_BINARY") or _env_str("FFMPEG_PATH") or "ffmpeg"

    cfg: Dict[str, Any] = {
        "STREAMHUB_HLS_ROOT": hls_root,
        "STREAMHUB_CORS_ORIGIN": _env_str("STREAMHUB_CORS_ORIGIN", "*"),
        "STREAMHUB_HOST": _env_str("STREAMHUB_HOST", "0.0.0.0"),
        "STREAMHUB_PORT": _env_int("STREAMHUB_PORT", 3000),
        "SOCKETIO_MESSAGE_QUEUE": _env_str("SOCKETIO_MESSAGE_QUEUE"),
        "FFMPEG_BINARY": ffmpeg_binary,
        "INGEST_READ_URL_TEMPLATE": _read_url_template(),
        "INGEST_SERVER_COMMAND": _env_str("INGEST_SERVER_COMMAND"),
        "INGEST_HOOKS_ENABLED": _env_bool("INGEST_HOOKS_ENABLED", True),
        "HLS_SEGMENT_SECONDS": max(_env_int("HLS_SEGMENT_SECONDS", 10), 1),
        "HLS_LIST_SIZE": max(_env_int("HLS_LIST_SIZE", 6), 0),
        "HLS_START_NUMBER": max(_env_int("HLS_START_NUMBER", 1), 0),
        "HLS_FLAGS": _env_csv("HLS_FLAGS", ["delete_segments"]),
        "VIDEO_CODEC": _env_str("VIDEO_CODEC", "libx264"),
        "VIDEO_PROFILE": _env_str("VIDEO_PROFILE", "baseline"),
        "VIDEO_CRF": _env_int("VIDEO_CRF", 18),
        "VIDEO_MAXRATE": _env_str("VIDEO_MAXRATE", "400k"),
        "VIDEO_BUFSIZE": _env_str("VIDEO_BUFSIZE", "1835k"),
        "VIDEO_PIX_FMT": _env_str("VIDEO_PIX_FMT", "yuv420p"),
        "AUDIO_CODEC": _env_str("AUDIO_CODEC", "aac"),
        "AUDIO_CHANNELS": _env_int("AUDIO_CHANNELS", 2),
        "ARTIFACT_GRACE_SECONDS": max(_env_float("ARTIFACT_GRACE_SECONDS", 30.0), 0.0),
        "CLEANUP_RETRY_SECONDS": max(_env_float("CLEANUP_RETRY_SECONDS", 5.0), 0.0),
        "DUPLICATE_PUBLISH_POLICY": _duplicate_policy(),
        "WORKER_TERMINATE_TIMEOUT": max(_env_float("WORKER_TERMINATE_TIMEOUT", 5.0), 0.0),
        "WORKER_KILL_TIMEOUT": max(_env_float("WORKER_KILL_TIMEOUT", 2.0), 0.0),
    }
    return cfg


__all__ = ["DUPLICATE_POLICIES", "build_default_config"]
