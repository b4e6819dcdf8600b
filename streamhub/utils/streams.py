"""Helpers for deriving stream identifiers and playback URLs."""
from __future__ import annotations

from typing import Optional

MANIFEST_NAME = "index.m3u8"


def stream_id_from_path(stream_path: Optional[str]) -> Optional[str]:
    """Return the final segment of a publish path (``/live/alpha`` -> ``alpha``).

    A trailing slash leaves an empty final segment, which is rejected.
    """

    if not stream_path:
        return None
    segment = str(stream_path).strip().rsplit("/", 1)[-1].strip()
    if not segment or segment in {".", ".."}:
        return None
    return segment


def manifest_url(stream_id: str) -> str:
    return f"/hls/{stream_id}/{MANIFEST_NAME}"


__all__ = ["MANIFEST_NAME", "manifest_url", "stream_id_from_path"]
