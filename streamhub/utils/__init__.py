"""Utility helpers shared across the streamhub service."""
from __future__ import annotations

from .coerce import to_bool, to_optional_str
from .paths import resolve_within, within_root
from .streams import manifest_url, stream_id_from_path

__all__ = [
    "manifest_url",
    "resolve_within",
    "stream_id_from_path",
    "to_bool",
    "to_optional_str",
    "within_root",
]
