"""HTTP route blueprints for the streaming service."""
from __future__ import annotations

from .health import HEALTH_BLUEPRINT
from .hls import HLS_BLUEPRINT
from .ingest import INGEST_BLUEPRINT
from .streams import STREAMS_BLUEPRINT

API_BLUEPRINTS = [
    HEALTH_BLUEPRINT,
    STREAMS_BLUEPRINT,
    HLS_BLUEPRINT,
    INGEST_BLUEPRINT,
]

__all__ = ["API_BLUEPRINTS"]
