"""Redis utility helpers for infrastructure-level checks."""
from __future__ import annotations

from typing import Optional

import redis


def ensure_connection(url: Optional[str], *, label: str) -> None:
    """Validate that a Redis connection can be established for the given URL."""

    candidate = (url or "").strip()
    if not candidate:
        raise RuntimeError(f"{label} URL not configured.")

    client = None
    try:
        client = redis.from_url(candidate, socket_timeout=3)
        client.ping()
    except (redis.RedisError, ValueError) as exc:
        raise RuntimeError(f"Unable to connect to {label} at {candidate}: {exc}") from exc
    finally:
        if client is not None:
            client.close()


__all__ = ["ensure_connection"]
