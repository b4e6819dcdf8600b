"""Filesystem path helpers that keep lookups inside a configured root."""
from __future__ import annotations

from pathlib import Path
from typing import Optional


def within_root(root: Path, target: Path) -> bool:
    try:
        target.relative_to(root)
        return True
    except ValueError:
        return False


def resolve_within(root: Path, *parts: str) -> Optional[Path]:
    """Join ``parts`` onto ``root`` and return the resolved path.

    Returns ``None`` when the result would land outside ``root`` or on the
    root itself.
    """

    base = root.expanduser().resolve()
    candidate = base.joinpath(*parts).expanduser().resolve()
    if candidate == base or not within_root(base, candidate):
        return None
    return candidate


__all__ = ["resolve_within", "within_root"]
