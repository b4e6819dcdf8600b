"""Generic coercion utilities for request payloads and config values."""
from __future__ import annotations

from typing import Any, Optional


def to_bool(value: Any, *, allow_blank_false: bool = True) -> bool:
    """Best-effort conversion of common truthy/falsey inputs to ``bool``."""

    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        truthy = {"true", "1", "yes", "on"}
        falsy = {"false", "0", "no", "off"}
        if allow_blank_false:
            falsy.add("")
        if lowered in truthy:
            return True
        if lowered in falsy:
            return False
    return False


def to_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = ["to_bool", "to_optional_str"]
