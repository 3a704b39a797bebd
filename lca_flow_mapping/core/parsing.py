"""Lenient parsing of loosely typed values from config files and remote payloads."""

from __future__ import annotations

from typing import Any


def coerce_float(value: Any) -> float | None:
    """Return ``value`` as a float, or ``None`` when it is absent or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return None
    return None
