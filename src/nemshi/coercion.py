"""Lenient field coercion for documents written by mobile clients.

Client documents carry loosely-typed optional fields; these helpers turn
them into bounded strings and finite numbers with explicit fallbacks
instead of raising.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, TypeVar

F = TypeVar("F")


def sanitize_nullable_string(value: object, max_length: int = 500) -> str | None:
    """Trimmed, truncated string, or None for non-strings and blanks."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return trimmed[:max_length]


def to_finite_float(value: object) -> float | None:
    """Parse numbers and numeric strings; None for anything non-finite or non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            num = float(text)
        except ValueError:
            return None
    else:
        return None
    return num if math.isfinite(num) else None


def coerce_number(value: object, fallback: F = 0, precision: int = 2) -> float | int | F:  # type: ignore[assignment]
    """Finite number rounded half-up to ``precision`` decimals, else ``fallback``.

    With ``precision=0`` the result is an int.
    """
    num = to_finite_float(value)
    if num is None:
        return fallback
    factor = 10 ** precision
    rounded = math.floor(num * factor + 0.5) / factor
    return int(rounded) if precision == 0 else rounded


def first_truthy(data: Mapping[str, Any], *keys: str) -> Any:
    """First value under ``keys`` that is truthy (``a || b || c``)."""
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


def first_present(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First value under ``keys`` that is not None (``a ?? b ?? c``)."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default
