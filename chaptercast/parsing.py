"""Shared parsing helpers for config, record, and provider value normalization."""

from __future__ import annotations


_TRUE_BOOLEAN_TOKENS = frozenset({"1", "true", "yes", "on"})
_FALSE_BOOLEAN_TOKENS = frozenset({"0", "false", "no", "off"})


def normalize_optional_string(value: object) -> str | None:
    """Normalize an optional value to a stripped non-empty string.

    Args:
        value: Arbitrary input value.

    Returns:
        Stripped string value, or `None` when the value is empty after trimming.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text


def parse_permissive_boolean(value: object) -> bool | None:
    """Parse a permissive boolean token and return `None` for invalid values."""

    if isinstance(value, bool):
        return value

    normalized = normalize_optional_string(value)
    if normalized is None:
        return None

    token = normalized.lower()
    if token in _TRUE_BOOLEAN_TOKENS:
        return True
    if token in _FALSE_BOOLEAN_TOKENS:
        return False
    return None


def parse_positive_int(value: object) -> int | None:
    """Parse a strictly positive integer, returning `None` for anything else.

    Booleans are rejected even though they subclass `int`.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        if value.is_integer() and value > 0:
            return int(value)
        return None
    normalized = normalize_optional_string(value)
    if normalized is None:
        return None
    try:
        parsed = int(normalized)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def parse_positive_float(value: object, field_name: str) -> float:
    """Parse a strictly positive float value or raise an actionable `ValueError`."""

    if isinstance(value, bool):
        raise ValueError(f"`{field_name}` must be a positive number.")
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"`{field_name}` must be a positive number.") from exc
    if parsed <= 0:
        raise ValueError(f"`{field_name}` must be a positive number.")
    return parsed


def parse_required_positive_int(value: object, field_name: str) -> int:
    """Parse a strictly positive integer value or raise an actionable `ValueError`."""

    parsed = parse_positive_int(value)
    if parsed is None:
        raise ValueError(f"`{field_name}` must be a positive integer.")
    return parsed
