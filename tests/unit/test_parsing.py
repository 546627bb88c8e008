"""Unit tests for shared config and record parsing helpers."""

import pytest

from chaptercast.parsing import (
    normalize_optional_string,
    parse_permissive_boolean,
    parse_positive_float,
    parse_positive_int,
    parse_required_positive_int,
)


def test_normalize_optional_string_handles_blank_values() -> None:
    """Normalization should return `None` for `None` and blank textual values."""

    assert normalize_optional_string(None) is None
    assert normalize_optional_string("") is None
    assert normalize_optional_string("   ") is None


def test_normalize_optional_string_strips_non_blank_values() -> None:
    """Normalization should return stripped content for non-empty values."""

    assert normalize_optional_string("  value  ") == "value"
    assert normalize_optional_string(42) == "42"


@pytest.mark.parametrize(
    ("token", "expected"),
    [("TrUe", True), ("  ON ", True), ("YeS", True), ("FALSE", False), (" oFf ", False), ("nO", False)],
)
def test_parse_permissive_boolean_accepts_mixed_case_tokens(token: str, expected: bool) -> None:
    """Permissive parser should accept canonical tokens regardless of case."""

    assert parse_permissive_boolean(token) is expected


def test_parse_permissive_boolean_rejects_unknown_tokens() -> None:
    """Unknown tokens should parse to `None` instead of guessing."""

    assert parse_permissive_boolean("maybe") is None
    assert parse_permissive_boolean(None) is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [(3, 3), ("  7 ", 7), (2.0, 2), (0, None), (-4, None), ("abc", None), (True, None), (2.5, None)],
)
def test_parse_positive_int_is_strict(value: object, expected: int | None) -> None:
    """Positive-int parsing should reject booleans, zero, negatives, and fractions."""

    assert parse_positive_int(value) == expected


def test_parse_required_positive_int_raises_with_field_name() -> None:
    """Required variant should name the field in its error message."""

    assert parse_required_positive_int("12", "poll_max_attempts") == 12
    with pytest.raises(ValueError, match="poll_max_attempts"):
        parse_required_positive_int("0", "poll_max_attempts")


def test_parse_positive_float_validates_range_and_type() -> None:
    """Float parsing should accept numeric strings and reject non-positive values."""

    assert parse_positive_float(" 2.5 ", "interval") == 2.5
    with pytest.raises(ValueError, match="interval"):
        parse_positive_float("0", "interval")
    with pytest.raises(ValueError):
        parse_positive_float(True, "interval")
    with pytest.raises(ValueError):
        parse_positive_float("soon", "interval")
