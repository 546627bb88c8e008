"""Chapter-list response parsing.

Responsibilities:
- Decode model output into ordered `ChapterEntry` values.
- Try an explicit, ordered list of decoders, from strict to permissive, and
  raise one `ParseError` listing every decoder's reason when all fail.

Accepted shapes, in order:
1. top-level JSON array;
2. JSON object with a `chapters` array;
3. JSON object with a `data` array;
4. the first bracketed JSON array found anywhere in free text.
"""

from __future__ import annotations

from collections.abc import Callable
import json
import re
from typing import Any

from ..errors import ParseError
from ..models.datatypes import ChapterEntry
from ..parsing import normalize_optional_string, parse_positive_int

_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")
_NUMBER_KEYS = ("chapterNumber", "chapter_number", "number")
_TITLE_KEYS = ("chapterTitle", "chapter_title", "title")


class _DecodeRejected(ValueError):
    """Raised by one decoder when the payload does not have its shape."""


def _load_json(text: str) -> Any:
    """Parse JSON text, converting syntax errors into decoder rejections."""

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise _DecodeRejected(f"invalid JSON ({exc.msg})") from exc


def _decode_top_level_array(text: str) -> list[Any]:
    payload = _load_json(text)
    if not isinstance(payload, list):
        raise _DecodeRejected("not a JSON array")
    return payload


def _object_array_decoder(key: str) -> Callable[[str], list[Any]]:
    """Build a decoder that reads an array stored under `key` of a JSON object."""

    def _decode(text: str) -> list[Any]:
        payload = _load_json(text)
        if not isinstance(payload, dict):
            raise _DecodeRejected("not a JSON object")
        value = payload.get(key)
        if not isinstance(value, list):
            raise _DecodeRejected(f"no `{key}` array")
        return value

    return _decode


def _decode_embedded_array(text: str) -> list[Any]:
    match = _ARRAY_PATTERN.search(text)
    if match is None:
        raise _DecodeRejected("no bracketed array in text")
    payload = _load_json(match.group(0))
    if not isinstance(payload, list):
        raise _DecodeRejected("bracketed text is not an array")
    return payload


def _first_value(item: dict[str, Any], keys: tuple[str, ...]) -> object:
    """Return the first present value among alias keys."""

    for key in keys:
        if key in item:
            return item[key]
    return None


class ChapterListParser:
    """Parse chapter-list responses with ordered typed decoders."""

    DECODERS: tuple[tuple[str, Callable[[str], list[Any]]], ...] = (
        ("top_level_array", _decode_top_level_array),
        ("chapters_key", _object_array_decoder("chapters")),
        ("data_key", _object_array_decoder("data")),
        ("embedded_array", _decode_embedded_array),
    )

    def parse(self, text: str) -> list[ChapterEntry]:
        """Return chapter entries sorted by number.

        Raises:
            ParseError: If no decoder yields at least one valid entry.
        """

        attempts: list[tuple[str, str]] = []
        for name, decoder in self.DECODERS:
            try:
                items = decoder(text)
            except _DecodeRejected as exc:
                attempts.append((name, str(exc)))
                continue
            entries = self._entries(items)
            if not entries:
                attempts.append((name, "no valid chapter entries"))
                continue
            return entries
        raise ParseError(attempts=tuple(attempts))

    @staticmethod
    def _entries(items: list[Any]) -> list[ChapterEntry]:
        """Convert raw items into entries, dropping items without number or title."""

        entries: list[ChapterEntry] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            number = parse_positive_int(_first_value(item, _NUMBER_KEYS))
            title = normalize_optional_string(_first_value(item, _TITLE_KEYS))
            if number is None or title is None:
                continue
            entries.append(ChapterEntry(number=number, title=title))
        return sorted(entries, key=lambda entry: entry.number)
