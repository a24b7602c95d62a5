"""Extraction of structured JSON payloads from free-form model output.

Every model response that is expected to carry JSON goes through these
helpers. They never raise: callers receive either ``Parsed`` or
``ParseFailure`` and apply their own documented defaults.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Parsed(Generic[T]):
    """Successfully extracted payload."""

    value: T


@dataclass
class ParseFailure:
    """Extraction failed; ``raw`` keeps the original text for diagnostics."""

    reason: str
    raw: str


ParseResult = Union[Parsed[T], ParseFailure]


def _extract(text: str, open_char: str, close_char: str, expected: type) -> ParseResult:
    start = text.find(open_char)
    end = text.rfind(close_char) + 1
    if start == -1 or end <= start:
        return ParseFailure(reason=f"no {open_char}...{close_char} block found", raw=text)

    try:
        value = json.loads(text[start:end])
    except json.JSONDecodeError:
        # The outermost span may cover several blocks or trailing prose with
        # braces; fall back to decoding the first complete value.
        try:
            value, _ = json.JSONDecoder().raw_decode(text[start:])
        except json.JSONDecodeError as e:
            return ParseFailure(reason=f"invalid JSON: {e}", raw=text)

    if not isinstance(value, expected):
        return ParseFailure(reason=f"expected {expected.__name__}, got {type(value).__name__}", raw=text)
    return Parsed(value)


def extract_json_object(text: str) -> ParseResult[dict[str, Any]]:
    """Extract the first brace-delimited JSON object from ``text``."""
    result = _extract(text, "{", "}", dict)
    if isinstance(result, ParseFailure):
        logger.debug(f"JSON object extraction failed: {result.reason}")
    return result


def extract_json_array(text: str) -> ParseResult[list[Any]]:
    """Extract the first bracket-delimited JSON array from ``text``."""
    result = _extract(text, "[", "]", list)
    if isinstance(result, ParseFailure):
        logger.debug(f"JSON array extraction failed: {result.reason}")
    return result


def extract_list_items(text: str, limit: int | None = None) -> list[str]:
    """Split a bulleted or numbered list into its item texts."""
    items = []
    for line in text.splitlines():
        item = line.strip().lstrip("-*•").strip()
        # Strip "1." / "2)" numbering
        head, sep, rest = item.partition(" ")
        if sep and head.rstrip(".)").isdigit():
            item = rest.strip()
        if item:
            items.append(item)
    return items[:limit] if limit is not None else items


def coerce_index(value: Any, size: int) -> int | None:
    """Position reported by the model as a list index, or None if out of range.

    Booleans are rejected; integral floats such as ``1.0`` are accepted.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and 0 <= value < size:
        return value
    return None
