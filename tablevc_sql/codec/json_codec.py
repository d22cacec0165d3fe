"""
Type-preserving JSON codec for history entry payloads.

History entries carry rich Python values (datetimes, sets, ordered maps,
nested records) that JSON cannot represent directly. This module escapes
them into tagged JSON-safe objects and restores them on the way back, so a
whole entry fits in a single text/JSON column.

Escaped shapes:
    datetime     -> {"__typename": "EscapedDate", "isoString": "..."}
    set          -> {"__typename": "EscapedSet", "values": [...]}
    ordered map  -> {"__typename": "EscapedMap", "values": [[k, v], ...]}

An "ordered map" is a collections.OrderedDict, or any dict that has at least
one non-string key. Plain dicts with string keys are records and stay JSON
objects.

Invariants:
    - decode(encode(v)) == v for every supported finite acyclic value
    - Aware datetimes are normalized to UTC, microseconds are kept
    - Naive datetimes stay naive
    - Decoding never raises on malformed input: a value that fails a tag
      check is passed through as an ordinary value
    - Set members and map keys decode hashable: a tuple member comes back
      as a tuple, a frozenset member as a frozenset

How to change safely:
    - New tags need both an encode branch and a recognizer in classify()
    - Never rename an existing tag, stored history rows depend on it
    - Keep the recognizers strict (discriminator AND payload shape)
"""

from __future__ import annotations

import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Union

logger = logging.getLogger(__name__)

TYPENAME_KEY = "__typename"
ESCAPED_DATE = "EscapedDate"
ESCAPED_SET = "EscapedSet"
ESCAPED_MAP = "EscapedMap"


@dataclass(frozen=True)
class Recognized:
    """A tagged object that passed both the discriminator and shape checks.

    Attributes:
        tag: The escaped type tag
        payload: The raw (still encoded) payload of the tag
    """

    tag: str
    payload: Any


@dataclass(frozen=True)
class Passthrough:
    """A value that is not an escaped object and decodes as itself."""

    value: Any


Classification = Union[Recognized, Passthrough]


def _is_ordered_map(value: Any) -> bool:
    if isinstance(value, OrderedDict):
        return True
    return isinstance(value, dict) and any(not isinstance(key, str) for key in value)


def _encode_datetime(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="microseconds")


def encode(value: Any) -> Any:
    """Convert a rich value into a JSON-safe structure.

    Args:
        value: Any supported value, arbitrarily nested

    Returns:
        A structure made only of dicts, lists, strings, numbers,
        booleans and None (plus whatever unsupported leaves were given)
    """
    if isinstance(value, datetime):
        return {TYPENAME_KEY: ESCAPED_DATE, "isoString": _encode_datetime(value)}
    if isinstance(value, (set, frozenset)):
        return {TYPENAME_KEY: ESCAPED_SET, "values": [encode(item) for item in value]}
    if _is_ordered_map(value):
        return {
            TYPENAME_KEY: ESCAPED_MAP,
            "values": [[encode(key), encode(item)] for key, item in value.items()],
        }
    if isinstance(value, (list, tuple)):
        return [encode(item) for item in value]
    if isinstance(value, dict):
        return {key: encode(item) for key, item in value.items()}
    return value


def classify(value: Any) -> Classification:
    """Decide whether a JSON value is an escaped object.

    Args:
        value: A decoded JSON value

    Returns:
        Recognized when the discriminator and payload shape both match,
        Passthrough otherwise
    """
    if not isinstance(value, dict):
        return Passthrough(value)

    tag = value.get(TYPENAME_KEY)
    if tag == ESCAPED_DATE:
        iso_string = value.get("isoString")
        if isinstance(iso_string, str):
            try:
                datetime.fromisoformat(iso_string)
            except ValueError:
                logger.debug("Escaped date with unparseable isoString passed through")
                return Passthrough(value)
            return Recognized(ESCAPED_DATE, iso_string)
    elif tag == ESCAPED_SET:
        items = value.get("values")
        if isinstance(items, list):
            return Recognized(ESCAPED_SET, items)
    elif tag == ESCAPED_MAP:
        items = value.get("values")
        if isinstance(items, list) and all(
            isinstance(item, list) and len(item) == 2 for item in items
        ):
            return Recognized(ESCAPED_MAP, items)
    return Passthrough(value)


def _hashable(value: Any) -> Any:
    """Freeze a decoded set member or map key (lists to tuples, sets to frozensets)."""
    if isinstance(value, list):
        return tuple(_hashable(item) for item in value)
    if isinstance(value, set):
        return frozenset(_hashable(item) for item in value)
    return value


def decode(value: Any) -> Any:
    """Restore a value produced by encode().

    Args:
        value: A JSON-safe structure

    Returns:
        The rich value. Unrecognized objects come back as plain dicts.
    """
    if isinstance(value, list):
        return [decode(item) for item in value]

    outcome = classify(value)
    if isinstance(outcome, Recognized):
        if outcome.tag == ESCAPED_DATE:
            return datetime.fromisoformat(outcome.payload)
        if outcome.tag == ESCAPED_SET:
            return {_hashable(decode(item)) for item in outcome.payload}
        return OrderedDict(
            (_hashable(decode(key)), decode(item)) for key, item in outcome.payload
        )

    if isinstance(value, dict):
        return {key: decode(item) for key, item in value.items()}
    return value


def dumps(value: Any) -> str:
    """Encode a value and serialize it to JSON text."""
    return json.dumps(encode(value))


def loads(text: str | bytes) -> Any:
    """Parse JSON text and decode escaped values."""
    return decode(json.loads(text))
