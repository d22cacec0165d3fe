"""
Field-level deltas between two versions of a record.

This is a shallow difference only. Each top-level field is compared on its
own with a pluggable comparison. Nested containers are compared as whole
values: with the default value comparison a nested change is detected, with
identity_compare only a replaced object is.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

CompareValues = Callable[[Any, Any], bool]


def values_equal(a: Any, b: Any) -> bool:
    """Default comparison: identity or value equality."""
    return a is b or a == b


def identity_compare(a: Any, b: Any) -> bool:
    """Reference comparison, for callers that replace rather than mutate."""
    return a is b


def field_changes(
    base: Mapping[str, Any],
    later: Mapping[str, Any],
    compare: CompareValues = values_equal,
    exclude: Iterable[str] = (),
) -> dict[str, Any]:
    """Fields of ``later`` whose value differs from ``base``.

    Only fields present in both records are considered: a field missing from
    ``later`` is treated as untouched, not as cleared.

    Args:
        base: The stored record
        later: The incoming record
        compare: Returns True when two field values are the same
        exclude: Field names never reported as changed

    Returns:
        Mapping of changed field name to its value in ``later``
    """
    skipped = set(exclude)
    return {
        name: later[name]
        for name in base
        if name not in skipped and name in later and not compare(base[name], later[name])
    }
