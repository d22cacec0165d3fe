"""
History entry types for versioned tables.

Every logical change to a versioned table is described by one immutable
history entry:
- HistoryInit: first entry of a fresh history
- RecordAdded / RecordChanged / RecordDeleted: one record mutation
- HistoryMerge: marker left by a merge of another history

Each entry carries a commit id derived from its content (SHA-256 over the
canonical JSON of its payload), a timestamp and an optional actor.

Invariants:
    - Entries are never mutated after creation
    - Equal payloads produce equal commit ids, in any process
    - The "operation" discriminator of the dict form never changes meaning

How to change safely:
    - Add new operations with new discriminator values
    - New fields need defaults so stored rows without them still load
    - Never change commit_id_for_operation(), it would fork every history
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, fields, replace
from dataclasses import field as dataclass_field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, TypeVar

from ..codec.json_codec import ESCAPED_SET, TYPENAME_KEY, encode
from ..errors import UnrecognizedEntryError

E = TypeVar("E", bound="HistoryEntry")


class HistoryOperation(str, Enum):
    """Discriminator of the serialized entry forms."""

    HISTORY_INIT = "history_init"
    RECORD_ADDED = "record_added"
    RECORD_CHANGED = "record_changed"
    RECORD_DELETED = "record_deleted"
    HISTORY_MERGE = "history_merge"


def _canonical(value: Any) -> Any:
    """Order set contents so the JSON text does not depend on hash seeds."""
    if isinstance(value, list):
        return [_canonical(item) for item in value]
    if isinstance(value, dict):
        canonical = {key: _canonical(item) for key, item in value.items()}
        if canonical.get(TYPENAME_KEY) == ESCAPED_SET and isinstance(canonical.get("values"), list):
            canonical["values"] = sorted(
                canonical["values"], key=lambda item: json.dumps(item, sort_keys=True)
            )
        return canonical
    return value


def commit_id_for_operation(payload: dict[str, Any]) -> str:
    """Derive the commit id of an entry from its payload.

    Args:
        payload: Entry content without the commit id

    Returns:
        Hex SHA-256 digest
    """
    text = json.dumps(_canonical(encode(payload)), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class HistoryEntry:
    """Base of all history entries.

    Attributes:
        commit_id: Content-derived commit identifier
        when: Time the change was made
        who: Actor that made the change, if known
    """

    operation: ClassVar[HistoryOperation]

    commit_id: str
    when: datetime
    who: str | None = None

    @classmethod
    def create(cls: type[E], *, when: datetime | None = None, who: str | None = None, **payload: Any) -> E:
        """Build an entry and derive its commit id from its content."""
        draft = cls(
            commit_id="",
            when=when or datetime.now(timezone.utc),
            who=who,
            **payload,
        )
        return replace(draft, commit_id=commit_id_for_operation(draft.payload()))

    def payload(self) -> dict[str, Any]:
        """Entry content without the commit id."""
        content: dict[str, Any] = {"operation": self.operation.value}
        for f in fields(self):
            if f.name != "commit_id":
                content[f.name] = getattr(self, f.name)
        return content

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation (rich values not escaped)."""
        return {"commit_id": self.commit_id, **self.payload()}


@dataclass(frozen=True)
class HistoryInit(HistoryEntry):
    operation: ClassVar[HistoryOperation] = HistoryOperation.HISTORY_INIT


@dataclass(frozen=True)
class RecordAdded(HistoryEntry):
    operation: ClassVar[HistoryOperation] = HistoryOperation.RECORD_ADDED

    record_id: Any = None
    record: dict[str, Any] = dataclass_field(default_factory=dict)


@dataclass(frozen=True)
class RecordChanged(HistoryEntry):
    """A record update.

    Attributes:
        record_id: Key of the updated record
        changes: New values of the changed fields
        original: Previous values of the same fields
    """

    operation: ClassVar[HistoryOperation] = HistoryOperation.RECORD_CHANGED

    record_id: Any = None
    changes: dict[str, Any] = dataclass_field(default_factory=dict)
    original: dict[str, Any] = dataclass_field(default_factory=dict)


@dataclass(frozen=True)
class RecordDeleted(HistoryEntry):
    operation: ClassVar[HistoryOperation] = HistoryOperation.RECORD_DELETED

    record_id: Any = None
    original: dict[str, Any] = dataclass_field(default_factory=dict)


@dataclass(frozen=True)
class HistoryMerge(HistoryEntry):
    """Marker of a merge.

    Attributes:
        merged_commit_ids: Commits of the other history absorbed by the merge
    """

    operation: ClassVar[HistoryOperation] = HistoryOperation.HISTORY_MERGE

    merged_commit_ids: list[str] = dataclass_field(default_factory=list)


ENTRY_TYPES: dict[str, type[HistoryEntry]] = {
    cls.operation.value: cls
    for cls in (HistoryInit, RecordAdded, RecordChanged, RecordDeleted, HistoryMerge)
}


def entry_from_dict(data: dict[str, Any]) -> HistoryEntry:
    """Create an entry from its dictionary representation.

    Args:
        data: Decoded entry dictionary (rich values already restored)

    Returns:
        The entry

    Raises:
        UnrecognizedEntryError: If the operation discriminator is unknown
    """
    operation = data.get("operation")
    entry_type = ENTRY_TYPES.get(operation) if isinstance(operation, str) else None
    if entry_type is None:
        raise UnrecognizedEntryError(operation)
    known = {f.name for f in fields(entry_type)}
    return entry_type(**{key: value for key, value in data.items() if key in known})
