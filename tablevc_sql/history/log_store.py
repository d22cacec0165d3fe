"""
Durable history log rows.

HistoryLogStore reads and writes the history log table of one versioned
record type. Each row holds one history entry:
- _id: auto-increment sequence number, local to this store
- commit_id: the entry's commit id
- created_at: time the row was written
- history_entry: the entry, escaped by the JSON codec

The sequence number only orders rows within this store. It is how a load
resumes from a known commit id, and is never handed out as a commit id.

Invariants:
    - Rows are only inserted, never updated or deleted
    - Loads are always ordered by sequence number ascending
    - The payload column may be a text column (JSON string) or a JSON
      column (already parsed by the driver)

How to change safely:
    - Keep the stored JSON shape backward compatible (see history.entries)
    - Any new query must order by sequence number, never by commit id
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa

from ..codec import json_codec
from ..db.database import Database
from ..db.schema import (
    HISTORY_COMMIT_ID_FIELD,
    HISTORY_CREATED_AT_FIELD,
    HISTORY_ENTRY_FIELD,
    HISTORY_ID_FIELD,
    TableDefinition,
)
from ..errors import CommitNotFoundError
from .entries import HistoryEntry, entry_from_dict

logger = logging.getLogger(__name__)


def decode_entry(stored: Any) -> HistoryEntry:
    """Restore a history entry from its stored payload.

    Args:
        stored: JSON text, or an already parsed JSON value

    Returns:
        The history entry
    """
    if isinstance(stored, (str, bytes)):
        stored = json.loads(stored)
    return entry_from_dict(json_codec.decode(stored))


def encode_entry(entry: HistoryEntry) -> str:
    """Serialize a history entry for the payload column."""
    return json_codec.dumps(entry.to_dict())


class HistoryLogStore:
    """Reads and appends rows of one history log table.

    Example:
        >>> store = HistoryLogStore(db, history_log_definition("tstLog", "tst_log"))
        >>> await store.insert(entry)
        >>> entries = await store.load_entries(from_commit_id=entry.commit_id)
    """

    def __init__(self, database: Database, definition: TableDefinition) -> None:
        """Initialize the store.

        Args:
            database: Database to run statements on
            definition: History log table definition

        Raises:
            UnknownFieldError: If the definition lacks a history log field
        """
        self._db = database
        self.definition = definition
        self._id = definition.column(HISTORY_ID_FIELD)
        self._commit_id = definition.column(HISTORY_COMMIT_ID_FIELD)
        self._created_at = definition.column(HISTORY_CREATED_AT_FIELD)
        self._entry = definition.column(HISTORY_ENTRY_FIELD)

    @property
    def database(self) -> Database:
        return self._db

    @property
    def table_name(self) -> str:
        return self.definition.db_name

    def _select_entries(self) -> sa.Select:
        return sa.select(
            self._id.label(HISTORY_ID_FIELD),
            self._entry.label(HISTORY_ENTRY_FIELD),
        ).order_by(self._id)

    async def insert(self, entry: HistoryEntry) -> None:
        """Persist an entry as a new log row.

        Runs inside the caller's transaction when one is open.
        """
        statement = sa.insert(self.definition.table).values(
            {
                self._commit_id: entry.commit_id,
                self._created_at: datetime.now(timezone.utc),
                self._entry: encode_entry(entry),
            }
        )
        await self._db.none(statement)
        logger.debug(
            "History entry stored",
            extra={
                "table": self.table_name,
                "commit_id": entry.commit_id,
                "operation": entry.operation.value,
            },
        )

    async def find_sequence(self, commit_id: str) -> int | None:
        """Sequence number of the row holding a commit, if any."""
        statement = sa.select(self._id.label(HISTORY_ID_FIELD)).where(
            self._commit_id == commit_id
        )
        row = await self._db.one_or_none(statement)
        return row[HISTORY_ID_FIELD] if row else None

    async def load_entries(self, from_commit_id: str | None = None) -> list[HistoryEntry]:
        """Load entries in sequence order.

        Args:
            from_commit_id: When given, only load the row holding this commit
                and every row after it

        Returns:
            Decoded entries, oldest first

        Raises:
            CommitNotFoundError: If from_commit_id is not in the log
        """
        async with self._db.task():
            statement = self._select_entries()
            if from_commit_id is not None:
                sequence = await self.find_sequence(from_commit_id)
                if sequence is None:
                    raise CommitNotFoundError(from_commit_id, self.table_name)
                statement = statement.where(self._id >= sequence)
            rows = await self._db.any(statement)

        logger.debug(
            "History entries loaded",
            extra={
                "table": self.table_name,
                "from_commit_id": from_commit_id,
                "count": len(rows),
            },
        )
        return [decode_entry(row[HISTORY_ENTRY_FIELD]) for row in rows]

    def last_entry_statement(self) -> sa.Select:
        """SELECT of the row with the highest sequence number."""
        last_id = sa.select(sa.func.max(self._id)).scalar_subquery()
        return self._select_entries().where(self._id == last_id)

    async def last_entry(self) -> HistoryEntry | None:
        """The most recently stored entry, or None for an empty log."""
        row = await self._db.one_or_none(self.last_entry_statement())
        return decode_entry(row[HISTORY_ENTRY_FIELD]) if row else None
