"""
Versioned tables over a record table and a version history.

VersionedTable is the write path of a versioned table: every record
mutation writes the row and appends the matching history entry inside one
database transaction, so no reader ever sees a row change without its log
entry or the other way around.

This module also provides:
- create_versioned_table(): wire a RecordTable and a DurableVersionHistory
- load_versioned_table_data(): read all records plus the last history entry
  in one read scope (used to clone a table)

Invariants:
    - Row write and history append commit or roll back together
    - A mutation that changes nothing appends nothing
    - History entries never carry database-managed fields

How to change safely:
    - Keep the table and a durable history on the same Database instance
    - Every new mutation must go through one tx() block
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import sqlalchemy as sa

from .config import TableConfig
from .db.database import Database
from .db.schema import HISTORY_ENTRY_FIELD, TableDefinition
from .errors import RecordExistsError, RecordNotFoundError, UnknownFieldError
from .history.durable import DurableVersionHistory
from .history.entries import HistoryEntry, RecordAdded, RecordChanged, RecordDeleted
from .history.log_store import HistoryLogStore, decode_entry
from .history.memory import MemoryVersionHistory
from .table.record_table import BaseFilter, Id, Record, RecordTable

logger = logging.getLogger(__name__)


@dataclass
class VersionedTableData:
    """Snapshot of a versioned table.

    Attributes:
        records: Every record (optionally restricted by a key sub-query)
        last_history_entry: Most recent history entry, None for an empty log
    """

    records: list[Record] = field(default_factory=list)
    last_history_entry: HistoryEntry | None = None


class VersionedTable:
    """Record table whose mutations are recorded in a version history.

    Attributes:
        table: The record table mapper
        history: The version history (durable or in-memory)
        who: Actor recorded on new history entries

    Example:
        >>> vt = await create_versioned_table(db, tst_def, tst_log_def, "_id", who="user:42")
        >>> await vt.add_record({"_id": "TEST1", "name": "x", "amount": 1})
        >>> await vt.update_record("TEST1", {"amount": 9876})
        >>> vt.history.history_delta(commit_id).changes
    """

    def __init__(
        self,
        table: RecordTable,
        history: MemoryVersionHistory,
        who: str | None = None,
    ) -> None:
        """Initialize the versioned table.

        Raises:
            ValueError: If a durable history uses another Database than the table
        """
        if isinstance(history, DurableVersionHistory) and history.database is not table.database:
            raise ValueError("Record table and durable history must share one Database")
        self.table = table
        self.history = history
        self.who = who

    @property
    def database(self) -> Database:
        return self.table.database

    def last_commit_id(self) -> str | None:
        return self.history.last_commit_id()

    async def add_record(
        self,
        key_or_record: Id | Mapping[str, Any],
        record: Mapping[str, Any] | None = None,
    ) -> Record:
        """Insert a new record and log a RecordAdded entry.

        Inside an enclosing tx() the history mirror only shows the entry
        once that transaction commits; until then last_commit_id() is the
        previous commit.

        Raises:
            RecordExistsError: If a record with the same key is stored
            MissingRecordPayloadError: If a key is given without a record
        """
        async with self.database.tx():
            record_id = key_or_record if record is not None else None
            if record_id is None and isinstance(key_or_record, Mapping):
                record_id = key_or_record.get(self.table.primary_key)
            if record_id is not None and await self.table.has_record(record_id):
                raise RecordExistsError(record_id, self.table.table_name)

            added = await self.table.set_record(key_or_record, record)
            entry = RecordAdded.create(
                who=self.who,
                record_id=added[self.table.primary_key],
                record=self.table.strip_managed_fields(added),
            )
            await self.history.push(entry)

        logger.debug(
            "Record added",
            extra={"table": self.table.table_name, "commit_id": entry.commit_id},
        )
        return added

    async def update_record(self, record_id: Id, changes: Mapping[str, Any]) -> Record:
        """Apply field changes to a record and log a RecordChanged entry.

        Inside an enclosing tx() the history mirror only shows the entry
        once that transaction commits.

        Returns:
            The stored record

        Raises:
            UnknownFieldError: If a changed field is not defined on the table
            RecordNotFoundError: If the record does not exist
        """
        for name in changes:
            if not self.table.definition.has_field(name):
                raise UnknownFieldError(name, self.table.definition.name)

        async with self.database.tx():
            existing = await self.table.get_record(record_id)
            if existing is None:
                raise RecordNotFoundError(record_id, self.table.table_name)

            delta = self.table.record_changes(existing, {**existing, **changes})
            if not delta:
                return existing

            updated = await self.table.set_record(record_id, {**existing, **delta})
            entry = RecordChanged.create(
                who=self.who,
                record_id=record_id,
                changes=delta,
                original={name: existing[name] for name in delta},
            )
            await self.history.push(entry)

        logger.debug(
            "Record changed",
            extra={
                "table": self.table.table_name,
                "commit_id": entry.commit_id,
                "fields": sorted(delta),
            },
        )
        return updated

    async def delete_record(self, record_id: Id) -> None:
        """Delete a record and log a RecordDeleted entry.

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        async with self.database.tx():
            existing = await self.table.get_record(record_id)
            if existing is None:
                raise RecordNotFoundError(record_id, self.table.table_name)

            await self.table.delete_record(record_id)
            entry = RecordDeleted.create(
                who=self.who,
                record_id=record_id,
                original=self.table.strip_managed_fields(existing),
            )
            await self.history.push(entry)

        logger.debug(
            "Record deleted",
            extra={"table": self.table.table_name, "commit_id": entry.commit_id},
        )


async def create_versioned_table(
    database: Database,
    record_definition: TableDefinition,
    history_definition: TableDefinition,
    key_field: str,
    base_filter: BaseFilter = None,
    from_commit_id: str | None = None,
    who: str | None = None,
    config: TableConfig | None = None,
) -> VersionedTable:
    """Load the durable history and wire it to a record table mapper.

    Args:
        database: Database holding both tables
        record_definition: Record table definition
        history_definition: History log table definition
        key_field: Logical name of the record key field
        base_filter: Standing predicate scoping the record table
        from_commit_id: Resume the history from this commit
        who: Actor recorded on new history entries
        config: Record table behavior flags

    Returns:
        A ready VersionedTable
    """
    history = await DurableVersionHistory.load_or_init(
        database, history_definition, from_commit_id=from_commit_id, who=who
    )
    table = RecordTable.from_config(
        database,
        record_definition,
        key_field,
        config or TableConfig(),
        base_filter=base_filter,
    )
    return VersionedTable(table, history, who=who)


async def load_versioned_table_data(
    database: Database,
    record_definition: TableDefinition,
    history_definition: TableDefinition,
    key_field: str,
    key_subquery: sa.Select | None = None,
) -> VersionedTableData:
    """Read the records of a versioned table and its last history entry.

    Both reads run in one scope.

    Args:
        database: Database holding both tables
        record_definition: Record table definition
        history_definition: History log table definition
        key_field: Logical name of the record key field
        key_subquery: Optional SELECT of keys restricting the records

    Returns:
        VersionedTableData
    """
    statement = sa.select(*record_definition.labeled_columns())
    if key_subquery is not None:
        statement = statement.where(record_definition.column(key_field).in_(key_subquery))
    store = HistoryLogStore(database, history_definition)

    async with database.task():
        last_row = await database.one_or_none(store.last_entry_statement())
        records = await database.any(statement)

    return VersionedTableData(
        records=records,
        last_history_entry=decode_entry(last_row[HISTORY_ENTRY_FIELD]) if last_row else None,
    )
