"""
Record table mapper for tablevc-sql.

RecordTable provides generic CRUD over one relational table holding one
record type. Records are plain dicts keyed by logical field names; the
TableDefinition maps them to physical columns.

A mapper can be scoped to a subset of a shared physical table with a base
filter (for example a tenant predicate). Reads, counts and updates are
restricted by it. Deletes are only restricted when scope_deletes is set.

Invariants:
    - The key field is immutable: it never appears in an update
    - Well-known fields (cc token, insert/update timestamps) are never written
    - set_record issues no statement when nothing changed
    - Every write runs inside a transaction (the caller's, if one is open)
    - Driver errors propagate untransformed and are never retried

How to change safely:
    - Keep all statement building on SQLAlchemy Core, never format SQL text
    - Test both the scoped and unscoped (no base filter) variants
    - Changing the comparison default changes which updates are issued
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar, Union

import sqlalchemy as sa
from sqlalchemy.sql.elements import ColumnElement

from ..config import TableConfig
from ..db.database import Database
from ..db.schema import TableDefinition
from ..errors import MissingRecordPayloadError, UnrecognizedFilterError
from .field_changes import CompareValues, field_changes, values_equal
from .filter_compiler import FilterCompiler
from .filters import FilterExpression

logger = logging.getLogger(__name__)

Id = Union[str, int]
Record = dict[str, Any]
RecordPredicate = Callable[[Record], bool]
RecordSelector = Union[list, tuple, set, frozenset, FilterExpression, RecordPredicate, None]
BaseFilter = Union[FilterExpression, ColumnElement, None]

T = TypeVar("T")

ID_COLLECTIONS = (list, tuple, set, frozenset)


def generate_new_id() -> str:
    """Generate a globally unique record id."""
    return str(uuid.uuid4())


def parse_count(value: Any) -> int:
    """Read a COUNT(*) result leniently.

    Some drivers return counts as strings or decimals. Anything that cannot
    be read as an integer counts as 0.
    """
    if isinstance(value, int):
        return value
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning("Non-numeric record count, defaulting to 0", extra={"count": repr(value)})
        return 0


class RecordTable:
    """CRUD mapper for one record type.

    Attributes:
        definition: Table definition
        primary_key: Logical name of the key field

    Example:
        >>> tbl = RecordTable(db, tst_definition, key_field="_id")
        >>> added = await tbl.set_record({"name": "x", "amount": 10})
        >>> await tbl.get_record(added["_id"])
        >>> await tbl.get_records(more_than(field("amount"), 5))
    """

    def __init__(
        self,
        database: Database,
        definition: TableDefinition,
        key_field: str,
        base_filter: BaseFilter = None,
        generate_missing_id: bool = True,
        scope_deletes: bool = False,
        compare: CompareValues = values_equal,
        strict_operators: bool = True,
    ) -> None:
        """Initialize the mapper.

        Args:
            database: Database to run statements on
            definition: Table definition
            key_field: Logical name of the key field
            base_filter: Standing predicate scoping the mapper, either a
                filter expression or a SQLAlchemy expression on the table
            generate_missing_id: Generate a key on insert when absent
            scope_deletes: Also restrict deletes by the base filter
            compare: Field comparison used to compute update deltas
            strict_operators: Reject unknown filter comparison operators

        Raises:
            UnknownFieldError: If key_field is not defined on the table
        """
        self._db = database
        self.definition = definition
        self._key_column = definition.column(key_field)
        self._key_field = key_field
        self._generate_missing_id = generate_missing_id
        self._scope_deletes = scope_deletes
        self._compare = compare
        self._compiler = FilterCompiler(definition, strict_operators=strict_operators)
        if isinstance(base_filter, FilterExpression):
            self._base_condition: ColumnElement | None = self._compiler.compile(base_filter)
        else:
            self._base_condition = base_filter

    @classmethod
    def from_config(
        cls,
        database: Database,
        definition: TableDefinition,
        key_field: str,
        config: TableConfig,
        base_filter: BaseFilter = None,
    ) -> RecordTable:
        """Create a mapper with behavior flags taken from configuration."""
        return cls(
            database,
            definition,
            key_field,
            base_filter=base_filter,
            generate_missing_id=config.generate_missing_id,
            scope_deletes=config.scope_deletes,
            strict_operators=config.strict_operators,
        )

    @property
    def database(self) -> Database:
        return self._db

    @property
    def primary_key(self) -> str:
        return self._key_field

    @property
    def table_name(self) -> str:
        return self.definition.db_name

    def _where(self, *conditions: ColumnElement, scoped: bool = True) -> ColumnElement | None:
        clauses = list(conditions)
        if scoped and self._base_condition is not None:
            clauses.insert(0, self._base_condition)
        if not clauses:
            return None
        return clauses[0] if len(clauses) == 1 else sa.and_(*clauses)

    def _select(self, *conditions: ColumnElement, key_only: bool = False) -> sa.Select:
        names = [self._key_field] if key_only else None
        statement = sa.select(*self.definition.labeled_columns(names))
        where = self._where(*conditions)
        return statement.where(where) if where is not None else statement

    def _selector_condition(self, selector: RecordSelector) -> ColumnElement:
        if isinstance(selector, FilterExpression):
            return self._compiler.compile(selector)
        if isinstance(selector, ID_COLLECTIONS):
            return self._key_column.in_(list(selector))
        raise UnrecognizedFilterError(selector)

    def record_changes(self, existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> Record:
        """Fields an update from ``existing`` to ``incoming`` would write.

        The key field and the well-known fields are never part of it.
        """
        return field_changes(
            existing,
            incoming,
            compare=self._compare,
            exclude=[*self.definition.well_known_fields, self._key_field],
        )

    def strip_managed_fields(self, record: Mapping[str, Any]) -> Record:
        """Copy of a record without its database-managed fields."""
        omitted = self.definition.well_known_fields
        return {name: v for name, v in record.items() if name not in omitted}

    async def get_record(self, record_id: Id) -> Record | None:
        """Get one record by key.

        Args:
            record_id: Key value

        Returns:
            The record, or None if no row matches the key and base filter
        """
        return await self._db.one_or_none(self._select(self._key_column == record_id))

    async def get_records(self, selector: RecordSelector = None) -> list[Record]:
        """Get the records matching a selector.

        Args:
            selector: One of
                - None: every record in scope
                - a list/tuple/set of keys
                - a filter expression, compiled to SQL
                - a predicate called on every record in scope (runs in process)

        Returns:
            Matching records

        Raises:
            UnrecognizedFilterError: If the selector is none of the above
        """
        if selector is None:
            return await self._db.any(self._select())
        if callable(selector) and not isinstance(selector, FilterExpression):
            records = await self._db.any(self._select())
            return [record for record in records if selector(record)]
        return await self._db.any(self._select(self._selector_condition(selector)))

    async def record_keys(self, selector: RecordSelector = None) -> list[Id]:
        """Get the keys of the records matching a selector.

        Accepts the same selectors as get_records(). SQL selectors only
        fetch the key column; a predicate is called on whole records.
        """
        if callable(selector) and not isinstance(selector, FilterExpression):
            records = await self.get_records(selector)
            return [record[self._key_field] for record in records]
        if selector is None:
            statement = self._select(key_only=True)
        else:
            statement = self._select(self._selector_condition(selector), key_only=True)
        rows = await self._db.any(statement)
        return [row[self._key_field] for row in rows]

    async def has_record(self, record_id: Id) -> bool:
        """Check whether a record exists within the base filter."""
        statement = (
            sa.select(sa.literal(1).label("found"))
            .select_from(self.definition.table)
            .where(self._where(self._key_column == record_id))
            .limit(1)
        )
        return await self._db.one_or_none(statement) is not None

    async def count_records(self) -> int:
        """Count the records within the base filter."""
        statement = sa.select(sa.func.count().label("n_records")).select_from(
            self.definition.table
        )
        where = self._where()
        if where is not None:
            statement = statement.where(where)
        row = await self._db.one_or_none(statement)
        return parse_count(row["n_records"]) if row else 0

    async def transaction(self, body: Callable[[RecordTable], Awaitable[T]]) -> T:
        """Run body inside one atomic transaction.

        Any exception raised by body rolls back every statement issued in it.

        Args:
            body: Coroutine function receiving this mapper

        Returns:
            Whatever body returns
        """
        async with self._db.tx():
            return await body(self)

    async def delete_record(self, record_id: Id) -> bool:
        """Delete a record by key.

        The base filter is only applied when the mapper was created with
        scope_deletes=True.

        Returns:
            True if a row was deleted
        """
        where = self._where(self._key_column == record_id, scoped=self._scope_deletes)
        deleted = await self._db.none(sa.delete(self.definition.table).where(where))
        logger.debug(
            "Deleted record",
            extra={"table": self.table_name, "record_id": record_id, "deleted": deleted},
        )
        return deleted > 0

    async def set_record(
        self,
        key_or_record: Id | Mapping[str, Any],
        record: Mapping[str, Any] | None = None,
    ) -> Record:
        """Insert or update a record.

        Called as set_record(record) or set_record(key, record). When a row
        with the key exists, only the fields that differ from it are
        updated; when nothing differs no statement is issued. Otherwise the
        record is inserted, with a generated key if it has none.

        Args:
            key_or_record: The record, or its key
            record: The record, when the key is given separately

        Returns:
            The stored record as read back from the database

        Raises:
            MissingRecordPayloadError: If a key is given without a record
        """
        if record is None:
            if not isinstance(key_or_record, Mapping):
                raise MissingRecordPayloadError(key_or_record)
            incoming = dict(key_or_record)
            record_id = incoming.get(self._key_field)
        else:
            record_id = key_or_record
            incoming = {**record, self._key_field: record_id}

        async with self._db.tx():
            existing = await self.get_record(record_id) if record_id is not None else None

            if existing is not None:
                changes = self.record_changes(existing, incoming)
                if not changes:
                    logger.debug(
                        "Record unchanged, skipping update",
                        extra={"table": self.table_name, "record_id": record_id},
                    )
                    return existing

                statement = (
                    sa.update(self.definition.table)
                    .where(self._where(self._key_column == record_id))
                    .values({self.definition.column(name): v for name, v in changes.items()})
                )
                await self._db.none(statement)
                logger.debug(
                    "Updated record",
                    extra={
                        "table": self.table_name,
                        "record_id": record_id,
                        "fields": sorted(changes),
                    },
                )
                return await self._db.one(self._select(self._key_column == record_id))

            to_insert = self.strip_managed_fields(incoming)
            if to_insert.get(self._key_field) is None:
                if self._generate_missing_id:
                    to_insert[self._key_field] = generate_new_id()
                else:
                    # Let the database default supply the key
                    to_insert.pop(self._key_field, None)

            statement = (
                sa.insert(self.definition.table)
                .values({self.definition.column(name): v for name, v in to_insert.items()})
                .returning(self._key_column.label(self._key_field))
            )
            inserted = await self._db.one(statement)
            added_id = inserted[self._key_field]
            logger.debug(
                "Inserted record",
                extra={"table": self.table_name, "record_id": added_id},
            )
            return await self._db.one(self._select(self._key_column == added_id))
