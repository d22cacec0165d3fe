"""
Table definitions for versioned record types.

A TableDefinition maps the logical field names used by callers to the
physical column names of one relational table, and names the optional
well-known fields the database manages on its own:
- ccField: concurrency-control token
- insertTimestampField: set by the database on insert
- updateTimestampField: set by the database on update

Each versioned record type uses two tables:
    record table:
        - one column per record field
        - optional well-known columns (database managed)

    history log table:
        - _id INTEGER (auto-increment, storage-local sequence number)
        - commit_id TEXT (unique per logical commit)
        - created_at TIMESTAMP
        - history_entry TEXT (JSON-encoded entry payload)

Invariants:
    - Logical field names are unique within a definition
    - Well-known fields are never written by callers
    - The history log sequence number only orders rows within one store

How to change safely:
    - Renaming a logical field changes the record shape seen by callers
    - Renaming a physical column requires a database migration (not handled here)
    - Keep history log column keys stable, the log store addresses them by key

Example:
    >>> tst = TableDefinition(
    ...     name="tst",
    ...     db_name="tst",
    ...     fields=(
    ...         FieldDef("_id", "tst_id", String, primary_key=True),
    ...         FieldDef("name", "tst_name", String),
    ...     ),
    ... )
    >>> tst.column("name")
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any

from sqlalchemy import Column, DateTime, Integer, MetaData, Table, Text
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.types import NullType, TypeEngine

from ..errors import UnknownFieldError

HISTORY_ID_FIELD = "_id"
HISTORY_COMMIT_ID_FIELD = "commit_id"
HISTORY_CREATED_AT_FIELD = "created_at"
HISTORY_ENTRY_FIELD = "history_entry"


@dataclass(frozen=True)
class FieldDef:
    """Mapping of one logical field to a physical column.

    Attributes:
        name: Logical field name used in records
        db_name: Physical column name
        type_: SQLAlchemy column type (NullType when the driver decides)
        primary_key: Whether the column is part of the primary key
        nullable: Whether the column accepts NULL
        server_default: Optional server-side default (for well-known fields)
        unique: Whether the column carries a unique constraint
    """

    name: str
    db_name: str
    type_: Any = None
    primary_key: bool = False
    nullable: bool = True
    server_default: Any = None
    unique: bool = False

    def __post_init__(self) -> None:
        """Validate field definition."""
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if not self.db_name:
            raise ValueError(f"Column name cannot be empty for field '{self.name}'")

    def to_column(self) -> Column:
        """Build the SQLAlchemy column, keyed by the logical name."""
        type_: TypeEngine = self.type_ if self.type_ is not None else NullType()
        return Column(
            self.db_name,
            type_,
            key=self.name,
            primary_key=self.primary_key,
            nullable=self.nullable and not self.primary_key,
            server_default=self.server_default,
            unique=self.unique,
        )


@dataclass
class TableDefinition:
    """Logical description of one relational table.

    Attributes:
        name: Logical table name
        db_name: Physical table name
        fields: Field mappings
        cc_field: Logical name of the concurrency-control field, if any
        insert_timestamp_field: Logical name of the insert timestamp, if any
        update_timestamp_field: Logical name of the update timestamp, if any
        metadata: SQLAlchemy metadata the table is registered on
        table_kwargs: Extra dialect keyword arguments for the Table
    """

    name: str
    db_name: str
    fields: tuple[FieldDef, ...]
    cc_field: str | None = None
    insert_timestamp_field: str | None = None
    update_timestamp_field: str | None = None
    metadata: MetaData = dataclass_field(default_factory=MetaData)
    table_kwargs: dict[str, Any] = dataclass_field(default_factory=dict)
    _table: Table | None = dataclass_field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate the definition."""
        names = [f.name for f in self.fields]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate field names in '{self.name}': {sorted(duplicates)}")
        for well_known in self.well_known_fields:
            if well_known not in names:
                raise ValueError(
                    f"Well-known field '{well_known}' is not defined on '{self.name}'"
                )

    @property
    def table(self) -> Table:
        """The SQLAlchemy Table, built once on first use."""
        if self._table is None:
            self._table = Table(
                self.db_name,
                self.metadata,
                *(f.to_column() for f in self.fields),
                **self.table_kwargs,
            )
        return self._table

    @property
    def field_names(self) -> list[str]:
        """Logical field names in definition order."""
        return [f.name for f in self.fields]

    @property
    def well_known_fields(self) -> list[str]:
        """Logical names of the database-managed fields."""
        return [
            name
            for name in (
                self.cc_field,
                self.insert_timestamp_field,
                self.update_timestamp_field,
            )
            if name
        ]

    def has_field(self, name: str) -> bool:
        """Check whether a logical field exists."""
        return name in self.table.c

    def column(self, name: str) -> Column:
        """Resolve the column handle for a logical field name.

        Args:
            name: Logical field name

        Returns:
            The SQLAlchemy column

        Raises:
            UnknownFieldError: If the field is not defined
        """
        try:
            return self.table.c[name]
        except KeyError:
            raise UnknownFieldError(name, self.name) from None

    def labeled_columns(self, names: list[str] | None = None) -> list[ColumnElement]:
        """Columns labeled with their logical names, for SELECT lists.

        Result rows then map logical field names to values regardless of
        the physical column names.
        """
        selected = names if names is not None else self.field_names
        return [self.column(name).label(name) for name in selected]


def history_log_definition(
    name: str,
    db_name: str,
    *,
    id_column: str | None = None,
    commit_id_column: str | None = None,
    created_at_column: str | None = None,
    entry_column: str | None = None,
    metadata: MetaData | None = None,
) -> TableDefinition:
    """Build the definition of a history log table.

    Column names default to ``<db_name>_id``, ``<db_name>_commit_id``,
    ``<db_name>_created_at`` and ``<db_name>_history_entry``.

    Args:
        name: Logical table name
        db_name: Physical table name
        id_column: Physical name of the sequence column
        commit_id_column: Physical name of the commit id column
        created_at_column: Physical name of the creation timestamp column
        entry_column: Physical name of the JSON payload column
        metadata: Optional SQLAlchemy metadata to register on

    Returns:
        TableDefinition with the fixed history log fields
    """
    return TableDefinition(
        name=name,
        db_name=db_name,
        fields=(
            FieldDef(
                HISTORY_ID_FIELD,
                id_column or f"{db_name}_id",
                Integer,
                primary_key=True,
            ),
            FieldDef(
                HISTORY_COMMIT_ID_FIELD,
                commit_id_column or f"{db_name}_commit_id",
                Text,
                nullable=False,
                unique=True,
            ),
            FieldDef(
                HISTORY_CREATED_AT_FIELD,
                created_at_column or f"{db_name}_created_at",
                DateTime(timezone=True),
                nullable=False,
            ),
            FieldDef(
                HISTORY_ENTRY_FIELD,
                entry_column or f"{db_name}_history_entry",
                Text,
                nullable=False,
            ),
        ),
        metadata=metadata if metadata is not None else MetaData(),
        # Sequence numbers must never be reused
        table_kwargs={"sqlite_autoincrement": True},
    )
