"""
tablevc-sql - Relational storage backend for versioned tables.

This package persists versioned record tables in a SQL database:
- Type-preserving JSON codec for history payloads
- Filter expressions compiled to SQL predicates
- RecordTable: generic CRUD mapper over one relational table
- DurableVersionHistory: a history log table mirrored in memory
- VersionedTable: record writes and history appends in one transaction

Example:
    >>> from tablevc_sql import Database, DatabaseConfig, create_versioned_table
    >>>
    >>> db = Database.from_config(DatabaseConfig(url="sqlite+aiosqlite:///app.db"))
    >>> vt = await create_versioned_table(db, tst_def, tst_log_def, "_id", who="user:42")
    >>> await vt.add_record({"_id": "TEST1", "name": "first", "amount": 10})
    >>> await vt.history.refresh()

Invariants:
    - Every write runs in a database transaction
    - The history log is append-only
    - Commit ids are derived from entry content

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import BackendConfig, DatabaseConfig, ObservabilityConfig, TableConfig
from .db import Database, FieldDef, Scope, TableDefinition, history_log_definition
from .errors import (
    CommitNotFoundError,
    ContractViolationError,
    EmptyHistoryError,
    HistoryConsistencyError,
    HistoryNotReadyError,
    MissingRecordPayloadError,
    RecordExistsError,
    RecordNotFoundError,
    TableVcError,
    TransactionScopeError,
    UnknownFieldError,
    UnrecognizedEntryError,
    UnrecognizedFilterError,
    UnrecognizedOperatorError,
)
from .history import (
    DurableVersionHistory,
    HistoryDelta,
    HistoryEntry,
    HistoryInit,
    HistoryLogStore,
    HistoryMerge,
    HistoryOperation,
    MemoryVersionHistory,
    RecordAdded,
    RecordChanged,
    RecordDeleted,
)
from .logging_config import setup_logging
from .table import FilterCompiler, RecordTable, field_changes
from .versioned import (
    VersionedTable,
    VersionedTableData,
    create_versioned_table,
    load_versioned_table_data,
)

__all__ = [
    "__version__",
    # Configuration
    "BackendConfig",
    "DatabaseConfig",
    "ObservabilityConfig",
    "TableConfig",
    "setup_logging",
    # Database
    "Database",
    "FieldDef",
    "Scope",
    "TableDefinition",
    "history_log_definition",
    # Tables
    "FilterCompiler",
    "RecordTable",
    "field_changes",
    # History
    "DurableVersionHistory",
    "HistoryDelta",
    "HistoryEntry",
    "HistoryInit",
    "HistoryLogStore",
    "HistoryMerge",
    "HistoryOperation",
    "MemoryVersionHistory",
    "RecordAdded",
    "RecordChanged",
    "RecordDeleted",
    # Versioned tables
    "VersionedTable",
    "VersionedTableData",
    "create_versioned_table",
    "load_versioned_table_data",
    # Errors
    "CommitNotFoundError",
    "ContractViolationError",
    "EmptyHistoryError",
    "HistoryConsistencyError",
    "HistoryNotReadyError",
    "MissingRecordPayloadError",
    "RecordExistsError",
    "RecordNotFoundError",
    "TableVcError",
    "TransactionScopeError",
    "UnknownFieldError",
    "UnrecognizedEntryError",
    "UnrecognizedFilterError",
    "UnrecognizedOperatorError",
]
