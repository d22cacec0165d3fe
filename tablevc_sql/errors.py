"""
Error types for tablevc-sql.

This module defines all exception types raised by the package:
- TableVcError: Base exception
- ContractViolationError: Caller misuse, never retried
- HistoryConsistencyError: The requested history vantage point cannot be served

Driver and connectivity failures are NOT wrapped here. They propagate
untransformed from SQLAlchemy and the database driver.

Invariants:
    - All errors inherit from TableVcError
    - Errors include context for debugging
    - Error messages are actionable
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TableVcError(Exception):
    """Base exception for all tablevc-sql errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "TABLEVC_ERROR"
        self.details = details or {}


class ContractViolationError(TableVcError):
    """The caller used the API in a way it does not support.

    Raised when:
    - A required payload is missing
    - A filter tree contains an unknown node or operator
    - A field name is not part of the table definition
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "CONTRACT_VIOLATION", details=details)


class MissingRecordPayloadError(ContractViolationError):
    """A key was given to set_record without a record."""

    def __init__(self, record_id: Any) -> None:
        super().__init__(
            "If setting the record id, you need a record as well",
            code="MISSING_RECORD_PAYLOAD",
            details={"record_id": record_id},
        )
        self.record_id = record_id


class UnknownFieldError(ContractViolationError):
    """A logical field name is not defined on the table."""

    def __init__(self, field_name: str, table_name: str) -> None:
        super().__init__(
            f"Unknown field '{field_name}' for table '{table_name}'",
            code="UNKNOWN_FIELD",
            details={"field_name": field_name, "table_name": table_name},
        )
        self.field_name = field_name
        self.table_name = table_name


class UnrecognizedFilterError(ContractViolationError):
    """A filter tree node does not match any known variant."""

    def __init__(self, node: Any) -> None:
        super().__init__(
            f"Unrecognized filter: {node!r}",
            code="UNRECOGNIZED_FILTER",
            details={"node_type": type(node).__name__},
        )
        self.node = node


class UnrecognizedOperatorError(ContractViolationError):
    """A comparison node carries an unknown operator tag."""

    def __init__(self, operator: Any) -> None:
        super().__init__(
            f"Unrecognized comparison operator: {operator!r}",
            code="UNRECOGNIZED_OPERATOR",
            details={"operator": str(operator)},
        )
        self.operator = operator


class UnrecognizedEntryError(ContractViolationError):
    """A serialized history entry has an unknown operation discriminator."""

    def __init__(self, operation: Any) -> None:
        super().__init__(
            f"Unrecognized history operation: {operation!r}",
            code="UNRECOGNIZED_ENTRY",
            details={"operation": str(operation)},
        )
        self.operation = operation


class TransactionScopeError(ContractViolationError):
    """A write transaction was requested inside a read-only scope."""

    def __init__(self) -> None:
        super().__init__(
            "Cannot open a transaction inside a read-only task scope",
            code="TRANSACTION_SCOPE",
        )


class HistoryNotReadyError(ContractViolationError):
    """A durable history was used before it finished loading."""

    def __init__(self, state: str) -> None:
        super().__init__(
            f"History is not ready (state: {state})",
            code="HISTORY_NOT_READY",
            details={"state": state},
        )
        self.state = state


class RecordNotFoundError(ContractViolationError):
    """The record addressed by a versioned-table operation does not exist."""

    def __init__(self, record_id: Any, table_name: str) -> None:
        super().__init__(
            f"Record '{record_id}' not found in table '{table_name}'",
            code="RECORD_NOT_FOUND",
            details={"record_id": record_id, "table_name": table_name},
        )
        self.record_id = record_id
        self.table_name = table_name


class RecordExistsError(ContractViolationError):
    """A versioned-table add targeted a key that is already stored."""

    def __init__(self, record_id: Any, table_name: str) -> None:
        super().__init__(
            f"Record '{record_id}' already exists in table '{table_name}'",
            code="RECORD_EXISTS",
            details={"record_id": record_id, "table_name": table_name},
        )
        self.record_id = record_id
        self.table_name = table_name


class HistoryConsistencyError(TableVcError):
    """The history store cannot serve the requested vantage point.

    The caller must re-synchronize from scratch.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "HISTORY_CONSISTENCY", details=details)


class CommitNotFoundError(HistoryConsistencyError):
    """The commit id to resume from is not in the history log."""

    def __init__(self, commit_id: str, table_name: str) -> None:
        super().__init__(
            f"Commit '{commit_id}' not found in history log '{table_name}'",
            code="COMMIT_NOT_FOUND",
            details={"commit_id": commit_id, "table_name": table_name},
        )
        self.commit_id = commit_id


class EmptyHistoryError(HistoryConsistencyError):
    """Loading history from a commit id produced no entries."""

    def __init__(self, commit_id: str) -> None:
        super().__init__(
            "Unexpected empty list of history entries",
            code="EMPTY_HISTORY",
            details={"commit_id": commit_id},
        )
        self.commit_id = commit_id
