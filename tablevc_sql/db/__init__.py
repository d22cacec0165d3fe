"""
Database module for tablevc-sql.

This module handles:
- Table definitions (logical field names to physical columns)
- The history log table layout
- Async statement execution with ambient task/tx scopes
"""

from .database import Database, Scope
from .schema import FieldDef, TableDefinition, history_log_definition

__all__ = [
    "Database",
    "Scope",
    "FieldDef",
    "TableDefinition",
    "history_log_definition",
]
