"""
Table module for tablevc-sql - record CRUD over one relational table.

This module handles:
- Structural filter expressions and their compilation to SQL
- Shallow field-level deltas for minimal UPDATE statements
- The RecordTable mapper (get, get many, keys, has, count, set, delete)

Invariants:
    - Field references are resolved through the TableDefinition only
    - Updates touch exactly the changed fields
    - Database-managed fields are never written
"""

from .field_changes import field_changes, identity_compare, values_equal
from .filter_compiler import FilterCompiler
from .filters import (
    And,
    Comparison,
    ComparisonOperator,
    FieldReference,
    FilterExpression,
    FunctionCall,
    Not,
    Or,
    QuotedString,
    Scalar,
)
from .record_table import RecordTable, generate_new_id

__all__ = [
    "And",
    "Comparison",
    "ComparisonOperator",
    "FieldReference",
    "FilterCompiler",
    "FilterExpression",
    "FunctionCall",
    "Not",
    "Or",
    "QuotedString",
    "RecordTable",
    "Scalar",
    "field_changes",
    "generate_new_id",
    "identity_compare",
    "values_equal",
]
