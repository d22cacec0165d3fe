"""
Compile filter expressions into SQLAlchemy predicates.

The compiler walks a filter tree recursively and resolves field references
against one TableDefinition, so logical field names become physical columns.

Invariants:
    - An unknown field name raises UnknownFieldError
    - An unknown node raises UnrecognizedFilterError
    - Literals are bound parameters, never inlined into SQL text
    - Function names and arity are passed through unchecked

How to change safely:
    - New node types need a branch here and in filters.from_dict()
    - Empty And/Or lists are the caller's responsibility
"""

from __future__ import annotations

import logging
import operator as py_operator
from collections.abc import Callable
from typing import Any

import sqlalchemy as sa
from sqlalchemy.sql.elements import ColumnElement

from ..db.schema import TableDefinition
from ..errors import UnrecognizedFilterError, UnrecognizedOperatorError
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

logger = logging.getLogger(__name__)

OPERATORS: dict[ComparisonOperator, Callable[[Any, Any], ColumnElement]] = {
    ComparisonOperator.EQUALS: py_operator.eq,
    ComparisonOperator.NOT_EQUALS: py_operator.ne,
    ComparisonOperator.LESS_THAN: py_operator.lt,
    ComparisonOperator.LESS_EQUALS: py_operator.le,
    ComparisonOperator.MORE_THAN: py_operator.gt,
    ComparisonOperator.MORE_EQUALS: py_operator.ge,
}


class FilterCompiler:
    """Translates filter trees into WHERE clauses for one table.

    Attributes:
        definition: Table the field references resolve against
        strict_operators: Reject unknown comparison operators. When False an
            unknown operator falls back to equals and a warning is logged.

    Example:
        >>> compiler = FilterCompiler(tst_definition)
        >>> where = compiler.compile(more_than(field("_id"), "TEST5"))
        >>> select(tst_definition.table).where(where)
    """

    def __init__(self, definition: TableDefinition, strict_operators: bool = True) -> None:
        self.definition = definition
        self.strict_operators = strict_operators

    def compile(self, expression: FilterExpression) -> ColumnElement:
        """Compile a filter tree.

        Args:
            expression: Root of the filter tree

        Returns:
            A SQLAlchemy column expression usable in .where()

        Raises:
            UnknownFieldError: If a field reference is not defined on the table
            UnrecognizedFilterError: If a node is not a known variant
            UnrecognizedOperatorError: If strict and an operator is unknown
        """
        if isinstance(expression, (And, Or)):
            compiled = [self.compile(e) for e in expression.expressions]
            return sa.and_(*compiled) if isinstance(expression, And) else sa.or_(*compiled)
        if isinstance(expression, FieldReference):
            return self.definition.column(expression.name)
        if isinstance(expression, Comparison):
            apply = self._operator(expression.operator)
            return apply(self.compile(expression.left), self.compile(expression.right))
        if isinstance(expression, Not):
            return sa.not_(self.compile(expression.expression))
        if isinstance(expression, Scalar):
            return sa.literal(expression.value)
        if isinstance(expression, QuotedString):
            return sa.literal(expression.text, sa.String)
        if isinstance(expression, FunctionCall):
            function = getattr(sa.func, expression.name)
            return function(*(self.compile(p) for p in expression.parameters))
        raise UnrecognizedFilterError(expression)

    def _operator(self, tag: ComparisonOperator | str) -> Callable[[Any, Any], ColumnElement]:
        try:
            return OPERATORS[ComparisonOperator(tag)]
        except ValueError:
            if self.strict_operators:
                raise UnrecognizedOperatorError(tag) from None
            logger.warning(
                "Unrecognized comparison operator, falling back to equals",
                extra={"operator": str(tag), "table": self.definition.name},
            )
            return OPERATORS[ComparisonOperator.EQUALS]
