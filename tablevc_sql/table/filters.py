"""
Structural filter expressions over table records.

A filter expression is a small tree:
- And / Or: boolean combinators over a list of expressions
- Not: negation
- Comparison: equals, notEquals, lessThan, lessEquals, moreThan, moreEquals
- FieldReference: a logical field name
- Scalar / QuotedString: literal values
- FunctionCall: a named backend function applied to argument expressions

Trees are built with the helper functions below, or parsed from their dict
wire form with from_dict(). They are compiled into SQL predicates by
FilterCompiler.

Example:
    >>> expr = or_(equals(field("_id"), "TEST5"), equals(field("_id"), "TEST3"))
    >>> expr = not_(more_than(field("_id"), "TEST5"))
    >>> expr = from_dict({"type": "moreThan",
    ...                   "left": {"type": "fieldReference", "fieldReference": "_id"},
    ...                   "right": {"type": "scalar", "value": "TEST5"}})
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import UnrecognizedFilterError


class ComparisonOperator(str, Enum):
    """Comparison operator tags."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    LESS_THAN = "lessThan"
    LESS_EQUALS = "lessEquals"
    MORE_THAN = "moreThan"
    MORE_EQUALS = "moreEquals"


class FilterExpression:
    """Base class of every filter tree node."""

    __slots__ = ()


@dataclass(frozen=True)
class And(FilterExpression):
    expressions: tuple[FilterExpression, ...]


@dataclass(frozen=True)
class Or(FilterExpression):
    expressions: tuple[FilterExpression, ...]


@dataclass(frozen=True)
class Not(FilterExpression):
    expression: FilterExpression


@dataclass(frozen=True)
class Comparison(FilterExpression):
    """Binary comparison.

    Attributes:
        operator: A ComparisonOperator, or a raw tag string
        left: Left operand
        right: Right operand
    """

    operator: ComparisonOperator | str
    left: FilterExpression
    right: FilterExpression


@dataclass(frozen=True)
class FieldReference(FilterExpression):
    name: str


@dataclass(frozen=True)
class Scalar(FilterExpression):
    value: Any


@dataclass(frozen=True)
class QuotedString(FilterExpression):
    text: str


@dataclass(frozen=True)
class FunctionCall(FilterExpression):
    name: str
    parameters: tuple[FilterExpression, ...]


def _wrap(operand: Any) -> FilterExpression:
    """Bare Python values become Scalar literals."""
    if isinstance(operand, FilterExpression):
        return operand
    return Scalar(operand)


def field(name: str) -> FieldReference:
    return FieldReference(name)


def value(scalar: Any) -> Scalar:
    return Scalar(scalar)


def quoted(text: str) -> QuotedString:
    return QuotedString(text)


def and_(*expressions: Any) -> And:
    return And(tuple(_wrap(e) for e in expressions))


def or_(*expressions: Any) -> Or:
    return Or(tuple(_wrap(e) for e in expressions))


def not_(expression: Any) -> Not:
    return Not(_wrap(expression))


def compare(operator: ComparisonOperator | str, left: Any, right: Any) -> Comparison:
    return Comparison(operator, _wrap(left), _wrap(right))


def equals(left: Any, right: Any) -> Comparison:
    return compare(ComparisonOperator.EQUALS, left, right)


def not_equals(left: Any, right: Any) -> Comparison:
    return compare(ComparisonOperator.NOT_EQUALS, left, right)


def less_than(left: Any, right: Any) -> Comparison:
    return compare(ComparisonOperator.LESS_THAN, left, right)


def less_or_equal(left: Any, right: Any) -> Comparison:
    return compare(ComparisonOperator.LESS_EQUALS, left, right)


def more_than(left: Any, right: Any) -> Comparison:
    return compare(ComparisonOperator.MORE_THAN, left, right)


def more_or_equal(left: Any, right: Any) -> Comparison:
    return compare(ComparisonOperator.MORE_EQUALS, left, right)


def function_call(name: str, *parameters: Any) -> FunctionCall:
    return FunctionCall(name, tuple(_wrap(p) for p in parameters))


def from_dict(data: Any) -> FilterExpression:
    """Parse the dict wire form of a filter tree.

    Args:
        data: Dict with a "type" discriminator

    Returns:
        The filter tree

    Raises:
        UnrecognizedFilterError: If a node has an unknown or missing type
    """
    if not isinstance(data, dict):
        raise UnrecognizedFilterError(data)

    node_type = data.get("type")
    if node_type == "and":
        return And(tuple(from_dict(e) for e in data["expressions"]))
    if node_type == "or":
        return Or(tuple(from_dict(e) for e in data["expressions"]))
    if node_type == "not":
        return Not(from_dict(data["expression"]))
    if node_type == "fieldReference":
        return FieldReference(data["fieldReference"])
    if node_type == "scalar":
        return Scalar(data.get("value"))
    if node_type == "quotedString":
        return QuotedString(data["text"])
    if node_type == "functionCall":
        return FunctionCall(
            data["functionName"],
            tuple(from_dict(p) for p in data.get("parameters", [])),
        )
    try:
        operator = ComparisonOperator(node_type)
    except ValueError:
        raise UnrecognizedFilterError(data) from None
    return Comparison(operator, from_dict(data["left"]), from_dict(data["right"]))
