"""
Unit tests for filter expressions and the filter compiler.

Compiled predicates are checked by rendering them to SQL, no database
is involved.

Tests cover:
- Field references resolve to physical columns
- Boolean combinators and comparison operators
- Unknown fields, nodes and operators
- Parsing the dict wire form
"""

import pytest
from sqlalchemy import MetaData
from sqlalchemy.dialects import sqlite

from tablevc_sql.errors import UnknownFieldError, UnrecognizedFilterError, UnrecognizedOperatorError
from tablevc_sql.table.filter_compiler import FilterCompiler
from tablevc_sql.table.filters import (
    And,
    Comparison,
    ComparisonOperator,
    FieldReference,
    Not,
    Scalar,
    and_,
    compare,
    equals,
    field,
    from_dict,
    function_call,
    less_or_equal,
    more_than,
    not_,
    or_,
    quoted,
)
from tests.conftest import make_tst_definition


def render(expression) -> str:
    """Render a SQLAlchemy expression with literal values inlined."""
    return str(
        expression.compile(dialect=sqlite.dialect(), compile_kwargs={"literal_binds": True})
    )


class TestFilterCompiler:
    """Tests for FilterCompiler."""

    @pytest.fixture
    def compiler(self):
        return FilterCompiler(make_tst_definition(MetaData()))

    def test_field_reference_uses_physical_column(self, compiler):
        sql = render(compiler.compile(more_than(field("_id"), "TEST5")))

        assert sql == "tst.tst_id > 'TEST5'"

    def test_scalars_are_bound_parameters(self, compiler):
        """Literals are parameters unless rendered with literal_binds."""
        compiled = compiler.compile(equals(field("name"), "x")).compile(dialect=sqlite.dialect())

        assert "?" in str(compiled)
        assert list(compiled.params.values()) == ["x"]

    def test_or_of_equals(self, compiler):
        expr = or_(equals(field("_id"), "TEST5"), equals(field("_id"), "TEST3"))

        sql = render(compiler.compile(expr))

        assert sql == "tst.tst_id = 'TEST5' OR tst.tst_id = 'TEST3'"

    def test_not(self, compiler):
        sql = render(compiler.compile(not_(more_than(field("_id"), "TEST5"))))

        assert sql == "tst.tst_id <= 'TEST5'" or sql == "NOT (tst.tst_id > 'TEST5')"

    def test_and_with_quoted_string(self, compiler):
        expr = and_(less_or_equal(field("amount"), 10), equals(field("name"), quoted("a")))

        sql = render(compiler.compile(expr))

        assert sql == "tst.tst_amount <= 10 AND tst.tst_name = 'a'"

    def test_all_operators(self, compiler):
        """Every operator tag compiles to its SQL comparison."""
        expected = {
            ComparisonOperator.EQUALS: "=",
            ComparisonOperator.NOT_EQUALS: "!=",
            ComparisonOperator.LESS_THAN: "<",
            ComparisonOperator.LESS_EQUALS: "<=",
            ComparisonOperator.MORE_THAN: ">",
            ComparisonOperator.MORE_EQUALS: ">=",
        }
        for operator, sql_operator in expected.items():
            sql = render(compiler.compile(compare(operator, field("amount"), 1)))
            assert sql == f"tst.tst_amount {sql_operator} 1"

    def test_function_call(self, compiler):
        expr = equals(function_call("lower", field("name")), "abc")

        sql = render(compiler.compile(expr))

        assert sql == "lower(tst.tst_name) = 'abc'"

    def test_unknown_field(self, compiler):
        with pytest.raises(UnknownFieldError) as exc_info:
            compiler.compile(equals(field("missing"), 1))

        assert exc_info.value.field_name == "missing"

    def test_unknown_node(self, compiler):
        with pytest.raises(UnrecognizedFilterError):
            compiler.compile(object())

    def test_unknown_operator_strict(self, compiler):
        with pytest.raises(UnrecognizedOperatorError):
            compiler.compile(Comparison("like", FieldReference("name"), Scalar("x")))

    def test_unknown_operator_lenient_falls_back_to_equals(self, caplog):
        compiler = FilterCompiler(make_tst_definition(MetaData()), strict_operators=False)

        sql = render(compiler.compile(Comparison("like", FieldReference("name"), Scalar("x"))))

        assert sql == "tst.tst_name = 'x'"
        assert "falling back to equals" in caplog.text


class TestFromDict:
    """Tests for parsing the dict wire form."""

    def test_comparison(self):
        expr = from_dict(
            {
                "type": "moreThan",
                "left": {"type": "fieldReference", "fieldReference": "_id"},
                "right": {"type": "scalar", "value": "TEST5"},
            }
        )

        assert expr == more_than(field("_id"), "TEST5")

    def test_nested(self):
        expr = from_dict(
            {
                "type": "not",
                "expression": {
                    "type": "and",
                    "expressions": [
                        {
                            "type": "equals",
                            "left": {"type": "fieldReference", "fieldReference": "name"},
                            "right": {"type": "quotedString", "text": "x"},
                        }
                    ],
                },
            }
        )

        assert isinstance(expr, Not)
        assert isinstance(expr.expression, And)
        assert expr.expression.expressions[0].right == quoted("x")

    def test_function_call(self):
        expr = from_dict(
            {
                "type": "functionCall",
                "functionName": "lower",
                "parameters": [{"type": "fieldReference", "fieldReference": "name"}],
            }
        )

        assert expr == function_call("lower", field("name"))

    def test_unknown_type(self):
        with pytest.raises(UnrecognizedFilterError):
            from_dict({"type": "between"})

    def test_not_a_dict(self):
        with pytest.raises(UnrecognizedFilterError):
            from_dict(["equals"])
