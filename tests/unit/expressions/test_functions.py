"""Unit tests for the built-in function library."""

from __future__ import annotations

import math
from typing import Any

import pytest

from sdkquery.expressions.errors import (
    EvaluationErrorKind,
    ExpressionEvaluationError,
)
from sdkquery.expressions.evaluator import evaluate
from sdkquery.expressions.functions import (
    FunctionSpec,
    FunctionTable,
    ParamType,
    default_function_table,
)
from sdkquery.expressions.parser import parse

BUILTINS = {
    "abs", "avg", "ceil", "contains", "ends_with", "floor", "join", "keys",
    "length", "map", "max", "max_by", "merge", "min", "min_by", "not_null",
    "reverse", "sort", "sort_by", "starts_with", "sum", "to_array",
    "to_string", "to_number", "type", "values",
}  # fmt: skip


def search(expression: str, document: Any = None, functions: Any = None) -> Any:
    return evaluate(parse(expression), document, functions)


def _kind(expression: str, document: Any = None) -> EvaluationErrorKind:
    with pytest.raises(ExpressionEvaluationError) as exc_info:
        search(expression, document)
    return exc_info.value.kind


class TestFunctionTable:
    """Test the default table and extension."""

    def test_default_table_has_builtins(self) -> None:
        assert set(default_function_table()) == BUILTINS

    def test_default_table_is_shared(self) -> None:
        assert default_function_table() is default_function_table()

    def test_table_is_read_only(self) -> None:
        table = default_function_table()
        with pytest.raises(TypeError):
            table["upper"] = None  # type: ignore[index]

    def test_extend_returns_new_table(self) -> None:
        upper = FunctionSpec("upper", ((ParamType.STRING,),), lambda s: s.upper())
        table = default_function_table().extend(upper)

        assert isinstance(table, FunctionTable)
        assert "upper" in table
        assert "upper" not in default_function_table()
        assert len(table) == len(BUILTINS) + 1
        assert search("upper(name)", {"name": "abc"}, table) == "ABC"

    def test_extended_function_is_type_checked(self) -> None:
        upper = FunctionSpec("upper", ((ParamType.STRING,),), lambda s: s.upper())
        table = FunctionTable().extend(upper)
        with pytest.raises(ExpressionEvaluationError) as exc_info:
            search("upper(`1`)", None, table)
        assert exc_info.value.kind is EvaluationErrorKind.TYPE_MISMATCH
        assert exc_info.value.function == "upper"

    def test_custom_table_replaces_builtins(self) -> None:
        with pytest.raises(ExpressionEvaluationError) as exc_info:
            search("length(@)", [], FunctionTable())
        assert exc_info.value.kind is EvaluationErrorKind.UNKNOWN_FUNCTION


class TestNumericFunctions:
    """Test abs, avg, ceil, floor, sum, max and min."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("abs(`-3`)", 3),
            ("abs(`2.5`)", 2.5),
            ("avg(`[1, 2, 3, 4]`)", 2.5),
            ("avg(`[]`)", None),
            ("ceil(`1.2`)", 2),
            ("floor(`1.8`)", 1),
            ("floor(`-1.2`)", -2),
            ("sum(`[1, 2, 3]`)", 6),
            ("sum(`[]`)", 0),
            ("max(`[1, 5, 3]`)", 5),
            ("max(`[\"a\", \"c\", \"b\"]`)", "c"),
            ("max(`[]`)", None),
            ("min(`[4, 2, 8]`)", 2),
            ("min(`[]`)", None),
        ],
    )
    def test_results(self, expression: str, expected: Any) -> None:
        assert search(expression) == expected

    @pytest.mark.parametrize("function", ["ceil", "floor"])
    def test_rounding_passes_infinity_through(self, function: str) -> None:
        assert search(f"{function}(to_number('1e400'))") == math.inf
        assert search(f"{function}(to_number('-1e400'))") == -math.inf

    @pytest.mark.parametrize(
        "expression",
        [
            "abs('1')",
            "avg(`[1, \"2\"]`)",
            "sum(`[true]`)",
            "max(`[1, \"a\"]`)",
            "ceil(`null`)",
        ],
    )
    def test_type_errors(self, expression: str) -> None:
        assert _kind(expression) is EvaluationErrorKind.TYPE_MISMATCH


class TestStringFunctions:
    """Test contains, starts_with, ends_with, join and reverse."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("contains('foobar', 'oba')", True),
            ("contains('foobar', 'x')", False),
            ("contains('foobar', `1`)", False),
            ("contains(`[1, \"a\", true]`, `true`)", True),
            ("contains(`[1]`, `true`)", False),
            ("contains(`[{\"a\": 1}]`, `{\"a\": 1}`)", True),
            ("starts_with('foobar', 'foo')", True),
            ("ends_with('foobar', 'foo')", False),
            ("join(', ', `[\"a\", \"b\"]`)", "a, b"),
            ("join('-', `[]`)", ""),
            ("reverse('abc')", "cba"),
            ("reverse(`[1, 2, 3]`)", [3, 2, 1]),
        ],
    )
    def test_results(self, expression: str, expected: Any) -> None:
        assert search(expression) == expected

    @pytest.mark.parametrize(
        "expression",
        ["join(', ', `[1, 2]`)", "starts_with(`1`, 'a')", "contains(`{}`, 'a')"],
    )
    def test_type_errors(self, expression: str) -> None:
        assert _kind(expression) is EvaluationErrorKind.TYPE_MISMATCH


class TestCollectionFunctions:
    """Test length, keys, values, merge, not_null, to_array and sort."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("length(foo)", 3),
            ("length('')", 0),
            ("length('héllo')", 5),
            ("length(`{\"a\": 1}`)", 1),
            ("keys(`{\"a\": 1, \"b\": 2}`)", ["a", "b"]),
            ("values(`{\"a\": 1, \"b\": 2}`)", [1, 2]),
            ("merge(`{\"a\": 1}`, `{\"a\": 2, \"b\": 3}`)", {"a": 2, "b": 3}),
            ("merge(`{}`)", {}),
            ("not_null(missing, `null`, 'x', 'y')", "x"),
            ("not_null(missing)", None),
            ("to_array(`1`)", [1]),
            ("to_array(`[1]`)", [1]),
            ("sort(`[3, 1, 2]`)", [1, 2, 3]),
            ("sort(`[\"b\", \"a\"]`)", ["a", "b"]),
        ],
    )
    def test_results(self, expression: str, expected: Any) -> None:
        assert search(expression, {"foo": [1, 2, 3]}) == expected

    def test_length_of_number_is_type_error(self) -> None:
        assert _kind("length(`1`)") is EvaluationErrorKind.TYPE_MISMATCH

    @pytest.mark.parametrize("expression", ["merge()", "not_null()", "keys()"])
    def test_arity_errors(self, expression: str) -> None:
        assert _kind(expression) is EvaluationErrorKind.ARITY_MISMATCH

    def test_arity_message(self) -> None:
        with pytest.raises(ExpressionEvaluationError, match="at least 1 argument"):
            search("merge()")


class TestConversionFunctions:
    """Test to_string, to_number and type."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("to_string('a')", "a"),
            ("to_string(`1`)", "1"),
            ("to_string(`[1, 2]`)", "[1,2]"),
            ("to_string(`{\"a\": true}`)", '{"a":true}'),
            ("to_string(`null`)", "null"),
            ("to_number('12')", 12),
            ("to_number('-1.5')", -1.5),
            ("to_number('1e3')", 1000.0),
            ("to_number('abc')", None),
            ("to_number('')", None),
            ("to_number(`7`)", 7),
            ("to_number(`true`)", None),
            ("type(`null`)", "null"),
            ("type(`true`)", "boolean"),
            ("type(`1.5`)", "number"),
            ("type('a')", "string"),
            ("type(`[]`)", "array"),
            ("type(`{}`)", "object"),
        ],
    )
    def test_results(self, expression: str, expected: Any) -> None:
        assert search(expression) == expected

    def test_to_number_integer_keeps_int_type(self) -> None:
        assert isinstance(search("to_number('12')"), int)


class TestExpressionReferenceFunctions:
    """Test map, sort_by, max_by and min_by."""

    PEOPLE = {
        "people": [
            {"name": "b", "age": 30},
            {"name": "a", "age": 20},
            {"name": "c", "age": 30},
        ]
    }

    def test_map(self) -> None:
        assert search("map(&age, people)", self.PEOPLE) == [30, 20, 30]

    def test_map_keeps_nulls(self) -> None:
        """map() returns one result per element, nulls included."""
        assert search("map(&missing, people)", self.PEOPLE) == [None, None, None]

    def test_sort_by_is_stable(self) -> None:
        result = search("sort_by(people, &age)[*].name", self.PEOPLE)
        assert result == ["a", "b", "c"]

    def test_sort_by_string_keys(self) -> None:
        assert search("sort_by(people, &name)[*].age", self.PEOPLE) == [20, 30, 30]

    def test_sort_by_mixed_keys_is_type_error(self) -> None:
        document = {"items": [{"k": 1}, {"k": "a"}]}
        assert _kind("sort_by(items, &k)", document) is EvaluationErrorKind.TYPE_MISMATCH

    def test_sort_by_null_keys_is_type_error(self) -> None:
        document = {"items": [{"k": 1}, {}]}
        assert _kind("sort_by(items, &k)", document) is EvaluationErrorKind.TYPE_MISMATCH

    def test_max_by(self) -> None:
        assert search("max_by(people, &age).name", self.PEOPLE) == "b"

    def test_min_by(self) -> None:
        assert search("min_by(people, &age).name", self.PEOPLE) == "a"

    def test_max_by_empty(self) -> None:
        assert search("max_by(`[]`, &age)") is None

    def test_expression_argument_required(self) -> None:
        assert _kind("sort_by(people, age)", self.PEOPLE) is EvaluationErrorKind.TYPE_MISMATCH

    def test_expression_argument_rejected_for_value_param(self) -> None:
        assert _kind("length(&foo)") is EvaluationErrorKind.TYPE_MISMATCH

    def test_function_arguments_materialize_projections(self) -> None:
        document = {"foo": [{"a": 1}, {}, {"a": 3}]}
        assert search("sum(foo[*].a)", document) == 4
