"""Unit tests for expression error types."""

from __future__ import annotations

import pytest

from sdkquery.exceptions import SdkQueryError
from sdkquery.expressions.errors import (
    EvaluationErrorKind,
    ExpressionError,
    ExpressionErrorInfo,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    IncompleteExpressionError,
    LexerError,
    ParseError,
)
from sdkquery.expressions.parser import parse


class TestErrorHierarchy:
    """Test inheritance between error types."""

    @pytest.mark.parametrize(
        "error_type",
        [LexerError, ParseError, IncompleteExpressionError],
    )
    def test_syntax_errors(self, error_type: type[Exception]) -> None:
        assert issubclass(error_type, ExpressionSyntaxError)
        assert issubclass(error_type, ExpressionError)
        assert issubclass(error_type, SdkQueryError)

    def test_evaluation_error(self) -> None:
        assert issubclass(ExpressionEvaluationError, ExpressionError)
        assert not issubclass(ExpressionEvaluationError, ExpressionSyntaxError)


class TestExpressionSyntaxError:
    """Test position, offset and message rendering."""

    def test_attributes(self) -> None:
        error = ParseError("Unexpected token", "foo]", position=3, expected=("eof",))
        assert error.reason == "Unexpected token"
        assert error.expression == "foo]"
        assert error.position == 3
        assert error.offset == 3
        assert error.expected == ("eof",)

    def test_message_has_caret(self) -> None:
        error = LexerError("Unknown character '~'", "ab ~", position=3)
        assert error.message == "Unknown character '~' at position 3:\nab ~\n   ^"

    def test_multiline_expression_shows_only_the_error_line(self) -> None:
        error = ParseError("Unexpected token", "a ||\n  b ]", position=9)
        assert error.message == (
            "Unexpected token at line 2, column 4 (position 9):\n  b ]\n    ^"
        )

    def test_multiline_parse_error_caret(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse("Reservations[].Instances[]\n  .State.Name ]")
        assert exc_info.value.position == 41
        assert str(exc_info.value).endswith("  .State.Name ]\n              ^")

    def test_offset_is_utf8_bytes(self) -> None:
        error = ParseError("Bad", "'ü€' x", position=5)
        assert error.offset == 8


class TestExpressionEvaluationError:
    """Test evaluation error attributes."""

    def test_attributes(self) -> None:
        error = ExpressionEvaluationError(
            "Unknown function: nope()",
            kind=EvaluationErrorKind.UNKNOWN_FUNCTION,
            function="nope",
        )
        assert error.message == "Unknown function: nope()"
        assert error.kind is EvaluationErrorKind.UNKNOWN_FUNCTION
        assert error.function == "nope"
        assert error.expression is None

    def test_kind_values(self) -> None:
        assert {kind.value for kind in EvaluationErrorKind} == {
            "unknown_function",
            "arity_mismatch",
            "type_mismatch",
            "invalid_step_0",
            "max_depth_exceeded",
        }


class TestExpressionErrorInfo:
    """Test the value form of syntax errors."""

    def test_from_error(self) -> None:
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse("foo[")
        info = ExpressionErrorInfo.from_error(exc_info.value)
        assert info.expression == "foo["
        assert info.position == 3
        assert info.offset == 3
        assert "Unclosed" in info.message
        assert "^" not in info.message

    def test_is_frozen(self) -> None:
        info = ExpressionErrorInfo("a", "bad")
        with pytest.raises(AttributeError):
            info.message = "changed"  # type: ignore[misc]
