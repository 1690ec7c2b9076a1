"""Expression-specific error types for sdkquery.

This module defines exceptions for expression lexing, parsing, and
evaluation, following the pattern from sdkquery.exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sdkquery.exceptions import SdkQueryError

__all__ = [
    "ExpressionError",
    "ExpressionSyntaxError",
    "LexerError",
    "ParseError",
    "IncompleteExpressionError",
    "EvaluationErrorKind",
    "ExpressionEvaluationError",
    "ExpressionErrorInfo",
]


class ExpressionError(SdkQueryError):
    """Base exception for all expression-related errors.

    Attributes:
        message: Human-readable error message.
        expression: The expression that caused the error (if known).
    """

    def __init__(
        self,
        message: str,
        expression: str | None = None,
    ) -> None:
        """Initialize the ExpressionError.

        Args:
            message: Human-readable error message.
            expression: The expression that caused the error.
        """
        self.expression = expression
        super().__init__(message)


class ExpressionSyntaxError(ExpressionError):
    """Exception raised when an expression cannot be tokenized or parsed.

    Attributes:
        message: Human-readable error message (with caret rendering).
        reason: The bare reason, without the rendered expression.
        expression: The expression that failed to parse.
        position: Character position where the error occurred.
        offset: UTF-8 byte offset where the error occurred.
    """

    def __init__(
        self,
        reason: str,
        expression: str,
        position: int = 0,
    ) -> None:
        """Initialize the ExpressionSyntaxError.

        Args:
            reason: Human-readable description of the problem.
            expression: The expression that failed to parse.
            position: Character position where the error occurred.
        """
        self.reason = reason
        self.position = position
        self.offset = len(expression[:position].encode("utf-8"))
        super().__init__(_render(reason, expression, position), expression=expression)


def _render(reason: str, expression: str, position: int) -> str:
    """Show the line holding ``position`` with a caret under the error."""
    line_start = expression.rfind("\n", 0, position) + 1
    line_end = expression.find("\n", position)
    if line_end == -1:
        line_end = len(expression)
    line = expression[line_start:line_end]
    column = position - line_start
    where = f"position {position}"
    if "\n" in expression:
        line_number = expression.count("\n", 0, line_start) + 1
        where = f"line {line_number}, column {column} ({where})"
    return f"{reason} at {where}:\n{line}\n{' ' * column}^"


class LexerError(ExpressionSyntaxError):
    """Raised for a bad character or an unterminated string or literal."""


class ParseError(ExpressionSyntaxError):
    """Raised when the token stream does not match the grammar.

    Attributes:
        expected: Token kinds that would have been accepted at the error
            location (empty when not meaningful).
    """

    def __init__(
        self,
        reason: str,
        expression: str,
        position: int = 0,
        expected: tuple[str, ...] = (),
    ) -> None:
        self.expected = expected
        super().__init__(reason, expression=expression, position=position)


class IncompleteExpressionError(ParseError):
    """Raised when the expression ends before a construct is complete."""


class EvaluationErrorKind(str, Enum):
    """Category of an evaluation failure."""

    UNKNOWN_FUNCTION = "unknown_function"
    ARITY_MISMATCH = "arity_mismatch"
    TYPE_MISMATCH = "type_mismatch"
    INVALID_STEP_0 = "invalid_step_0"
    MAX_DEPTH_EXCEEDED = "max_depth_exceeded"


class ExpressionEvaluationError(ExpressionError):
    """Exception raised when a parsed expression fails during evaluation.

    Missing data never raises; only unknown functions, bad function arguments,
    zero-step slices and runaway nesting do.

    Attributes:
        message: Human-readable error message.
        kind: Category of the failure.
        function: Name of the function involved, if any.
    """

    def __init__(
        self,
        message: str,
        kind: EvaluationErrorKind,
        function: str | None = None,
        expression: str | None = None,
    ) -> None:
        """Initialize the ExpressionEvaluationError.

        Args:
            message: Human-readable error message.
            kind: Category of the failure.
            function: Name of the function involved, if any.
            expression: Source text of the expression, when known.
        """
        self.kind = kind
        self.function = function
        super().__init__(message, expression=expression)


@dataclass(frozen=True, slots=True)
class ExpressionErrorInfo:
    """Expression parsing error information.

    Immutable, value-form description of a syntax error for callers that
    prefer results over exceptions (build-time validators).

    Attributes:
        expression: The expression that failed.
        message: Human-readable error message (without caret rendering).
        position: Character position in the expression.
        offset: UTF-8 byte offset in the expression.
    """

    expression: str
    message: str
    position: int = 0
    offset: int = 0

    @classmethod
    def from_error(cls, error: ExpressionSyntaxError) -> ExpressionErrorInfo:
        """Build an info record from a raised syntax error."""
        return cls(
            expression=error.expression or "",
            message=error.reason,
            position=error.position,
            offset=error.offset,
        )
