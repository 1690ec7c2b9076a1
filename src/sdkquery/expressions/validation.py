"""Parse-only validation of query expressions.

Build tools embed expressions in service configuration (waiter acceptors,
paginator definitions) long before anything is evaluated. This module checks
those expressions without a document and reports failures as values instead
of raising, so a whole model file can be validated in one pass.

Example:
    ```python
    issues = validate_expressions(waiters_model)
    for issue in issues:
        print(f"{issue.location}: {issue.message} (byte {issue.offset})")
    ```
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sdkquery.expressions.config import DEFAULTS
from sdkquery.expressions.errors import ExpressionErrorInfo, ExpressionSyntaxError
from sdkquery.expressions.parser import parse
from sdkquery.logging import get_logger

__all__ = [
    "ExpressionIssue",
    "check",
    "validate_expressions",
]

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ExpressionIssue:
    """A malformed expression found in a configuration mapping.

    Attributes:
        location: Path to the offending value, e.g.
            ``waiters.InstanceRunning.acceptors[0].argument``.
        error: Details of the syntax error.
    """

    location: str
    error: ExpressionErrorInfo

    @property
    def expression(self) -> str:
        return self.error.expression

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def offset(self) -> int:
        return self.error.offset


def check(
    expression: str, max_depth: int = DEFAULTS.MAX_DEPTH
) -> ExpressionErrorInfo | None:
    """Parse ``expression`` and return its error, if any, as a value.

    Args:
        expression: Expression source text.
        max_depth: Maximum nesting depth accepted by the parser.

    Returns:
        None when the expression parses, otherwise an ExpressionErrorInfo.

    Examples:
        >>> check("foo.bar") is None
        True
        >>> check("foo[").offset
        3
    """
    try:
        parse(expression, max_depth=max_depth)
    except ExpressionSyntaxError as e:
        return ExpressionErrorInfo.from_error(e)
    return None


def _join(parent: str, key: str) -> str:
    return f"{parent}.{key}" if parent else key


def validate_expressions(
    definitions: Mapping[str, Any],
    keys: Iterable[str] | None = None,
    max_depth: int = DEFAULTS.MAX_DEPTH,
) -> list[ExpressionIssue]:
    """Validate every expression found in a nested configuration mapping.

    Strings (and lists of strings) stored under an expression key are parsed;
    everything else is searched recursively.

    Args:
        definitions: Configuration mapping, e.g. a parsed waiters model.
        keys: Keys whose values are expressions. Defaults to
            DEFAULTS.EXPRESSION_KEYS.
        max_depth: Maximum nesting depth accepted by the parser.

    Returns:
        One ExpressionIssue per malformed expression, in document order.
    """
    expression_keys = frozenset(DEFAULTS.EXPRESSION_KEYS if keys is None else keys)
    issues: list[ExpressionIssue] = []
    checked = 0

    def visit_expression(location: str, expression: str) -> None:
        nonlocal checked
        checked += 1
        error = check(expression, max_depth=max_depth)
        if error is None:
            return
        log = logger.bind(location=location, expression=expression)
        log.warning("invalid_expression", error=error.message, offset=error.offset)
        issues.append(ExpressionIssue(location, error))

    def visit(location: str, value: Any) -> None:
        if isinstance(value, Mapping):
            for key, child in value.items():
                child_location = _join(location, str(key))
                if key in expression_keys and isinstance(child, str):
                    visit_expression(child_location, child)
                elif key in expression_keys and isinstance(child, list) and all(
                    isinstance(item, str) for item in child
                ):
                    for index, item in enumerate(child):
                        visit_expression(f"{child_location}[{index}]", item)
                else:
                    visit(child_location, child)
        elif isinstance(value, list):
            for index, item in enumerate(value):
                visit(f"{location}[{index}]", item)

    visit("", definitions)
    logger.info("expressions_validated", checked=checked, invalid=len(issues))
    return issues
