"""High-level entry points for build tools.

``search`` parses and evaluates in one call; ``compile_expression`` parses
once and returns a reusable CompiledExpression. ``validate_definitions``
runs the parse-only validator using the loaded SdkQueryConfig.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sdkquery.config import SdkQueryConfig, load_config
from sdkquery.expressions.ast import Node
from sdkquery.expressions.config import DEFAULTS
from sdkquery.expressions.errors import ExpressionEvaluationError
from sdkquery.expressions.evaluator import ExpressionEvaluator
from sdkquery.expressions.functions import FunctionTable
from sdkquery.expressions.parser import parse
from sdkquery.expressions.validation import ExpressionIssue, validate_expressions
from sdkquery.logging import configure_logging, validation_context

__all__ = [
    "CompiledExpression",
    "compile_expression",
    "search",
    "validate_definitions",
    "configure_from",
]


@dataclass(frozen=True, slots=True)
class CompiledExpression:
    """A parsed expression ready to be evaluated many times.

    Attributes:
        expression: Source text.
        ast: Parsed tree.
        evaluator: Evaluator bound to the function table and depth limit.
    """

    expression: str
    ast: Node
    evaluator: ExpressionEvaluator

    def search(self, document: Any) -> Any:
        """Evaluate the expression against ``document``.

        Raises:
            ExpressionEvaluationError: If evaluation fails; the error carries
                this expression's source text.
        """
        try:
            return self.evaluator.evaluate(self.ast, document)
        except ExpressionEvaluationError as e:
            if e.expression is None:
                e.expression = self.expression
            raise


def compile_expression(
    expression: str,
    functions: FunctionTable | None = None,
    max_depth: int = DEFAULTS.MAX_DEPTH,
) -> CompiledExpression:
    """Parse ``expression`` for repeated evaluation.

    Args:
        expression: Expression source text.
        functions: Function table; defaults to the built-in table.
        max_depth: Nesting limit for both parsing and evaluation.

    Returns:
        A CompiledExpression.

    Raises:
        LexerError: For invalid characters or unterminated strings.
        ParseError: For syntax errors.

    Example:
        ```python
        running = compile_expression("Reservations[].Instances[].State.Name")
        states = running.search(response)
        ```
    """
    return CompiledExpression(
        expression=expression,
        ast=parse(expression, max_depth=max_depth),
        evaluator=ExpressionEvaluator(functions, max_depth=max_depth),
    )


def search(
    expression: str,
    document: Any,
    functions: FunctionTable | None = None,
    max_depth: int = DEFAULTS.MAX_DEPTH,
) -> Any:
    """Parse ``expression`` and evaluate it against ``document``.

    Examples:
        >>> search("foo.bar", {"foo": {"bar": "baz"}})
        'baz'
        >>> search("foo[*].id", {"foo": [{"id": 1}, {"id": 2}]})
        [1, 2]
    """
    return compile_expression(expression, functions, max_depth).search(document)


def validate_definitions(
    definitions: Mapping[str, Any],
    config: SdkQueryConfig | None = None,
    source: str | None = None,
) -> list[ExpressionIssue]:
    """Validate configured expressions using keys and limits from config.

    Args:
        definitions: Configuration mapping, e.g. a parsed paginators model.
        config: Settings to use; loaded with load_config() when omitted.
        source: Name of the model file, bound to every log event of the run.

    Returns:
        One ExpressionIssue per malformed expression.

    Raises:
        ConfigError: If configuration has to be loaded and is invalid.
    """
    if config is None:
        config = load_config()
    with validation_context(source=source):
        return validate_expressions(
            definitions,
            keys=config.validation.expression_keys,
            max_depth=config.engine.max_depth,
        )


def configure_from(config: SdkQueryConfig) -> None:
    """Configure logging at the level named by ``config.verbosity``."""
    configure_logging(level=getattr(logging, config.verbosity.upper()))
