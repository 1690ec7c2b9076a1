"""Expression engine configuration and default values.

This module centralizes the default values and magic constants used by the
lexer, parser, and evaluator. Values live in a frozen dataclass so they cannot
be mutated at runtime; a singleton instance (DEFAULTS) provides convenient
access.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "ExpressionDefaults",
    "DEFAULTS",
]


@dataclass(frozen=True, slots=True)
class ExpressionDefaults:
    """Default values for expression parsing and evaluation.

    Attributes:
        MAX_DEPTH: Maximum nesting depth for both the parser and the evaluator.
            Each unit costs a handful of interpreter frames, so the value must
            stay well below the interpreter recursion limit.
        MAX_DEPTH_LIMIT: Upper bound accepted for a configured max depth.
        EXPRESSION_KEYS: Configuration keys whose string values hold query
            expressions (waiter acceptors and paginator definitions).
    """

    MAX_DEPTH: int = 128
    MAX_DEPTH_LIMIT: int = 256

    EXPRESSION_KEYS: tuple[str, ...] = (
        "argument",
        "path",
        "input_token",
        "output_token",
        "result_key",
        "more_results",
        "limit_key",
    )


DEFAULTS = ExpressionDefaults()
