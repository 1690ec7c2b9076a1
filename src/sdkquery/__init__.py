"""sdkquery: JMESPath-style query expressions for SDK build tooling.

Example:
    >>> from sdkquery import search
    >>> search("Reservations[].Instances[].InstanceId",
    ...        {"Reservations": [{"Instances": [{"InstanceId": "i-1"}]}]})
    ['i-1']
"""

from __future__ import annotations

from sdkquery.api import (
    CompiledExpression,
    compile_expression,
    configure_from,
    search,
    validate_definitions,
)
from sdkquery.exceptions import ConfigError, SdkQueryError
from sdkquery.expressions import (
    EvaluationErrorKind,
    ExpressionError,
    ExpressionErrorInfo,
    ExpressionEvaluationError,
    ExpressionIssue,
    ExpressionSyntaxError,
    FunctionSpec,
    FunctionTable,
    IncompleteExpressionError,
    LexerError,
    ParamType,
    ParseError,
    check,
    default_function_table,
    evaluate,
    parse,
    validate_expressions,
)

__version__ = "0.1.0"

__all__: list[str] = [
    "__version__",
    # Entry points
    "parse",
    "evaluate",
    "search",
    "compile_expression",
    "CompiledExpression",
    "check",
    "validate_expressions",
    "validate_definitions",
    "configure_from",
    # Functions
    "default_function_table",
    "FunctionTable",
    "FunctionSpec",
    "ParamType",
    # Errors
    "SdkQueryError",
    "ConfigError",
    "ExpressionError",
    "ExpressionSyntaxError",
    "LexerError",
    "ParseError",
    "IncompleteExpressionError",
    "ExpressionEvaluationError",
    "EvaluationErrorKind",
    "ExpressionErrorInfo",
    "ExpressionIssue",
]
