"""Query expression engine.

This package parses and evaluates JMESPath-style expressions used to pull
values out of JSON-shaped documents, for example the ``argument`` of a waiter
acceptor or the ``output_token`` of a paginator.

Expression Syntax
-----------------
- Field access: ``Reservations``, ``"quoted name"``
- Sub-expressions: ``State.Name``
- Indexes and slices: ``Items[0]``, ``Items[-1]``, ``Items[::2]``
- Projections: ``Items[*].Id``, ``Tags.*``, ``Reservations[].Instances[]``
- Filters: ``Items[?State == 'running']``
- Multiselects: ``[Id, State]``, ``{id: Id, state: State}``
- Pipes and logic: ``a | b``, ``a || b``, ``a && b``, ``!a``
- Literals: ```` `{"a": 1}` ````, ``'raw string'``
- Functions: ``length(Items)``, ``sort_by(Items, &Size)``

Module Structure
----------------
- lexer.py: Tokenizer producing a lazy, restartable TokenStream
- ast.py: Immutable AST node types and walking helpers
- parser.py: Pratt parser building ASTs from expression strings
- functions.py: Built-in function library and FunctionTable
- evaluator.py: Tree-walking evaluator
- validation.py: Parse-only checks for expressions embedded in configuration
- errors.py: Expression-specific error types

Parsed trees and function tables are immutable and evaluation keeps no
shared state, so both can be used from many threads at once.
"""

from __future__ import annotations

from sdkquery.expressions.ast import Node, referenced_functions, walk
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
from sdkquery.expressions.evaluator import ExpressionEvaluator, evaluate
from sdkquery.expressions.functions import (
    ExpressionArgument,
    FunctionSpec,
    FunctionTable,
    ParamType,
    default_function_table,
)
from sdkquery.expressions.lexer import Token, TokenStream, TokenType, tokenize
from sdkquery.expressions.parser import Parser, parse
from sdkquery.expressions.validation import (
    ExpressionIssue,
    check,
    validate_expressions,
)

__all__: list[str] = [
    # Error types
    "ExpressionError",
    "ExpressionSyntaxError",
    "LexerError",
    "ParseError",
    "IncompleteExpressionError",
    "ExpressionEvaluationError",
    "EvaluationErrorKind",
    "ExpressionErrorInfo",
    # Lexer
    "Token",
    "TokenType",
    "TokenStream",
    "tokenize",
    # Parser
    "Node",
    "Parser",
    "parse",
    "walk",
    "referenced_functions",
    # Functions
    "ParamType",
    "ExpressionArgument",
    "FunctionSpec",
    "FunctionTable",
    "default_function_table",
    # Evaluator
    "ExpressionEvaluator",
    "evaluate",
    # Validation
    "ExpressionIssue",
    "check",
    "validate_expressions",
]
