"""Tree-walking evaluator for parsed expressions.

Evaluation is a pure function of (expression, document): nothing is cached
and nothing is mutated, so a single ExpressionEvaluator (and a single parsed
tree) can be shared between threads.

Projections
-----------
Wildcards, slices, filters and flatten produce *projections*: the rest of
the postfix chain (``.field``, ``[0]``, further wildcards, ...) applies to
each element instead of to the list as a whole. Rather than keeping a mode
flag in shared state, every internal visit returns ``(value, depth)`` where
``depth`` is the number of projection levels wrapped around ``value``:

- wildcards, slices and filters add one level on top of their base;
- flatten materializes its base, flattens it, and yields exactly one level;
- index, slice, filter, wildcard and ``.`` applied to a projected base run
  element-wise at the innermost level;
- pipes, comparisons, boolean operators, multiselect items, function
  arguments and the final result *materialize* a projection, dropping
  ``null`` results level by level.
"""

from __future__ import annotations

import operator
from collections.abc import Callable
from typing import Any

from sdkquery.expressions import ast
from sdkquery.expressions.config import DEFAULTS
from sdkquery.expressions.errors import (
    EvaluationErrorKind,
    ExpressionEvaluationError,
)
from sdkquery.expressions.functions import (
    ExpressionArgument,
    FunctionTable,
    default_function_table,
)
from sdkquery.expressions.values import (
    is_array,
    is_number,
    is_object,
    is_truthy,
    strict_equals,
    thaw,
)

__all__ = ["ExpressionEvaluator", "evaluate"]

# (value, projection depth)
Visited = tuple[Any, int]

_ORDERING: dict[ast.Comparator, Callable[[Any, Any], bool]] = {
    ast.Comparator.LT: operator.lt,
    ast.Comparator.LTE: operator.le,
    ast.Comparator.GT: operator.gt,
    ast.Comparator.GTE: operator.ge,
}


def _project(value: Any, depth: int, func: Callable[[Any], Any]) -> Any:
    """Apply ``func`` to every element at the innermost projection level."""
    if depth == 0:
        return func(value)
    if not is_array(value):
        return None
    return [_project(element, depth - 1, func) for element in value]


def _materialize(value: Any, depth: int) -> Any:
    """Collapse a projection into a plain value, dropping nulls per level."""
    if depth == 0:
        return value
    if not is_array(value):
        return None
    result = []
    for element in value:
        collapsed = _materialize(element, depth - 1)
        if collapsed is not None:
            result.append(collapsed)
    return result


def _flatten(value: Any) -> list[Any] | None:
    if not is_array(value):
        return None
    result: list[Any] = []
    for element in value:
        if is_array(element):
            result.extend(element)
        else:
            result.append(element)
    return result


class ExpressionEvaluator:
    """Evaluates parsed expression trees against documents.

    Attributes:
        functions: Function table used for FunctionCall nodes.
        max_depth: Maximum evaluation nesting depth.

    Example:
        ```python
        evaluator = ExpressionEvaluator()
        tree = parse("foo[?state == 'running'].id")
        ids = evaluator.evaluate(tree, {"foo": [{"state": "running", "id": 1}]})
        # [1]
        ```
    """

    def __init__(
        self,
        functions: FunctionTable | None = None,
        max_depth: int = DEFAULTS.MAX_DEPTH,
    ) -> None:
        self.functions = functions if functions is not None else default_function_table()
        self.max_depth = max_depth
        self._handlers: dict[type[ast.Node], Callable[[Any, Any, int], Visited]] = {
            ast.Identifier: self._visit_identifier,
            ast.CurrentNode: self._visit_current,
            ast.Literal: self._visit_literal,
            ast.RawString: self._visit_raw_string,
            ast.Index: self._visit_index,
            ast.Slice: self._visit_slice,
            ast.Flatten: self._visit_flatten,
            ast.Subexpression: self._visit_subexpression,
            ast.WildcardObject: self._visit_wildcard_object,
            ast.WildcardArray: self._visit_wildcard_array,
            ast.Pipe: self._visit_pipe,
            ast.Or: self._visit_or,
            ast.And: self._visit_and,
            ast.Not: self._visit_not,
            ast.Comparison: self._visit_comparison,
            ast.Filter: self._visit_filter,
            ast.MultiselectList: self._visit_multiselect_list,
            ast.MultiselectHash: self._visit_multiselect_hash,
            ast.FunctionCall: self._visit_function_call,
            ast.ExpressionRef: self._visit_expression_ref,
        }
        missing = set(ast.NODE_TYPES) - set(self._handlers)
        if missing:
            raise TypeError(
                f"No evaluation handler for: {sorted(t.__name__ for t in missing)}"
            )

    def evaluate(self, expression: ast.Node, document: Any) -> Any:
        """Evaluate ``expression`` against ``document``.

        Args:
            expression: Root of a parsed expression tree.
            document: JSON-shaped input value.

        Returns:
            The extracted value (``None`` for missing data).

        Raises:
            ExpressionEvaluationError: For unknown functions, bad function
                arguments, zero-step slices and excessive nesting.
        """
        try:
            return self._value(expression, document, 0)
        except RecursionError:
            # Several interpreter frames per level; a deep enough tree runs
            # out of stack before max_depth is reached
            raise ExpressionEvaluationError(
                f"Expression nesting exhausted the interpreter stack before "
                f"the maximum evaluation depth of {self.max_depth}",
                kind=EvaluationErrorKind.MAX_DEPTH_EXCEEDED,
            ) from None

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _visit(self, node: ast.Node | None, current: Any, level: int) -> Visited:
        if node is None:
            return current, 0
        level += 1
        if level > self.max_depth:
            raise ExpressionEvaluationError(
                f"Expression exceeds maximum evaluation depth of {self.max_depth}",
                kind=EvaluationErrorKind.MAX_DEPTH_EXCEEDED,
            )
        handler = self._handlers.get(type(node))
        if handler is None:
            raise TypeError(f"Cannot evaluate node of type {type(node).__name__}")
        return handler(node, current, level)

    def _value(self, node: ast.Node | None, current: Any, level: int) -> Any:
        return _materialize(*self._visit(node, current, level))

    # ------------------------------------------------------------------
    # Leaves
    # ------------------------------------------------------------------

    def _visit_identifier(self, node: ast.Identifier, current: Any, level: int) -> Visited:
        if is_object(current):
            return current.get(node.name), 0
        return None, 0

    def _visit_current(self, node: ast.CurrentNode, current: Any, level: int) -> Visited:
        return current, 0

    def _visit_literal(self, node: ast.Literal, current: Any, level: int) -> Visited:
        return thaw(node.value), 0

    def _visit_raw_string(self, node: ast.RawString, current: Any, level: int) -> Visited:
        return node.text, 0

    # ------------------------------------------------------------------
    # Bracket forms and projections
    # ------------------------------------------------------------------

    def _visit_index(self, node: ast.Index, current: Any, level: int) -> Visited:
        base, depth = self._visit(node.expression, current, level)
        index = node.index

        def element(value: Any) -> Any:
            if not is_array(value) or not -len(value) <= index < len(value):
                return None
            return value[index]

        return _project(base, depth, element), depth

    def _visit_slice(self, node: ast.Slice, current: Any, level: int) -> Visited:
        if node.step == 0:
            raise ExpressionEvaluationError(
                "Slice step cannot be 0",
                kind=EvaluationErrorKind.INVALID_STEP_0,
            )
        base, depth = self._visit(node.expression, current, level)
        bounds = slice(node.start, node.stop, node.step)

        def sliced(value: Any) -> Any:
            if not is_array(value):
                return None
            return value[bounds]

        return _project(base, depth, sliced), depth + 1

    def _visit_flatten(self, node: ast.Flatten, current: Any, level: int) -> Visited:
        return _flatten(self._value(node.expression, current, level)), 1

    def _visit_wildcard_array(
        self, node: ast.WildcardArray, current: Any, level: int
    ) -> Visited:
        base, depth = self._visit(node.expression, current, level)
        return _project(base, depth, lambda v: v if is_array(v) else None), depth + 1

    def _visit_wildcard_object(
        self, node: ast.WildcardObject, current: Any, level: int
    ) -> Visited:
        base, depth = self._visit(node.expression, current, level)
        return (
            _project(base, depth, lambda v: list(v.values()) if is_object(v) else None),
            depth + 1,
        )

    def _visit_filter(self, node: ast.Filter, current: Any, level: int) -> Visited:
        base, depth = self._visit(node.source, current, level)

        def kept(value: Any) -> Any:
            if not is_array(value):
                return None
            return [
                element
                for element in value
                if is_truthy(self._value(node.predicate, element, level))
            ]

        return _project(base, depth, kept), depth + 1

    def _visit_subexpression(
        self, node: ast.Subexpression, current: Any, level: int
    ) -> Visited:
        left, depth = self._visit(node.left, current, level)
        if depth == 0:
            return self._visit(node.right, left, level)
        return (
            _project(left, depth, lambda v: self._value(node.right, v, level)),
            depth,
        )

    def _visit_pipe(self, node: ast.Pipe, current: Any, level: int) -> Visited:
        return self._visit(node.right, self._value(node.left, current, level), level)

    # ------------------------------------------------------------------
    # Boolean logic and comparisons
    # ------------------------------------------------------------------

    def _visit_or(self, node: ast.Or, current: Any, level: int) -> Visited:
        left = self._value(node.left, current, level)
        if is_truthy(left):
            return left, 0
        return self._value(node.right, current, level), 0

    def _visit_and(self, node: ast.And, current: Any, level: int) -> Visited:
        left = self._value(node.left, current, level)
        if not is_truthy(left):
            return left, 0
        return self._value(node.right, current, level), 0

    def _visit_not(self, node: ast.Not, current: Any, level: int) -> Visited:
        return not is_truthy(self._value(node.expression, current, level)), 0

    def _visit_comparison(self, node: ast.Comparison, current: Any, level: int) -> Visited:
        left = self._value(node.left, current, level)
        right = self._value(node.right, current, level)
        if node.operator is ast.Comparator.EQ:
            return strict_equals(left, right), 0
        if node.operator is ast.Comparator.NE:
            return not strict_equals(left, right), 0
        # Ordering is only defined between numbers
        if not (is_number(left) and is_number(right)):
            return None, 0
        return _ORDERING[node.operator](left, right), 0

    # ------------------------------------------------------------------
    # Multiselects and functions
    # ------------------------------------------------------------------

    def _visit_multiselect_list(
        self, node: ast.MultiselectList, current: Any, level: int
    ) -> Visited:
        if current is None:
            return None, 0
        return [self._value(item, current, level) for item in node.items], 0

    def _visit_multiselect_hash(
        self, node: ast.MultiselectHash, current: Any, level: int
    ) -> Visited:
        if current is None:
            return None, 0
        return {key: self._value(value, current, level) for key, value in node.pairs}, 0

    def _visit_function_call(
        self, node: ast.FunctionCall, current: Any, level: int
    ) -> Visited:
        spec = self.functions.get(node.name)
        if spec is None:
            raise ExpressionEvaluationError(
                f"Unknown function: {node.name}()",
                kind=EvaluationErrorKind.UNKNOWN_FUNCTION,
                function=node.name,
            )

        def apply(expression: ast.Node, value: Any) -> Any:
            return self._value(expression, value, level)

        args: list[Any] = []
        for arg in node.args:
            if isinstance(arg, ast.ExpressionRef):
                args.append(ExpressionArgument(arg.expression, apply))
            else:
                args.append(self._value(arg, current, level))
        return spec.invoke(args), 0

    def _visit_expression_ref(
        self, node: ast.ExpressionRef, current: Any, level: int
    ) -> Visited:
        raise ExpressionEvaluationError(
            "Expression references (&) can only be passed to functions",
            kind=EvaluationErrorKind.TYPE_MISMATCH,
        )


_DEFAULT_EVALUATOR = ExpressionEvaluator()


def evaluate(
    expression: ast.Node,
    document: Any,
    functions: FunctionTable | None = None,
    max_depth: int = DEFAULTS.MAX_DEPTH,
) -> Any:
    """Evaluate a parsed expression against a document.

    Args:
        expression: Root of a parsed expression tree.
        document: JSON-shaped input value.
        functions: Function table; defaults to the built-in table.
        max_depth: Maximum evaluation nesting depth.

    Returns:
        The extracted value.

    Raises:
        ExpressionEvaluationError: See ExpressionEvaluator.evaluate().

    Examples:
        >>> from sdkquery.expressions.parser import parse
        >>> evaluate(parse("foo[1:3]"), {"foo": [0, 1, 2, 3, 4]})
        [1, 2]
    """
    if functions is None and max_depth == DEFAULTS.MAX_DEPTH:
        return _DEFAULT_EVALUATOR.evaluate(expression, document)
    return ExpressionEvaluator(functions, max_depth=max_depth).evaluate(
        expression, document
    )
