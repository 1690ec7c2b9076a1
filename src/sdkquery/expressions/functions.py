"""Built-in function library.

Functions are described by FunctionSpec records (name, parameter types,
variadic flag, implementation) collected in an immutable FunctionTable. The
evaluator looks a name up, evaluates the arguments, and hands them to
``FunctionSpec.invoke``, which checks arity and argument types before
calling the implementation.

Expression-reference parameters (``&expr``) arrive as ExpressionArgument
objects. A function body calls them with a value to evaluate the referenced
expression against it, e.g. ``sort_by`` calls its key expression once per
element.

Consumers can add functions without touching the defaults:

    table = default_function_table().extend(
        FunctionSpec("upper", ((ParamType.STRING,),), lambda s: s.upper()),
    )
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from sdkquery.expressions import ast
from sdkquery.expressions.errors import (
    EvaluationErrorKind,
    ExpressionEvaluationError,
)
from sdkquery.expressions.values import (
    is_array,
    is_number,
    strict_equals,
    type_name,
)

__all__ = [
    "ParamType",
    "ExpressionArgument",
    "FunctionSpec",
    "FunctionTable",
    "default_function_table",
]


class ParamType(str, Enum):
    """Accepted type of a function parameter."""

    ANY = "any"
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    NULL = "null"
    EXPREF = "expref"
    ARRAY_NUMBER = "array-number"
    ARRAY_STRING = "array-string"


class ExpressionArgument:
    """An unevaluated ``&expr`` argument bound to the running evaluation.

    Calling the argument evaluates the referenced expression against the
    given value and returns the result.
    """

    __slots__ = ("node", "_apply")

    def __init__(self, node: ast.Node, apply: Callable[[ast.Node, Any], Any]) -> None:
        self.node = node
        self._apply = apply

    def __call__(self, value: Any) -> Any:
        return self._apply(self.node, value)

    def __repr__(self) -> str:
        return f"ExpressionArgument({self.node!r})"


def _matches(param: ParamType, value: Any) -> bool:
    if param is ParamType.ANY:
        return not isinstance(value, ExpressionArgument)
    if param is ParamType.EXPREF:
        return isinstance(value, ExpressionArgument)
    if param is ParamType.ARRAY_NUMBER:
        return is_array(value) and all(is_number(v) for v in value)
    if param is ParamType.ARRAY_STRING:
        return is_array(value) and all(isinstance(v, str) for v in value)
    return _type_of(value) == param.value


def _type_of(value: Any) -> str:
    if isinstance(value, ExpressionArgument):
        return "expref"
    return type_name(value)


@dataclass(frozen=True, slots=True)
class FunctionSpec:
    """Signature and implementation of one function.

    Attributes:
        name: Function name as written in expressions.
        params: Accepted types for each positional parameter.
        impl: Implementation, called with the checked positional arguments.
        variadic: If True, the last parameter may repeat (at least once).
    """

    name: str
    params: tuple[tuple[ParamType, ...], ...]
    impl: Callable[..., Any]
    variadic: bool = False

    def invoke(self, args: list[Any]) -> Any:
        """Check ``args`` against the signature and call the implementation.

        Raises:
            ExpressionEvaluationError: ARITY_MISMATCH or TYPE_MISMATCH.
        """
        self._check_arity(args)
        for position, value in enumerate(args):
            allowed = self.params[min(position, len(self.params) - 1)]
            if not any(_matches(param, value) for param in allowed):
                raise ExpressionEvaluationError(
                    f"In function {self.name}(), invalid type for argument "
                    f"{position + 1}: expected one of "
                    f"{[p.value for p in allowed]}, received \"{_type_of(value)}\"",
                    kind=EvaluationErrorKind.TYPE_MISMATCH,
                    function=self.name,
                )
        return self.impl(*args)

    def _check_arity(self, args: list[Any]) -> None:
        expected = len(self.params)
        if self.variadic:
            if len(args) >= expected:
                return
            qualifier = "at least "
        else:
            if len(args) == expected:
                return
            qualifier = ""
        noun = "argument" if expected == 1 else "arguments"
        raise ExpressionEvaluationError(
            f"Expected {qualifier}{expected} {noun} for function "
            f"{self.name}(), received {len(args)}",
            kind=EvaluationErrorKind.ARITY_MISMATCH,
            function=self.name,
        )


class FunctionTable(Mapping[str, FunctionSpec]):
    """Read-only registry of functions available to expressions."""

    __slots__ = ("_specs",)

    def __init__(self, specs: Mapping[str, FunctionSpec] | None = None) -> None:
        self._specs: Mapping[str, FunctionSpec] = MappingProxyType(dict(specs or {}))

    def __getitem__(self, name: str) -> FunctionSpec:
        return self._specs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def extend(self, *specs: FunctionSpec) -> FunctionTable:
        """Return a new table with ``specs`` added (replacing same-named ones)."""
        merged = dict(self._specs)
        for spec in specs:
            merged[spec.name] = spec
        return FunctionTable(merged)


# ---------------------------------------------------------------------------
# Built-in implementations
# ---------------------------------------------------------------------------

_BUILTINS: dict[str, FunctionSpec] = {}

_NUMBER = (ParamType.NUMBER,)
_STRING = (ParamType.STRING,)
_ARRAY = (ParamType.ARRAY,)
_OBJECT = (ParamType.OBJECT,)
_ANY = (ParamType.ANY,)
_EXPREF = (ParamType.EXPREF,)
_NUMBERS_OR_STRINGS = (ParamType.ARRAY_NUMBER, ParamType.ARRAY_STRING)

# JSON number grammar, used by to_number()
_NUMBER_PATTERN = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")


def builtin(
    name: str, *params: tuple[ParamType, ...], variadic: bool = False
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Register the decorated function as a built-in."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        _BUILTINS[name] = FunctionSpec(name, params, func, variadic)
        return func

    return decorator


@builtin("abs", _NUMBER)
def _abs(value: float) -> float:
    return abs(value)


@builtin("avg", (ParamType.ARRAY_NUMBER,))
def _avg(values: list[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


@builtin("ceil", _NUMBER)
def _ceil(value: float) -> int | float:
    # inf and nan have no integer form
    if not math.isfinite(value):
        return value
    return math.ceil(value)


@builtin("floor", _NUMBER)
def _floor(value: float) -> int | float:
    if not math.isfinite(value):
        return value
    return math.floor(value)


@builtin("contains", (ParamType.ARRAY, ParamType.STRING), _ANY)
def _contains(subject: list[Any] | str, search: Any) -> bool:
    if isinstance(subject, str):
        return isinstance(search, str) and search in subject
    return any(strict_equals(item, search) for item in subject)


@builtin("ends_with", _STRING, _STRING)
def _ends_with(subject: str, suffix: str) -> bool:
    return subject.endswith(suffix)


@builtin("starts_with", _STRING, _STRING)
def _starts_with(subject: str, prefix: str) -> bool:
    return subject.startswith(prefix)


@builtin("join", _STRING, (ParamType.ARRAY_STRING,))
def _join(glue: str, values: list[str]) -> str:
    return glue.join(values)


@builtin("keys", _OBJECT)
def _keys(obj: Mapping[str, Any]) -> list[str]:
    return list(obj.keys())


@builtin("values", _OBJECT)
def _values(obj: Mapping[str, Any]) -> list[Any]:
    return list(obj.values())


@builtin("length", (ParamType.STRING, ParamType.ARRAY, ParamType.OBJECT))
def _length(value: Any) -> int:
    return len(value)


@builtin("map", _EXPREF, _ARRAY)
def _map(expression: ExpressionArgument, values: list[Any]) -> list[Any]:
    return [expression(value) for value in values]


@builtin("max", _NUMBERS_OR_STRINGS)
def _max(values: list[Any]) -> Any:
    return max(values) if values else None


@builtin("min", _NUMBERS_OR_STRINGS)
def _min(values: list[Any]) -> Any:
    return min(values) if values else None


def _sort_keys(
    function: str, expression: ExpressionArgument, values: list[Any]
) -> list[Any]:
    """Evaluate a key expression per element; keys must share one type."""
    keys = [expression(value) for value in values]
    if not keys:
        return keys
    expected = _type_of(keys[0])
    if expected not in ("number", "string"):
        expected = "number or string"
    for key in keys:
        if _type_of(key) != expected:
            raise ExpressionEvaluationError(
                f"In function {function}(), invalid type for expression result: "
                f"expected {expected}, received \"{_type_of(key)}\"",
                kind=EvaluationErrorKind.TYPE_MISMATCH,
                function=function,
            )
    return keys


@builtin("max_by", _ARRAY, _EXPREF)
def _max_by(values: list[Any], expression: ExpressionArgument) -> Any:
    keys = _sort_keys("max_by", expression, values)
    if not values:
        return None
    best = max(range(len(values)), key=keys.__getitem__)
    return values[best]


@builtin("min_by", _ARRAY, _EXPREF)
def _min_by(values: list[Any], expression: ExpressionArgument) -> Any:
    keys = _sort_keys("min_by", expression, values)
    if not values:
        return None
    best = min(range(len(values)), key=keys.__getitem__)
    return values[best]


@builtin("sort", _NUMBERS_OR_STRINGS)
def _sort(values: list[Any]) -> list[Any]:
    return sorted(values)


@builtin("sort_by", _ARRAY, _EXPREF)
def _sort_by(values: list[Any], expression: ExpressionArgument) -> list[Any]:
    keys = _sort_keys("sort_by", expression, values)
    order = sorted(range(len(values)), key=keys.__getitem__)
    return [values[i] for i in order]


@builtin("merge", _OBJECT, variadic=True)
def _merge(*objects: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for obj in objects:
        merged.update(obj)
    return merged


@builtin("not_null", _ANY, variadic=True)
def _not_null(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


@builtin("reverse", (ParamType.ARRAY, ParamType.STRING))
def _reverse(value: list[Any] | str) -> list[Any] | str:
    if isinstance(value, str):
        return value[::-1]
    return list(reversed(value))


@builtin("sum", (ParamType.ARRAY_NUMBER,))
def _sum(values: list[float]) -> float:
    return sum(values)


@builtin("to_array", _ANY)
def _to_array(value: Any) -> list[Any]:
    if is_array(value):
        return value
    return [value]


@builtin("to_string", _ANY)
def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


@builtin("to_number", _ANY)
def _to_number(value: Any) -> float | None:
    if is_number(value):
        return value
    if isinstance(value, str) and _NUMBER_PATTERN.fullmatch(value):
        number = float(value)
        if number.is_integer() and not any(c in value for c in ".eE"):
            return int(value)
        return number
    return None


@builtin("type", _ANY)
def _type(value: Any) -> str:
    return type_name(value)


_DEFAULT_TABLE = FunctionTable(_BUILTINS)


def default_function_table() -> FunctionTable:
    """Return the shared, read-only table of built-in functions.

    Examples:
        >>> "sort_by" in default_function_table()
        True
    """
    return _DEFAULT_TABLE
