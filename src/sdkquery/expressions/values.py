"""Helpers for the generic document value model.

Documents are plain JSON-shaped Python values: ``None``, ``bool``, ``int`` /
``float``, ``str``, ``list`` and ``dict``. Python treats ``True == 1`` and
``bool`` as a subclass of ``int``; the query language does not, so every
type test and equality check goes through this module.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

__all__ = [
    "is_number",
    "is_array",
    "is_object",
    "type_name",
    "is_truthy",
    "strict_equals",
    "freeze",
    "thaw",
]


def is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def is_array(value: Any) -> bool:
    return isinstance(value, list)


def is_object(value: Any) -> bool:
    return isinstance(value, Mapping)


def type_name(value: Any) -> str:
    """Return the query-language type name of a value.

    Examples:
        >>> type_name(True), type_name(1), type_name([]), type_name(None)
        ('boolean', 'number', 'array', 'null')
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_array(value):
        return "array"
    if is_object(value):
        return "object"
    return "unknown"


def is_truthy(value: Any) -> bool:
    """Apply the query-language truthiness rule.

    ``null``, ``false`` and empty strings, arrays and objects are false.
    Every number, including ``0``, is true.
    """
    if value is None or value is False:
        return False
    if isinstance(value, str | list) or is_object(value):
        return len(value) > 0
    return True


def strict_equals(left: Any, right: Any) -> bool:
    """Deep structural equality that keeps booleans and numbers apart."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if is_number(left) and is_number(right):
        return left == right
    if is_array(left) and is_array(right):
        return len(left) == len(right) and all(
            strict_equals(a, b) for a, b in zip(left, right)
        )
    if is_object(left) and is_object(right):
        return left.keys() == right.keys() and all(
            strict_equals(value, right[key]) for key, value in left.items()
        )
    if type_name(left) != type_name(right):
        return False
    return bool(left == right)


def freeze(value: Any) -> Any:
    """Return an immutable copy of a decoded JSON value.

    Arrays become tuples and objects become read-only mappings, recursively.
    """
    if isinstance(value, list):
        return tuple(freeze(item) for item in value)
    if isinstance(value, dict):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    return value


def thaw(value: Any) -> Any:
    """Rebuild plain lists and dicts from a value made by ``freeze``."""
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    return value
