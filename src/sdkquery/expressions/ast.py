"""AST node types for query expressions.

Every grammar production has exactly one node class. Nodes are frozen,
slotted dataclasses: once the parser builds a tree it is never modified, so
one parsed expression can be evaluated from many threads at once.

Child expressions that may be absent (``[0]`` with no left-hand side, for
example) are typed ``Node | None`` and default to ``None``, which the
evaluator reads as "the current node".
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any

from sdkquery.expressions.values import freeze

__all__ = [
    "Node",
    "Identifier",
    "CurrentNode",
    "Literal",
    "RawString",
    "Index",
    "Slice",
    "Flatten",
    "Subexpression",
    "WildcardObject",
    "WildcardArray",
    "Pipe",
    "Or",
    "And",
    "Not",
    "Comparator",
    "Comparison",
    "Filter",
    "MultiselectList",
    "MultiselectHash",
    "FunctionCall",
    "ExpressionRef",
    "Expression",
    "NODE_TYPES",
    "walk",
    "referenced_functions",
]


@dataclass(frozen=True, slots=True)
class Node:
    """Base class for all expression nodes."""

    def children(self) -> tuple[Node, ...]:
        """Return the direct child nodes in source order."""
        found: list[Node] = []
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Node):
                found.append(value)
            elif isinstance(value, tuple):
                for item in value:
                    if isinstance(item, Node):
                        found.append(item)
                    elif isinstance(item, tuple):
                        # MultiselectHash pairs
                        found.extend(x for x in item if isinstance(x, Node))
        return tuple(found)


@dataclass(frozen=True, slots=True)
class Identifier(Node):
    """Field lookup on the current object: ``foo`` or ``"foo bar"``."""

    name: str


@dataclass(frozen=True, slots=True)
class CurrentNode(Node):
    """The current node: ``@``."""


@dataclass(frozen=True, slots=True)
class Literal(Node):
    """Back-tick JSON literal, decoded at parse time.

    Arrays and objects are stored frozen (tuples and read-only mappings);
    the evaluator hands out a fresh plain copy on every evaluation.
    """

    value: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", freeze(self.value))


@dataclass(frozen=True, slots=True)
class RawString(Node):
    """Single-quoted raw string literal."""

    text: str


@dataclass(frozen=True, slots=True)
class Index(Node):
    """Array element access: ``foo[1]``, ``[-1]``."""

    expression: Node | None
    index: int


@dataclass(frozen=True, slots=True)
class Slice(Node):
    """Array slice: ``foo[start:stop:step]``; each bound is optional."""

    expression: Node | None
    start: int | None = None
    stop: int | None = None
    step: int | None = None


@dataclass(frozen=True, slots=True)
class Flatten(Node):
    """Flatten one level of nesting and project: ``foo[]``."""

    expression: Node | None = None


@dataclass(frozen=True, slots=True)
class Subexpression(Node):
    """The ``.`` operator: evaluate ``right`` against the result of ``left``."""

    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class WildcardObject(Node):
    """Object value projection: ``foo.*`` or ``*``."""

    expression: Node | None = None


@dataclass(frozen=True, slots=True)
class WildcardArray(Node):
    """Array projection: ``foo[*]``."""

    expression: Node | None = None


@dataclass(frozen=True, slots=True)
class Pipe(Node):
    """``left | right``; stops any projection on the left."""

    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Or(Node):
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class And(Node):
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Not(Node):
    expression: Node


class Comparator(str, Enum):
    """Comparison operators."""

    EQ = "=="
    NE = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="


@dataclass(frozen=True, slots=True)
class Comparison(Node):
    operator: Comparator
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Filter(Node):
    """Filter projection: ``source[?predicate]``."""

    source: Node | None
    predicate: Node


@dataclass(frozen=True, slots=True)
class MultiselectList(Node):
    """``[a, b, ...]`` evaluated item by item."""

    items: tuple[Node, ...]


@dataclass(frozen=True, slots=True)
class MultiselectHash(Node):
    """``{key: expr, ...}``; pairs keep declaration order."""

    pairs: tuple[tuple[str, Node], ...]


@dataclass(frozen=True, slots=True)
class FunctionCall(Node):
    name: str
    args: tuple[Node, ...] = ()


@dataclass(frozen=True, slots=True)
class ExpressionRef(Node):
    """``&expr`` argument, handed to the function unevaluated."""

    expression: Node


# Any concrete expression node
Expression = (
    Identifier
    | CurrentNode
    | Literal
    | RawString
    | Index
    | Slice
    | Flatten
    | Subexpression
    | WildcardObject
    | WildcardArray
    | Pipe
    | Or
    | And
    | Not
    | Comparison
    | Filter
    | MultiselectList
    | MultiselectHash
    | FunctionCall
    | ExpressionRef
)

# The closed set of concrete node classes
NODE_TYPES: tuple[type[Node], ...] = (
    Identifier,
    CurrentNode,
    Literal,
    RawString,
    Index,
    Slice,
    Flatten,
    Subexpression,
    WildcardObject,
    WildcardArray,
    Pipe,
    Or,
    And,
    Not,
    Comparison,
    Filter,
    MultiselectList,
    MultiselectHash,
    FunctionCall,
    ExpressionRef,
)


def walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and all of its descendants, depth-first pre-order.

    Iterative, so arbitrarily deep trees built outside the parser are safe.

    Examples:
        >>> from sdkquery.expressions.parser import parse
        >>> [type(n).__name__ for n in walk(parse("a.b"))]
        ['Subexpression', 'Identifier', 'Identifier']
    """
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children()))


def referenced_functions(node: Node) -> frozenset[str]:
    """Return the names of all functions called anywhere in ``node``."""
    return frozenset(n.name for n in walk(node) if isinstance(n, FunctionCall))
