"""Tokenizer for query expressions.

The lexer turns an expression string into a stream of typed tokens. It is
lazy (tokens are produced on demand) and restartable (iterating a
TokenStream twice scans the text twice), and every stream ends with an
explicit ``eof`` token.

Token kinds:
- Identifiers: ``foo``, ``_bar1`` (unquoted) and ``"foo bar"`` (quoted)
- Raw strings: ``'text'``
- JSON literals: ```` `{"a": 1}` ````
- Numbers: unsigned digit runs (signs are handled by the parser)
- Punctuation and operators: ``. [ ] { } * | || && ! == != < <= > >= , : &
  ( ) @ -`` plus the two-character forms ``[]`` and ``[?``
"""

from __future__ import annotations

import json
import string
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from sdkquery.expressions.errors import LexerError

__all__ = [
    "TokenType",
    "Token",
    "TokenStream",
    "tokenize",
]


class TokenType(str, Enum):
    """Kind of a lexical token."""

    UNQUOTED_IDENTIFIER = "unquoted_identifier"
    QUOTED_IDENTIFIER = "quoted_identifier"
    RAW_STRING = "raw_string"
    LITERAL = "literal"
    NUMBER = "number"
    DOT = "dot"
    STAR = "star"
    LBRACKET = "lbracket"
    RBRACKET = "rbracket"
    FLATTEN = "flatten"
    FILTER = "filter"
    LBRACE = "lbrace"
    RBRACE = "rbrace"
    LPAREN = "lparen"
    RPAREN = "rparen"
    COMMA = "comma"
    COLON = "colon"
    PIPE = "pipe"
    OR = "or"
    AND = "and"
    NOT = "not"
    EXPREF = "expref"
    CURRENT = "current"
    MINUS = "minus"
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    EOF = "eof"


@dataclass(frozen=True, slots=True)
class Token:
    """A single lexical token.

    Attributes:
        type: Kind of token.
        value: Decoded token value (identifier name, string text, raw JSON
            literal text, integer for numbers, punctuation text otherwise).
        start: Character position of the first character.
        end: Character position one past the last character.
        offset: UTF-8 byte offset of the first character.
    """

    type: TokenType
    value: str | int
    start: int
    end: int
    offset: int


_IDENTIFIER_START = frozenset(string.ascii_letters + "_")
_IDENTIFIER_CHARS = frozenset(string.ascii_letters + string.digits + "_")
_DIGITS = frozenset(string.digits)
_WHITESPACE = frozenset(" \t\n\r")

_SIMPLE_TOKENS: dict[str, TokenType] = {
    ".": TokenType.DOT,
    "*": TokenType.STAR,
    "]": TokenType.RBRACKET,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
    ":": TokenType.COLON,
    "@": TokenType.CURRENT,
    "-": TokenType.MINUS,
}

# First char -> (second char, two-char type, one-char type or None)
_PAIRED_TOKENS: dict[str, tuple[str, TokenType, TokenType | None]] = {
    "|": ("|", TokenType.OR, TokenType.PIPE),
    "&": ("&", TokenType.AND, TokenType.EXPREF),
    "!": ("=", TokenType.NE, TokenType.NOT),
    "<": ("=", TokenType.LTE, TokenType.LT),
    ">": ("=", TokenType.GTE, TokenType.GT),
    "=": ("=", TokenType.EQ, None),
}


class _Scanner:
    """Single-use scanner over one expression string."""

    def __init__(self, expression: str) -> None:
        self._text = expression
        self._length = len(expression)
        self._pos = 0
        # Byte offset of self._pos, advanced incrementally
        self._byte_pos = 0
        self._byte_mark = 0

    def tokens(self) -> Iterator[Token]:
        text = self._text
        while True:
            while self._pos < self._length and text[self._pos] in _WHITESPACE:
                self._advance(1)
            if self._pos >= self._length:
                yield self._token(TokenType.EOF, "", self._pos)
                return

            char = text[self._pos]
            start = self._pos
            self._byte_mark = self._byte_pos

            if char in _SIMPLE_TOKENS:
                self._advance(1)
                yield self._token(_SIMPLE_TOKENS[char], char, start)
            elif char in _IDENTIFIER_START:
                yield self._identifier(start)
            elif char in _DIGITS:
                yield self._number(start)
            elif char == "[":
                yield self._lbracket(start)
            elif char in _PAIRED_TOKENS:
                yield self._paired(char, start)
            elif char == '"':
                yield self._quoted_identifier(start)
            elif char == "'":
                yield self._raw_string(start)
            elif char == "`":
                yield self._literal(start)
            else:
                raise LexerError(
                    f"Unknown character '{char}'",
                    expression=text,
                    position=start,
                )

    def _advance(self, count: int) -> None:
        end = self._pos + count
        self._byte_pos += len(self._text[self._pos : end].encode("utf-8"))
        self._pos = end

    def _token(self, token_type: TokenType, value: str | int, start: int) -> Token:
        offset = self._byte_pos if token_type is TokenType.EOF else self._byte_mark
        return Token(token_type, value, start, self._pos, offset)

    def _identifier(self, start: int) -> Token:
        end = start + 1
        while end < self._length and self._text[end] in _IDENTIFIER_CHARS:
            end += 1
        self._advance(end - start)
        return self._token(TokenType.UNQUOTED_IDENTIFIER, self._text[start:end], start)

    def _number(self, start: int) -> Token:
        end = start + 1
        while end < self._length and self._text[end] in _DIGITS:
            end += 1
        self._advance(end - start)
        return self._token(TokenType.NUMBER, int(self._text[start:end]), start)

    def _lbracket(self, start: int) -> Token:
        following = self._text[start + 1 : start + 2]
        if following == "]":
            self._advance(2)
            return self._token(TokenType.FLATTEN, "[]", start)
        if following == "?":
            self._advance(2)
            return self._token(TokenType.FILTER, "[?", start)
        self._advance(1)
        return self._token(TokenType.LBRACKET, "[", start)

    def _paired(self, char: str, start: int) -> Token:
        second, double_type, single_type = _PAIRED_TOKENS[char]
        if self._text[start + 1 : start + 2] == second:
            self._advance(2)
            return self._token(double_type, char + second, start)
        if single_type is None:
            raise LexerError(
                f"Unknown token '{char}' (did you mean '{char}{second}'?)",
                expression=self._text,
                position=start,
            )
        self._advance(1)
        return self._token(single_type, char, start)

    def _delimited(self, start: int, delimiter: str, what: str) -> str:
        """Return the body between delimiters, leaving escapes untouched."""
        pos = start + 1
        while pos < self._length:
            char = self._text[pos]
            if char == "\\":
                pos += 2
                continue
            if char == delimiter:
                body = self._text[start + 1 : pos]
                self._advance(pos + 1 - start)
                return body
            pos += 1
        raise LexerError(
            f"Unterminated {what}",
            expression=self._text,
            position=start,
        )

    def _quoted_identifier(self, start: int) -> Token:
        body = self._delimited(start, '"', "quoted identifier")
        try:
            name = json.loads(f'"{body}"')
        except ValueError as e:
            raise LexerError(
                f"Invalid escape in quoted identifier: {body!r}",
                expression=self._text,
                position=start,
            ) from e
        return self._token(TokenType.QUOTED_IDENTIFIER, name, start)

    def _raw_string(self, start: int) -> Token:
        body = self._delimited(start, "'", "raw string")
        return self._token(TokenType.RAW_STRING, _unescape_raw_string(body), start)

    def _literal(self, start: int) -> Token:
        body = self._delimited(start, "`", "JSON literal")
        return self._token(TokenType.LITERAL, body.replace("\\`", "`"), start)


def _unescape_raw_string(body: str) -> str:
    """Apply the two raw-string escapes; other backslashes are kept."""
    chars: list[str] = []
    i = 0
    while i < len(body):
        char = body[i]
        if char == "\\" and body[i + 1 : i + 2] in ("'", "\\"):
            chars.append(body[i + 1])
            i += 2
            continue
        chars.append(char)
        i += 1
    return "".join(chars)


class TokenStream:
    """Lazy, restartable sequence of tokens for one expression.

    Each iteration rescans the expression from the start. Lexical errors are
    raised when the offending token is reached.

    Examples:
        >>> [t.type.value for t in tokenize("foo[0]")]
        ['unquoted_identifier', 'lbracket', 'number', 'rbracket', 'eof']
    """

    __slots__ = ("expression",)

    def __init__(self, expression: str) -> None:
        self.expression = expression

    def __iter__(self) -> Iterator[Token]:
        return _Scanner(self.expression).tokens()

    def __repr__(self) -> str:
        return f"TokenStream({self.expression!r})"


def tokenize(expression: str) -> TokenStream:
    """Tokenize an expression string.

    Args:
        expression: Expression source text.

    Returns:
        A TokenStream; iterate it to obtain tokens ending with ``eof``.

    Raises:
        LexerError: While iterating, for unknown characters, unterminated
            strings or literals, and malformed escapes.
    """
    return TokenStream(expression)
