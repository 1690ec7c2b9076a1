"""Expression parser.

This module turns query expression strings into immutable AST trees (see
sdkquery.expressions.ast). It is a top-down operator precedence (Pratt)
parser over the lexer's token stream: each token kind has a binding power,
a prefix handler ("nud") and, where it can follow an expression, an infix or
postfix handler ("led").

Precedence, lowest to highest:

    |  <  ||  <  &&  <  !  <  == != < <= > >=  <  []  <  [*] .* [?  <  .  <  [

Bracket forms are told apart by the token after ``[``:

- ``[*]``           array wildcard projection
- ``[]``            flatten (its own token)
- ``[?expr]``       filter (its own token)
- ``[n]``, ``[a:b:c]``  index or slice, with optional signed integers
- anything else     multiselect list, only legal where an expression starts

The parser reads one token ahead (two to recognise ``[*]``) and never goes
back to the lexer. A depth counter bounds both recursion and postfix chain
growth, so hostile inputs fail with a ParseError instead of exhausting the
interpreter stack.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from typing import NoReturn

from sdkquery.expressions import ast
from sdkquery.expressions.config import DEFAULTS
from sdkquery.expressions.errors import IncompleteExpressionError, ParseError
from sdkquery.expressions.lexer import Token, TokenType, tokenize

__all__ = [
    "Parser",
    "parse",
]

# Left binding power of tokens that can follow an expression
BINDING_POWER: dict[TokenType, int] = {
    TokenType.EOF: 0,
    TokenType.UNQUOTED_IDENTIFIER: 0,
    TokenType.QUOTED_IDENTIFIER: 0,
    TokenType.RAW_STRING: 0,
    TokenType.LITERAL: 0,
    TokenType.NUMBER: 0,
    TokenType.RBRACKET: 0,
    TokenType.RPAREN: 0,
    TokenType.RBRACE: 0,
    TokenType.COMMA: 0,
    TokenType.COLON: 0,
    TokenType.CURRENT: 0,
    TokenType.EXPREF: 0,
    TokenType.MINUS: 0,
    TokenType.LBRACE: 0,
    TokenType.PIPE: 1,
    TokenType.OR: 2,
    TokenType.AND: 3,
    TokenType.NOT: 4,
    TokenType.EQ: 5,
    TokenType.NE: 5,
    TokenType.LT: 5,
    TokenType.LTE: 5,
    TokenType.GT: 5,
    TokenType.GTE: 5,
    TokenType.FLATTEN: 9,
    TokenType.STAR: 20,
    TokenType.FILTER: 21,
    TokenType.DOT: 40,
    TokenType.LBRACKET: 55,
    TokenType.LPAREN: 60,
}

_COMPARATORS: dict[TokenType, ast.Comparator] = {
    TokenType.EQ: ast.Comparator.EQ,
    TokenType.NE: ast.Comparator.NE,
    TokenType.LT: ast.Comparator.LT,
    TokenType.LTE: ast.Comparator.LTE,
    TokenType.GT: ast.Comparator.GT,
    TokenType.GTE: ast.Comparator.GTE,
}


def _reject_constant(name: str) -> NoReturn:
    raise ValueError(f"{name} is not valid JSON")


class Parser:
    """Parser for one expression string.

    A Parser holds the per-parse state (token buffer, depth counter, open
    brackets), so each instance parses a single expression; the module-level
    ``parse()`` creates one per call.

    Example:
        ```python
        tree = Parser("foo[*].bar", max_depth=32).parse()
        ```
    """

    def __init__(self, expression: str, max_depth: int = DEFAULTS.MAX_DEPTH) -> None:
        self._expression = expression
        self._max_depth = max_depth
        self._tokens: Iterator[Token] = iter(tokenize(expression))
        self._buffer: list[Token] = []
        self._depth = 0
        # Opening tokens still waiting for their closer
        self._open: list[Token] = []

        self._nud: dict[TokenType, Callable[[Token], ast.Node]] = {
            TokenType.LITERAL: self._nud_literal,
            TokenType.UNQUOTED_IDENTIFIER: self._nud_unquoted_identifier,
            TokenType.QUOTED_IDENTIFIER: self._nud_quoted_identifier,
            TokenType.RAW_STRING: self._nud_raw_string,
            TokenType.CURRENT: self._nud_current,
            TokenType.STAR: self._nud_star,
            TokenType.NOT: self._nud_not,
            TokenType.LPAREN: self._nud_lparen,
            TokenType.LBRACKET: self._nud_lbracket,
            TokenType.LBRACE: self._nud_lbrace,
            TokenType.FLATTEN: self._nud_flatten,
            TokenType.FILTER: self._nud_filter,
        }
        self._led: dict[TokenType, Callable[[Token, ast.Node], ast.Node]] = {
            TokenType.DOT: self._led_dot,
            TokenType.PIPE: self._led_pipe,
            TokenType.OR: self._led_or,
            TokenType.AND: self._led_and,
            TokenType.FLATTEN: self._led_flatten,
            TokenType.FILTER: self._led_filter,
            TokenType.LBRACKET: self._led_lbracket,
            TokenType.LPAREN: self._led_lparen,
            **{t: self._led_comparator for t in _COMPARATORS},
        }

    def parse(self) -> ast.Node:
        """Parse the whole expression.

        Returns:
            Root node of the AST.

        Raises:
            LexerError: For invalid characters or unterminated strings.
            ParseError: For any grammar violation.
        """
        if not self._expression.strip():
            self._fail("Empty expression", self._current(), expected=("expression",))
        try:
            result = self._parse_expression(0)
        except RecursionError:
            # The lexer may have died with the stack, so use buffered tokens only
            position = self._buffer[0].start if self._buffer else len(self._expression)
            raise ParseError(
                f"Expression exceeds maximum nesting depth of {self._max_depth} "
                f"(interpreter stack exhausted)",
                expression=self._expression,
                position=position,
            ) from None
        if self._current().type is not TokenType.EOF:
            self._fail(
                f"Unexpected token {self._describe(self._current())}",
                self._current(),
                expected=("eof",),
            )
        return result

    # ------------------------------------------------------------------
    # Token buffer
    # ------------------------------------------------------------------

    def _lookahead(self, n: int = 0) -> Token:
        while len(self._buffer) <= n:
            if self._buffer and self._buffer[-1].type is TokenType.EOF:
                return self._buffer[-1]
            self._buffer.append(next(self._tokens))
        return self._buffer[n]

    def _current(self) -> Token:
        return self._lookahead(0)

    def _advance(self) -> Token:
        token = self._current()
        if token.type is not TokenType.EOF:
            self._buffer.pop(0)
        return token

    def _match(self, token_type: TokenType) -> Token:
        token = self._current()
        if token.type is not token_type:
            self._fail(
                f"Expected {token_type.value}, got {self._describe(token)}",
                token,
                expected=(token_type.value,),
            )
        return self._advance()

    def _open_bracket(self, token: Token) -> None:
        self._open.append(token)

    def _close_bracket(self, closer: TokenType) -> None:
        self._match(closer)
        self._open.pop()

    # ------------------------------------------------------------------
    # Core loop
    # ------------------------------------------------------------------

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > self._max_depth:
            self._fail(
                f"Expression exceeds maximum nesting depth of {self._max_depth}",
                self._current(),
            )

    def _parse_expression(self, binding_power: int) -> ast.Node:
        entered = 0
        try:
            entered += 1
            self._enter()
            token = self._advance()
            nud = self._nud.get(token.type)
            if nud is None:
                self._fail_nud(token)
            left = nud(token)
            while binding_power < BINDING_POWER[self._current().type]:
                # Every postfix step nests the tree one level deeper
                entered += 1
                self._enter()
                token = self._advance()
                led = self._led.get(token.type)
                if led is None:
                    self._fail(f"Unexpected token {self._describe(token)}", token)
                left = led(token, left)
            return left
        finally:
            self._depth -= entered

    # ------------------------------------------------------------------
    # Prefix handlers
    # ------------------------------------------------------------------

    def _nud_literal(self, token: Token) -> ast.Node:
        text = str(token.value)
        try:
            value = json.loads(text, parse_constant=_reject_constant)
        except ValueError as e:
            self._fail(f"Invalid JSON literal `{text}`: {e}", token, cause=e)
        return ast.Literal(value)

    def _nud_unquoted_identifier(self, token: Token) -> ast.Node:
        if self._current().type is TokenType.LPAREN:
            return self._parse_function_call(token)
        return ast.Identifier(str(token.value))

    def _nud_quoted_identifier(self, token: Token) -> ast.Node:
        if self._current().type is TokenType.LPAREN:
            self._fail(
                "Quoted identifiers cannot be used as function names",
                self._current(),
            )
        return ast.Identifier(str(token.value))

    def _nud_raw_string(self, token: Token) -> ast.Node:
        return ast.RawString(str(token.value))

    def _nud_current(self, token: Token) -> ast.Node:
        return ast.CurrentNode()

    def _nud_star(self, token: Token) -> ast.Node:
        return ast.WildcardObject(None)

    def _nud_not(self, token: Token) -> ast.Node:
        return ast.Not(self._parse_expression(BINDING_POWER[TokenType.NOT]))

    def _nud_lparen(self, token: Token) -> ast.Node:
        self._open_bracket(token)
        inner = self._parse_expression(0)
        self._close_bracket(TokenType.RPAREN)
        return inner

    def _nud_flatten(self, token: Token) -> ast.Node:
        return ast.Flatten(None)

    def _nud_filter(self, token: Token) -> ast.Node:
        return self._parse_filter(token, None)

    def _nud_lbracket(self, token: Token) -> ast.Node:
        self._open_bracket(token)
        current = self._current().type
        if current in (TokenType.NUMBER, TokenType.COLON, TokenType.MINUS):
            return self._parse_index_or_slice(None)
        if current is TokenType.STAR and (
            self._lookahead(1).type is TokenType.RBRACKET
        ):
            self._advance()
            self._close_bracket(TokenType.RBRACKET)
            return ast.WildcardArray(None)
        return self._parse_multiselect_list()

    def _nud_lbrace(self, token: Token) -> ast.Node:
        self._open_bracket(token)
        return self._parse_multiselect_hash()

    def _fail_nud(self, token: Token) -> NoReturn:
        if token.type is TokenType.EOF:
            self._fail("Unexpected end of expression", token, expected=("expression",))
        if token.type is TokenType.NUMBER:
            self._fail(
                "Numbers are only valid inside brackets; "
                "use a JSON literal such as `1` instead",
                token,
            )
        if token.type is TokenType.EXPREF:
            self._fail(
                "Expression references (&) are only valid as function arguments",
                token,
            )
        self._fail(
            f"Unexpected token {self._describe(token)}",
            token,
            expected=("expression",),
        )

    # ------------------------------------------------------------------
    # Infix / postfix handlers
    # ------------------------------------------------------------------

    def _led_dot(self, token: Token, left: ast.Node) -> ast.Node:
        current = self._current()
        if current.type is TokenType.STAR:
            self._advance()
            return ast.WildcardObject(left)
        return ast.Subexpression(left, self._parse_dot_rhs())

    def _led_pipe(self, token: Token, left: ast.Node) -> ast.Node:
        return ast.Pipe(left, self._parse_expression(BINDING_POWER[TokenType.PIPE]))

    def _led_or(self, token: Token, left: ast.Node) -> ast.Node:
        return ast.Or(left, self._parse_expression(BINDING_POWER[TokenType.OR]))

    def _led_and(self, token: Token, left: ast.Node) -> ast.Node:
        return ast.And(left, self._parse_expression(BINDING_POWER[TokenType.AND]))

    def _led_comparator(self, token: Token, left: ast.Node) -> ast.Node:
        right = self._parse_expression(BINDING_POWER[token.type])
        return ast.Comparison(_COMPARATORS[token.type], left, right)

    def _led_flatten(self, token: Token, left: ast.Node) -> ast.Node:
        return ast.Flatten(left)

    def _led_filter(self, token: Token, left: ast.Node) -> ast.Node:
        return self._parse_filter(token, left)

    def _led_lbracket(self, token: Token, left: ast.Node) -> ast.Node:
        self._open_bracket(token)
        current = self._current()
        if current.type in (TokenType.NUMBER, TokenType.COLON, TokenType.MINUS):
            return self._parse_index_or_slice(left)
        if current.type is TokenType.STAR:
            self._advance()
            self._close_bracket(TokenType.RBRACKET)
            return ast.WildcardArray(left)
        self._fail(
            f"Expected an index, slice or '*' inside brackets, "
            f"got {self._describe(current)}",
            current,
            expected=("number", "colon", "star"),
        )

    def _led_lparen(self, token: Token, left: ast.Node) -> ast.Node:
        self._fail("Function calls must start with a function name", token)

    # ------------------------------------------------------------------
    # Compound productions
    # ------------------------------------------------------------------

    def _parse_dot_rhs(self) -> ast.Node:
        token = self._current()
        if token.type is TokenType.UNQUOTED_IDENTIFIER:
            self._advance()
            if self._current().type is TokenType.LPAREN:
                return self._parse_function_call(token)
            return ast.Identifier(str(token.value))
        if token.type is TokenType.QUOTED_IDENTIFIER:
            self._advance()
            return self._nud_quoted_identifier(token)
        if token.type is TokenType.LBRACKET:
            self._open_bracket(self._advance())
            return self._parse_multiselect_list()
        if token.type is TokenType.LBRACE:
            self._open_bracket(self._advance())
            return self._parse_multiselect_hash()
        self._fail(
            f"Expected identifier, '*', '[' or '{{' after '.', "
            f"got {self._describe(token)}",
            token,
            expected=("identifier", "star", "lbracket", "lbrace"),
        )

    def _parse_filter(self, token: Token, source: ast.Node | None) -> ast.Node:
        self._open_bracket(token)
        predicate = self._parse_expression(0)
        self._close_bracket(TokenType.RBRACKET)
        return ast.Filter(source, predicate)

    def _parse_signed_int(self) -> int | None:
        """Parse an optional signed integer inside brackets."""
        if self._current().type is TokenType.MINUS:
            self._advance()
            return -int(self._match(TokenType.NUMBER).value)
        if self._current().type is TokenType.NUMBER:
            return int(self._advance().value)
        return None

    def _parse_index_or_slice(self, left: ast.Node | None) -> ast.Node:
        parts: list[int | None] = [self._parse_signed_int()]
        step_token: Token | None = None
        while self._current().type is TokenType.COLON and len(parts) < 3:
            self._advance()
            if len(parts) == 2:
                step_token = self._current()
            parts.append(self._parse_signed_int())

        closer = self._current()
        if closer.type is not TokenType.RBRACKET:
            self._fail(
                f"Expected ']' to close index or slice, got {self._describe(closer)}",
                closer,
                expected=("rbracket",) if len(parts) == 3 else ("colon", "rbracket"),
            )
        self._close_bracket(TokenType.RBRACKET)

        if len(parts) == 1:
            index = parts[0]
            if index is None:
                self._fail("Expected an index", closer, expected=("number",))
            return ast.Index(left, index)

        parts.extend([None] * (3 - len(parts)))
        start, stop, step = parts
        if step == 0 and step_token is not None:
            self._fail("Slice step cannot be 0 (invalid step 0)", step_token)
        return ast.Slice(left, start, stop, step)

    def _parse_multiselect_list(self) -> ast.Node:
        items: list[ast.Node] = []
        while True:
            items.append(self._parse_expression(0))
            if self._current().type is TokenType.RBRACKET:
                break
            self._match_separator(TokenType.RBRACKET)
        self._close_bracket(TokenType.RBRACKET)
        return ast.MultiselectList(tuple(items))

    def _parse_multiselect_hash(self) -> ast.Node:
        pairs: list[tuple[str, ast.Node]] = []
        while True:
            key_token = self._current()
            if key_token.type not in (
                TokenType.UNQUOTED_IDENTIFIER,
                TokenType.QUOTED_IDENTIFIER,
            ):
                self._fail(
                    f"Expected a key name, got {self._describe(key_token)}",
                    key_token,
                    expected=("identifier",),
                )
            self._advance()
            self._match(TokenType.COLON)
            pairs.append((str(key_token.value), self._parse_expression(0)))
            if self._current().type is TokenType.RBRACE:
                break
            self._match_separator(TokenType.RBRACE)
        self._close_bracket(TokenType.RBRACE)
        return ast.MultiselectHash(tuple(pairs))

    def _parse_function_call(self, name_token: Token) -> ast.Node:
        self._open_bracket(self._match(TokenType.LPAREN))
        args: list[ast.Node] = []
        while self._current().type is not TokenType.RPAREN:
            if args:
                self._match_separator(TokenType.RPAREN)
            if self._current().type is TokenType.EXPREF:
                self._advance()
                args.append(ast.ExpressionRef(self._parse_expression(0)))
            else:
                args.append(self._parse_expression(0))
        self._close_bracket(TokenType.RPAREN)
        return ast.FunctionCall(str(name_token.value), tuple(args))

    def _match_separator(self, closer: TokenType) -> None:
        token = self._current()
        if token.type is not TokenType.COMMA:
            self._fail(
                f"Expected ',' or {closer.value}, got {self._describe(token)}",
                token,
                expected=("comma", closer.value),
            )
        self._advance()

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    @staticmethod
    def _describe(token: Token) -> str:
        if token.type is TokenType.EOF:
            return "end of expression"
        return f"{token.type.value} '{token.value}'"

    def _fail(
        self,
        reason: str,
        token: Token,
        expected: tuple[str, ...] = (),
        cause: Exception | None = None,
    ) -> NoReturn:
        if token.type is TokenType.EOF:
            position = token.start
            if self._open:
                opener = self._open[-1]
                position = opener.start
                reason = f"Unclosed '{opener.value}': {reason}"
            raise IncompleteExpressionError(
                reason,
                expression=self._expression,
                position=position,
                expected=expected,
            ) from cause
        raise ParseError(
            reason,
            expression=self._expression,
            position=token.start,
            expected=expected,
        ) from cause


def parse(expression: str, max_depth: int = DEFAULTS.MAX_DEPTH) -> ast.Node:
    """Parse an expression string into an AST.

    Args:
        expression: Expression source text.
        max_depth: Maximum nesting depth before the parse is rejected.

    Returns:
        Root node of the parsed expression.

    Raises:
        LexerError: For invalid characters or unterminated strings.
        ParseError: For syntax errors; IncompleteExpressionError when the
            expression ends early.

    Examples:
        >>> parse("foo.bar")
        Subexpression(left=Identifier(name='foo'), right=Identifier(name='bar'))
        >>> parse("[0]")
        Index(expression=None, index=0)
    """
    return Parser(expression, max_depth=max_depth).parse()
