"""Parser: token list → immutable template AST.

Grammar:
    template := (DATA | "{{" expr "}}")* EOF
    expr     := filtered ("is" ["not"] NAME [args])?
    filtered := postfix ("|" NAME [args])*
    postfix  := primary ("." NAME)*
    primary  := NAME [args] | STRING | INTEGER | "(" expr ")"
    args     := "(" [expr ("," expr)*] ")"

A ``NAME`` followed by arguments is a function call. Filters, tests and
functions are resolved against the environment while parsing, so an
unknown one is a syntax error rather than a render-time failure.
"""

from __future__ import annotations

from collections.abc import Sequence
from difflib import get_close_matches
from typing import TYPE_CHECKING

from kiln._types import Token, TokenType
from kiln.nodes import (
    Const,
    Data,
    Expr,
    Filter,
    FuncCall,
    Getattr,
    Name,
    Node,
    Output,
    Template,
    Test,
)
from kiln.parser.errors import ParseError

if TYPE_CHECKING:
    from kiln.environment import Environment


class Parser:
    """Recursive-descent parser bound to an Environment."""

    __slots__ = ("_env", "_filename", "_name", "_pos", "_source", "_tokens")

    def __init__(self, env: Environment):
        self._env = env
        self._tokens: Sequence[Token] = ()
        self._pos = 0
        self._name: str | None = None
        self._filename: str | None = None
        self._source: str | None = None

    def parse(
        self,
        tokens: Sequence[Token],
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
    ) -> Template:
        """Parse a token list produced by the lexer.

        Raises:
            ParseError: On unexpected tokens or unknown filters/tests/functions
        """
        self._tokens = tokens
        self._pos = 0
        self._name = name
        self._filename = filename
        self._source = source

        body: list[Node] = []
        while not self._match(TokenType.EOF):
            token = self._current
            if token.type == TokenType.DATA:
                self._advance()
                body.append(Data(token.lineno, token.col_offset, token.value))
            elif token.type == TokenType.VARIABLE_BEGIN:
                self._advance()
                expr = self._parse_expr()
                self._expect(TokenType.VARIABLE_END)
                body.append(Output(token.lineno, token.col_offset, expr))
            else:
                raise self._error(f"Unexpected {token.type.value} token")

        return Template(1, 0, tuple(body), name=name, filename=filename)

    # ------------------------------------------------------------------
    # Token navigation
    # ------------------------------------------------------------------

    @property
    def _current(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.type != TokenType.EOF:
            self._pos += 1
        return token

    def _match(self, *types: TokenType) -> bool:
        return self._current.type in types

    def _expect(self, token_type: TokenType) -> Token:
        if not self._match(token_type):
            found = self._current
            described = "end of template" if found.type == TokenType.EOF else repr(found.value)
            raise self._error(f"Expected {token_type.value}, found {described}")
        return self._advance()

    def _error(
        self, message: str, token: Token | None = None, suggestion: str | None = None
    ) -> ParseError:
        return ParseError(
            message,
            token or self._current,
            source=self._source,
            name=self._name,
            filename=self._filename,
            suggestion=suggestion,
        )

    def _unknown(self, kind: str, token: Token, known: Sequence[str]) -> ParseError:
        matches = get_close_matches(token.value, known, n=1, cutoff=0.6)
        suggestion = f"Did you mean '{matches[0]}'?" if matches else None
        return self._error(f"Unknown {kind} '{token.value}'", token, suggestion)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _parse_expr(self) -> Expr:
        expr = self._parse_filtered()
        if self._match(TokenType.NAME) and self._current.value == "is":
            is_token = self._advance()
            negated = False
            if self._match(TokenType.NAME) and self._current.value == "not":
                self._advance()
                negated = True
            name_token = self._expect(TokenType.NAME)
            if self._env.get_test(name_token.value) is None:
                raise self._unknown("test", name_token, list(self._env.get_tests()))
            args = self._parse_args() if self._match(TokenType.LPAREN) else ()
            expr = Test(is_token.lineno, is_token.col_offset, expr, name_token.value, args, negated)
        return expr

    def _parse_filtered(self) -> Expr:
        expr = self._parse_postfix()
        while self._match(TokenType.PIPE):
            pipe = self._advance()
            name_token = self._expect(TokenType.NAME)
            if self._env.get_filter(name_token.value) is None:
                raise self._unknown("filter", name_token, list(self._env.get_filters()))
            args = self._parse_args() if self._match(TokenType.LPAREN) else ()
            expr = Filter(pipe.lineno, pipe.col_offset, expr, name_token.value, args)
        return expr

    def _parse_postfix(self) -> Expr:
        expr = self._parse_primary()
        while self._match(TokenType.DOT):
            dot = self._advance()
            if self._match(TokenType.INTEGER):
                attr = self._advance()
            else:
                attr = self._expect(TokenType.NAME)
            expr = Getattr(dot.lineno, dot.col_offset, expr, attr.value)
        return expr

    def _parse_primary(self) -> Expr:
        token = self._current
        if token.type == TokenType.NAME:
            self._advance()
            if self._match(TokenType.LPAREN):
                if self._env.get_function(token.value) is None:
                    raise self._unknown("function", token, list(self._env.get_functions()))
                return FuncCall(token.lineno, token.col_offset, token.value, self._parse_args())
            return Name(token.lineno, token.col_offset, token.value)
        if token.type == TokenType.STRING:
            self._advance()
            return Const(token.lineno, token.col_offset, token.value)
        if token.type == TokenType.INTEGER:
            self._advance()
            return Const(token.lineno, token.col_offset, int(token.value))
        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expr()
            self._expect(TokenType.RPAREN)
            return expr
        if token.type == TokenType.VARIABLE_END:
            raise self._error("Expected an expression, found '}}'")
        raise self._error(f"Unexpected {token.type.value} token {token.value!r}")

    def _parse_args(self) -> tuple[Expr, ...]:
        self._expect(TokenType.LPAREN)
        args: list[Expr] = []
        if not self._match(TokenType.RPAREN):
            args.append(self._parse_expr())
            while self._match(TokenType.COMMA):
                self._advance()
                args.append(self._parse_expr())
        self._expect(TokenType.RPAREN)
        return tuple(args)
