"""Lexer for the default kiln template syntax.

Splits template source into a flat token list:

- text outside tags becomes one ``DATA`` token per run,
- ``{{ ... }}`` becomes ``VARIABLE_BEGIN``, expression tokens, ``VARIABLE_END``,
- ``{# ... #}`` comments are dropped.

Expression tokens are names, integers, quoted strings (with Python escape
sequences) and the punctuation ``. | ( ) ,``.

Example:
    >>> [t.type.value for t in tokenize("Hi {{ name }}")]
    ['data', 'variable_begin', 'name', 'variable_end', 'eof']

"""

from __future__ import annotations

import ast
import re

from kiln._types import Token, TokenType
from kiln.environment.exceptions import TemplateSyntaxError

VARIABLE_BEGIN = "{{"
VARIABLE_END = "}}"
COMMENT_BEGIN = "{#"
COMMENT_END = "#}"

_PUNCTUATION = {
    ".": TokenType.DOT,
    "|": TokenType.PIPE,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
}


class Lexer:
    """Tokenizer for template source. Stateless between calls."""

    _TAG_START_RE = re.compile(r"\{\{|\{#")
    _EXPR_RE = re.compile(
        r"""
        (?P<ws>\s+)
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
      | (?P<integer>\d+)
      | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<punct>[.|(),])
        """,
        re.VERBOSE | re.DOTALL,
    )

    def tokenize(self, source: str, name: str | None = None) -> list[Token]:
        """Tokenize ``source``; the list always ends with an EOF token.

        Raises:
            TemplateSyntaxError: Unclosed tag or comment, or an unexpected character
        """
        tokens: list[Token] = []
        pos = 0
        length = len(source)

        while pos < length:
            match = self._TAG_START_RE.search(source, pos)
            if match is None:
                tokens.append(self._token(source, TokenType.DATA, source[pos:], pos))
                break

            start = match.start()
            if start > pos:
                tokens.append(self._token(source, TokenType.DATA, source[pos:start], pos))

            if match.group() == COMMENT_BEGIN:
                end = source.find(COMMENT_END, match.end())
                if end == -1:
                    raise self._error(source, name, "Unclosed comment", start)
                pos = end + len(COMMENT_END)
                continue

            tokens.append(self._token(source, TokenType.VARIABLE_BEGIN, VARIABLE_BEGIN, start))
            pos = self._tokenize_expression(source, name, match.end(), tokens)

        tokens.append(self._token(source, TokenType.EOF, "", length))
        return tokens

    def _tokenize_expression(
        self, source: str, name: str | None, pos: int, tokens: list[Token]
    ) -> int:
        length = len(source)
        while pos < length:
            if source.startswith(VARIABLE_END, pos):
                tokens.append(self._token(source, TokenType.VARIABLE_END, VARIABLE_END, pos))
                return pos + len(VARIABLE_END)

            match = self._EXPR_RE.match(source, pos)
            if match is None:
                raise self._error(source, name, f"Unexpected character {source[pos]!r}", pos)

            kind = match.lastgroup
            text = match.group()
            if kind == "name":
                tokens.append(self._token(source, TokenType.NAME, text, pos))
            elif kind == "integer":
                tokens.append(self._token(source, TokenType.INTEGER, text, pos))
            elif kind == "string":
                tokens.append(self._token(source, TokenType.STRING, ast.literal_eval(text), pos))
            elif kind == "punct":
                tokens.append(self._token(source, _PUNCTUATION[text], text, pos))
            pos = match.end()

        raise self._error(
            source, name, f"Unexpected end of template, expected '{VARIABLE_END}'", length
        )

    @staticmethod
    def _position(source: str, pos: int) -> tuple[int, int]:
        lineno = source.count("\n", 0, pos) + 1
        col_offset = pos - (source.rfind("\n", 0, pos) + 1)
        return lineno, col_offset

    def _token(self, source: str, type_: TokenType, value: str, pos: int) -> Token:
        lineno, col_offset = self._position(source, pos)
        return Token(type_, value, lineno, col_offset)

    def _error(
        self, source: str, name: str | None, message: str, pos: int
    ) -> TemplateSyntaxError:
        lineno, col_offset = self._position(source, pos)
        return TemplateSyntaxError(
            message, lineno=lineno, name=name, source=source, col_offset=col_offset
        )


def tokenize(source: str, name: str | None = None) -> list[Token]:
    """Tokenize with a default Lexer."""
    return Lexer().tokenize(source, name)
