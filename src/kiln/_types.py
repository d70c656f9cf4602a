"""Token types shared by the lexer and the parser."""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple


class TokenType(Enum):
    DATA = "data"
    VARIABLE_BEGIN = "variable_begin"
    VARIABLE_END = "variable_end"
    NAME = "name"
    STRING = "string"
    INTEGER = "integer"
    DOT = "dot"
    PIPE = "pipe"
    LPAREN = "lparen"
    RPAREN = "rparen"
    COMMA = "comma"
    EOF = "eof"


class Token(NamedTuple):
    type: TokenType
    value: str
    lineno: int
    col_offset: int
