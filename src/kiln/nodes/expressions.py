"""Expression nodes for the kiln template AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from kiln.nodes.base import Node


@dataclass(frozen=True, slots=True)
class Expr(Node):
    """Base class for expressions."""


@dataclass(frozen=True, slots=True)
class Const(Expr):
    """Literal value: "text" or 42"""

    value: str | int


@dataclass(frozen=True, slots=True)
class Name(Expr):
    """Variable reference: user"""

    name: str


@dataclass(frozen=True, slots=True)
class Getattr(Expr):
    """Attribute or key access: user.name"""

    obj: Expr
    attr: str


@dataclass(frozen=True, slots=True)
class FuncCall(Expr):
    """Call of a registered function: range(3)"""

    name: str
    args: Sequence[Expr] = ()


@dataclass(frozen=True, slots=True)
class Filter(Expr):
    """Filter application: value | upper"""

    value: Expr
    name: str
    args: Sequence[Expr] = ()


@dataclass(frozen=True, slots=True)
class Test(Expr):
    """Test application: value is defined / value is not odd"""

    value: Expr
    name: str
    args: Sequence[Expr] = ()
    negated: bool = False
