"""Output nodes for the kiln template AST."""

from __future__ import annotations

from dataclasses import dataclass

from kiln.nodes.base import Node
from kiln.nodes.expressions import Expr


@dataclass(frozen=True, slots=True)
class Output(Node):
    """Output expression: {{ expr }}"""

    expr: Expr


@dataclass(frozen=True, slots=True)
class Data(Node):
    """Raw text data between template constructs."""

    value: str
