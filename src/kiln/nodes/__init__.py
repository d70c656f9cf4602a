"""Immutable AST produced by the parser and consumed by the compiler."""

from kiln.nodes.base import Node
from kiln.nodes.expressions import Const, Expr, Filter, FuncCall, Getattr, Name, Test
from kiln.nodes.output import Data, Output
from kiln.nodes.structure import Template

__all__ = [
    "Const",
    "Data",
    "Expr",
    "Filter",
    "FuncCall",
    "Getattr",
    "Name",
    "Node",
    "Output",
    "Template",
    "Test",
]
