"""Optimizer extension: simplifies the parsed template before code generation.

Folds constant output (``{{ "text" }}``) into raw data and merges adjacent
data nodes, so the generated render function appends fewer, larger
strings. Controlled by the environment's ``optimizations`` level: ``0``
disables it, any other value enables it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kiln.extensions import Extension, NodeVisitor
from kiln.nodes import Const, Data, Node, Output, Template

if TYPE_CHECKING:
    from kiln.environment import Environment

OPTIMIZE_NONE = 0
OPTIMIZE_ALL = -1


class ConstantOutputFolder(NodeVisitor):
    """Turn constant outputs into data and coalesce adjacent data nodes."""

    priority = 255

    def visit(self, template: Template, env: Environment) -> Template:
        body: list[Node] = []
        for node in template.body:
            if isinstance(node, Output) and isinstance(node.expr, Const):
                node = Data(node.lineno, node.col_offset, str(node.expr.value))
            if isinstance(node, Data) and body and isinstance(body[-1], Data):
                prev = body.pop()
                node = Data(prev.lineno, prev.col_offset, prev.value + node.value)
            if isinstance(node, Data) and not node.value:
                continue
            body.append(node)
        return Template(
            template.lineno,
            template.col_offset,
            tuple(body),
            name=template.name,
            filename=template.filename,
        )


class OptimizerExtension(Extension):
    def __init__(self, optimizers: int = OPTIMIZE_ALL):
        self.optimizers = optimizers

    def get_node_visitors(self) -> list[NodeVisitor]:
        if self.optimizers == OPTIMIZE_NONE:
            return []
        return [ConstantOutputFolder()]
