"""Template root node for the kiln template AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from kiln.nodes.base import Node


@dataclass(frozen=True, slots=True)
class Template(Node):
    """Root node: the body of one template source."""

    body: Sequence[Node]
    name: str | None = None
    filename: str | None = None
