"""Extension API for kiln.

An extension bundles filters, functions, tests, operators, node visitors
and globals. Extensions are registered on an Environment before its first
template is compiled; their composition is part of every compiled
artifact's identity.

Example:
    ```python
    from kiln import Environment
    from kiln.extensions import Extension

    class SlugExtension(Extension):
        def get_filters(self):
            return {"slug": lambda s: s.lower().replace(" ", "-")}

        def get_globals(self):
            return {"site_name": "Example"}

    env = Environment()
    env.add_extension(SlugExtension())
    env.from_string("{{ site_name | slug }}").render()  # 'example'
    ```

"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kiln.environment import Environment
    from kiln.nodes import Template as TemplateNode


class NodeVisitor:
    """Rewrites a parsed template before code generation.

    Visitors run in ascending ``priority`` order. ``visit`` returns the
    (possibly new) template node; nodes are immutable.
    """

    priority: int = 0

    def visit(self, template: TemplateNode, env: Environment) -> TemplateNode:
        return template


class Extension:
    """Base class for extensions. Override only the hooks you need."""

    @property
    def name(self) -> str:
        cls = type(self)
        return f"{cls.__module__}.{cls.__qualname__}"

    def get_filters(self) -> dict[str, Callable[..., Any]]:
        return {}

    def get_functions(self) -> dict[str, Callable[..., Any]]:
        return {}

    def get_tests(self) -> dict[str, Callable[..., bool]]:
        return {}

    def get_node_visitors(self) -> list[NodeVisitor]:
        return []

    def get_operators(
        self,
    ) -> tuple[dict[str, Callable[..., Any]], dict[str, Callable[..., Any]]]:
        """Return ``(unary, binary)`` operator tables keyed by symbol."""
        return {}, {}

    def get_globals(self) -> dict[str, Any]:
        return {}

    def init_runtime(self, env: Environment) -> None:
        """Called once, right before the first template is instantiated."""


__all__ = ["Extension", "NodeVisitor"]
