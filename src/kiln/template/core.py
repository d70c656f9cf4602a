"""kiln Template — loaded template instance ready for rendering.

A Template wraps an activated unit (the module produced by executing a
compiled artifact) and binds it to the Environment that loaded it. The
unit's ``render(ctx, rt)`` function receives the Template itself as its
runtime ``rt``: variable lookup, attribute access, filters, tests and
functions all resolve through the Template against the Environment.

Architecture:
    ```
    Template
    ├── _env_ref: WeakRef[Environment]  # Prevents circular refs
    ├── _unit: module                   # Activated artifact (shared per process)
    ├── _render_func: callable          # unit.render
    └── _name, _identity                # Template name and CacheIdentity
    ```

Memory Safety:
Uses ``weakref.ref(env)`` to break the cycle
``Template → (weak) → Environment → _loaded_templates → Template``.

Thread-Safety:
- Templates are immutable after construction
- ``render()`` creates only local state (buf list)
- Multiple threads can call ``render()`` concurrently

Errors:
Exceptions raised while rendering propagate unchanged; the Template
does not wrap or translate them.

"""

from __future__ import annotations

import io
import sys
import types
import weakref
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, TextIO

from kiln.environment.exceptions import TemplateRuntimeError, UndefinedError

if TYPE_CHECKING:
    from kiln.environment import Environment


class Template:
    """Loaded template ready for rendering.

    Created by `Environment.load_template()`; one instance per CacheIdentity
    per Environment. Subclass it and pass ``template_class=`` to the
    Environment to customise the runtime.

    Attributes:
        name: Template name the instance was loaded under
        identity: CacheIdentity of the artifact

    Example:
            >>> from kiln import Environment
            >>> env = Environment()
            >>> t = env.from_string("Hello, {{ name | upper }}!")
            >>> t.render(name="World")
            'Hello, WORLD!'

            >>> t.render({"name": "World"})  # Dict context also works
            'Hello, WORLD!'

    """

    __slots__ = ("__weakref__", "_env_ref", "_identity", "_name", "_render_func", "_unit")

    def __init__(
        self,
        env: Environment,
        unit: types.ModuleType,
        name: str,
        identity: str,
    ):
        self._env_ref: weakref.ref[Environment] = weakref.ref(env)
        self._unit = unit
        self._name = name
        self._identity = identity
        self._render_func = unit.render

    @property
    def _env(self) -> Environment:
        """Get the Environment (dereferences weak reference)."""
        env = self._env_ref()
        if env is None:
            raise RuntimeError(
                f"Environment has been garbage collected (template: {self._name})"
            )
        return env

    @property
    def environment(self) -> Environment:
        return self._env

    @property
    def name(self) -> str:
        return self._name

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def unit(self) -> types.ModuleType:
        return self._unit

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, *args: Any, **kwargs: Any) -> str:
        """Render template with given context.

        Globals fill in every name the context does not define.

        Args:
            *args: Single mapping of context variables
            **kwargs: Context variables as keyword arguments

        Example:
            >>> t.render(name="World")
            'Hello, World!'
        """
        context: dict[str, Any] = {}
        if args:
            if len(args) == 1 and isinstance(args[0], Mapping):
                context.update(args[0])
            else:
                raise TypeError(
                    f"render() takes at most 1 positional argument (a mapping), got {len(args)}"
                )
        context.update(kwargs)

        ctx = self._env.merge_globals(context)
        return self._render_func(ctx, self)

    def display(
        self,
        context: Mapping[str, Any] | None = None,
        out: TextIO | io.BufferedIOBase | io.RawIOBase | None = None,
    ) -> None:
        """Render and write the output to ``out`` (default: ``sys.stdout``).

        Binary streams receive the output encoded with the environment's
        charset.
        """
        text = self.render(context or {})
        stream = sys.stdout if out is None else out
        if isinstance(stream, (io.BufferedIOBase, io.RawIOBase)):
            stream.write(text.encode(self._env.charset))
        else:
            stream.write(text)

    # ------------------------------------------------------------------
    # Runtime used by generated code
    # ------------------------------------------------------------------

    @staticmethod
    def to_str(value: Any) -> str:
        return "" if value is None else str(value)

    def lookup(self, ctx: dict[str, Any], name: str, lineno: int, soft: bool) -> Any:
        """Read a variable; undefined names raise only with strict_variables."""
        try:
            return ctx[name]
        except KeyError:
            if soft or not self._env.strict_variables:
                return None
            raise UndefinedError(
                name, self._name, lineno, available_names=frozenset(ctx)
            ) from None

    def getattr(self, obj: Any, attr: str, lineno: int, soft: bool) -> Any:
        """Attribute access with subscript fallback.

        Resolution order:
        - Mappings: subscript first, so keys like "items" resolve to user data
        - Sequences with a numeric attribute (``items.0``): index
        - Everything else: getattr first, subscript fallback
        """
        if obj is None:
            if soft or not self._env.strict_variables:
                return None
            raise TemplateRuntimeError(
                f"Impossible to access attribute '{attr}' on a None value",
                template_name=self._name,
                lineno=lineno,
            )

        if isinstance(obj, Mapping):
            if attr in obj:
                return obj[attr]
        elif attr.isdigit() and not isinstance(obj, str):
            try:
                return obj[int(attr)]
            except (IndexError, KeyError, TypeError):
                pass
        else:
            try:
                return getattr(obj, attr)
            except AttributeError:
                try:
                    return obj[attr]
                except (KeyError, TypeError, IndexError):
                    pass

        if soft or not self._env.strict_variables:
            return None
        raise UndefinedError(attr, self._name, lineno, owner=type(obj).__name__)

    def call_filter(self, name: str, value: Any, *args: Any) -> Any:
        return self._require("filter", name, self._env.get_filter(name))(value, *args)

    def call_test(self, name: str, value: Any, *args: Any) -> bool:
        return self._require("test", name, self._env.get_test(name))(value, *args)

    def call_function(self, name: str, *args: Any) -> Any:
        return self._require("function", name, self._env.get_function(name))(*args)

    def _require(self, kind: str, name: str, func: Callable[..., Any] | None) -> Callable[..., Any]:
        if func is None:
            raise TemplateRuntimeError(
                f"Unknown {kind} '{name}'",
                template_name=self._name,
                suggestion=f"Register the {kind} on the environment before rendering",
            )
        return func

    def __repr__(self) -> str:
        return f"<Template {self._name!r}>"
