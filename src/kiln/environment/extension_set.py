"""Extension set: the registry of everything extensions contribute.

The ExtensionSet aggregates filters, functions, tests, operators, node
visitors and globals from all registered extensions, plus the ones
registered one at a time on the Environment (kept in a private staging
extension).

Lifecycle:
    ``Uninitialized`` → ``Initialized``, once and irreversibly. The
    transition happens the first time lookup tables are built (any
    filter/function/test/visitor/operator lookup, i.e. the first compile)
    or when `init_runtime()` runs before the first template instance is
    created. Registration after that raises `LogicError`.

Identity:
    `get_signature()` describes the exact composition (including the
    undefined filter/function callbacks, which can make the parser accept
    names no extension provides), and
    `get_last_modified()` the newest extension source file. Both feed the
    identity and freshness of compiled artifacts.

Thread-Safety:
    Table construction and runtime initialization are guarded by a lock.
    Registration is expected to happen during setup, before templates are
    loaded concurrently.
"""

from __future__ import annotations

import inspect
import json
import os
import threading
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from kiln.environment.exceptions import LogicError
from kiln.extensions import Extension, NodeVisitor

if TYPE_CHECKING:
    from kiln.environment import Environment


class _StagingExtension(Extension):
    """Holds callables registered directly on the environment."""

    def __init__(self) -> None:
        self.filters: dict[str, Callable[..., Any]] = {}
        self.functions: dict[str, Callable[..., Any]] = {}
        self.tests: dict[str, Callable[..., bool]] = {}
        self.visitors: list[NodeVisitor] = []
        self.unary_operators: dict[str, Callable[..., Any]] = {}
        self.binary_operators: dict[str, Callable[..., Any]] = {}

    def get_filters(self) -> dict[str, Callable[..., Any]]:
        return self.filters

    def get_functions(self) -> dict[str, Callable[..., Any]]:
        return self.functions

    def get_tests(self) -> dict[str, Callable[..., bool]]:
        return self.tests

    def get_node_visitors(self) -> list[NodeVisitor]:
        return self.visitors

    def get_operators(
        self,
    ) -> tuple[dict[str, Callable[..., Any]], dict[str, Callable[..., Any]]]:
        return self.unary_operators, self.binary_operators


def _source_mtime(extension: Extension) -> float:
    """Modification time of the file defining the extension's class, or 0."""
    try:
        path = inspect.getsourcefile(type(extension))
    except TypeError:
        return 0
    if path is None:
        return 0
    try:
        return os.path.getmtime(path)
    except OSError:
        return 0


def _callable_name(func: Callable[..., Any]) -> str:
    qualname = getattr(func, "__qualname__", type(func).__qualname__)
    return f"{getattr(func, '__module__', None)}.{qualname}"


class ExtensionSet:
    """Registry of extensions for one Environment."""

    __slots__ = (
        "_binary_operators",
        "_extensions",
        "_filter_callbacks",
        "_filters",
        "_function_callbacks",
        "_functions",
        "_initialized",
        "_last_modified",
        "_lock",
        "_runtime_initialized",
        "_signature",
        "_staging",
        "_tests",
        "_unary_operators",
        "_visitors",
    )

    def __init__(self) -> None:
        self._extensions: dict[str, Extension] = {}
        self._staging = _StagingExtension()
        self._initialized = False
        self._runtime_initialized = False
        self._filters: dict[str, Callable[..., Any]] = {}
        self._functions: dict[str, Callable[..., Any]] = {}
        self._tests: dict[str, Callable[..., bool]] = {}
        self._visitors: list[NodeVisitor] = []
        self._unary_operators: dict[str, Callable[..., Any]] = {}
        self._binary_operators: dict[str, Callable[..., Any]] = {}
        self._filter_callbacks: list[Callable[[str], Callable[..., Any] | None]] = []
        self._function_callbacks: list[Callable[[str], Callable[..., Any] | None]] = []
        self._signature: str | None = None
        self._last_modified: float | None = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_initialized(self) -> bool:
        return self._initialized or self._runtime_initialized

    def init_runtime(self, env: Environment) -> None:
        """Run each extension's one-time runtime hook. Later calls do nothing."""
        if self._runtime_initialized:
            return
        with self._lock:
            if self._runtime_initialized:
                return
            self._runtime_initialized = True
            for extension in self._all_extensions():
                extension.init_runtime(env)

    def _all_extensions(self) -> list[Extension]:
        return [*self._extensions.values(), self._staging]

    def _ensure_open(self, what: str) -> None:
        if self.is_initialized():
            raise LogicError(
                f"Unable to {what} as extensions have already been initialized."
            )
        self._signature = None
        self._last_modified = None

    def _init(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            for extension in self._all_extensions():
                self._filters.update(extension.get_filters())
                self._functions.update(extension.get_functions())
                self._tests.update(extension.get_tests())
                self._visitors.extend(extension.get_node_visitors())
                unary, binary = extension.get_operators()
                self._unary_operators.update(unary)
                self._binary_operators.update(binary)
            self._visitors.sort(key=lambda visitor: visitor.priority)
            self._initialized = True

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def get_signature(self) -> str:
        """Describe the exact composition of the set.

        Computed from the extensions directly, so reading the signature
        does not initialize the set.
        """
        if self._signature is None:
            composition = []
            for extension in self._all_extensions():
                unary, binary = extension.get_operators()
                composition.append(
                    {
                        "extension": extension.name,
                        "filters": sorted(extension.get_filters()),
                        "functions": sorted(extension.get_functions()),
                        "tests": sorted(extension.get_tests()),
                        "visitors": [
                            f"{type(v).__module__}.{type(v).__qualname__}:{v.priority}"
                            for v in extension.get_node_visitors()
                        ],
                        "unary": sorted(unary),
                        "binary": sorted(binary),
                    }
                )
            if self._filter_callbacks or self._function_callbacks:
                composition.append(
                    {
                        "undefined_filter_callbacks": [
                            _callable_name(cb) for cb in self._filter_callbacks
                        ],
                        "undefined_function_callbacks": [
                            _callable_name(cb) for cb in self._function_callbacks
                        ],
                    }
                )
            self._signature = json.dumps(composition, sort_keys=True)
        return self._signature

    def get_last_modified(self) -> float:
        """Newest modification time among the extensions' source files."""
        if self._last_modified is None:
            self._last_modified = max(
                (_source_mtime(ext) for ext in self._all_extensions()), default=0
            )
        return self._last_modified

    # ------------------------------------------------------------------
    # Extensions
    # ------------------------------------------------------------------

    def has_extension(self, name: str | type[Extension]) -> bool:
        return self._key(name) in self._extensions

    def get_extension(self, name: str | type[Extension]) -> Extension:
        key = self._key(name)
        if key not in self._extensions:
            raise LogicError(f'The "{key}" extension is not enabled.')
        return self._extensions[key]

    def get_extensions(self) -> dict[str, Extension]:
        return dict(self._extensions)

    def add_extension(self, extension: Extension) -> None:
        self._ensure_open(f'register extension "{extension.name}"')
        self._extensions[extension.name] = extension

    def set_extensions(self, extensions: Iterable[Extension]) -> None:
        for extension in extensions:
            self.add_extension(extension)

    @staticmethod
    def _key(name: str | type[Extension]) -> str:
        if isinstance(name, type):
            return f"{name.__module__}.{name.__qualname__}"
        return name

    # ------------------------------------------------------------------
    # Direct registration (staging)
    # ------------------------------------------------------------------

    def add_filter(self, name: str, func: Callable[..., Any]) -> None:
        self._ensure_open(f'add filter "{name}"')
        self._staging.filters[name] = func

    def add_function(self, name: str, func: Callable[..., Any]) -> None:
        self._ensure_open(f'add function "{name}"')
        self._staging.functions[name] = func

    def add_test(self, name: str, func: Callable[..., bool]) -> None:
        self._ensure_open(f'add test "{name}"')
        self._staging.tests[name] = func

    def add_node_visitor(self, visitor: NodeVisitor) -> None:
        self._ensure_open(f'add node visitor "{type(visitor).__name__}"')
        self._staging.visitors.append(visitor)

    def add_operators(
        self,
        unary: dict[str, Callable[..., Any]] | None = None,
        binary: dict[str, Callable[..., Any]] | None = None,
    ) -> None:
        self._ensure_open("add operators")
        self._staging.unary_operators.update(unary or {})
        self._staging.binary_operators.update(binary or {})

    def register_undefined_filter_callback(
        self, callback: Callable[[str], Callable[..., Any] | None]
    ) -> None:
        self._filter_callbacks.append(callback)
        self._signature = None

    def register_undefined_function_callback(
        self, callback: Callable[[str], Callable[..., Any] | None]
    ) -> None:
        self._function_callbacks.append(callback)
        self._signature = None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_filter(self, name: str) -> Callable[..., Any] | None:
        self._init()
        if name in self._filters:
            return self._filters[name]
        for callback in self._filter_callbacks:
            func = callback(name)
            if func is not None:
                return func
        return None

    def get_function(self, name: str) -> Callable[..., Any] | None:
        self._init()
        if name in self._functions:
            return self._functions[name]
        for callback in self._function_callbacks:
            func = callback(name)
            if func is not None:
                return func
        return None

    def get_test(self, name: str) -> Callable[..., bool] | None:
        self._init()
        return self._tests.get(name)

    def get_filters(self) -> dict[str, Callable[..., Any]]:
        self._init()
        return dict(self._filters)

    def get_functions(self) -> dict[str, Callable[..., Any]]:
        self._init()
        return dict(self._functions)

    def get_tests(self) -> dict[str, Callable[..., bool]]:
        self._init()
        return dict(self._tests)

    def get_node_visitors(self) -> list[NodeVisitor]:
        self._init()
        return list(self._visitors)

    def get_unary_operators(self) -> dict[str, Callable[..., Any]]:
        self._init()
        return dict(self._unary_operators)

    def get_binary_operators(self) -> dict[str, Callable[..., Any]]:
        self._init()
        return dict(self._binary_operators)

    def get_globals(self) -> dict[str, Any]:
        """Merge the globals of every extension (later extensions win)."""
        merged: dict[str, Any] = {}
        for extension in self._all_extensions():
            extension_globals = extension.get_globals()
            if not isinstance(extension_globals, dict):
                raise LogicError(
                    f'"{extension.name}.get_globals()" must return a dict.'
                )
            merged.update(extension_globals)
        return merged
