"""Core Environment class for kiln.

The Environment is the central configuration and orchestration object. It
turns a template name into a loaded, renderable `Template`, compiling the
source only when no usable compiled artifact exists.

Pipeline (`load_template`):
    ```
    name ─► identity ─► memo hit? ─────────────────────────────► Template
                          │ miss
                          ▼
                   unit activated in process? ──yes──┐
                          │ no                       │
                          ▼                          │
          cache artifact trusted? ─yes─► activate ───┤
                          │ no / missing             │
                          ▼                          │
          loader ─► compile ─► write ─► activate ────┤
                                                     ▼
                              init runtime ─► instantiate ─► memoize
    ```

Artifact trust:
    With auto-reload off, any stored artifact is used as is. With
    auto-reload on (the default when ``debug`` is on), a stored artifact is
    used only if `is_template_fresh()` holds for its timestamp.

Globals lifecycle:
    Globals can be added freely until the extensions are initialized
    (first compile or first template instance). After that only existing
    globals can be updated; new names raise `LogicError`.

Thread-Safety:
    Memo insertion, globals resolution and the temporary loader swap of
    `create_template()` are serialized by a per-Environment re-entrant
    lock. Activation of units is serialized process-wide. Rendering
    takes no lock.

"""

from __future__ import annotations

import contextlib
import logging
import secrets
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from hashlib import sha256
from typing import TYPE_CHECKING, Any, BinaryIO, TextIO

from kiln.environment.cache import ArtifactCache, CacheTarget, resolve_cache_target
from kiln.environment.exceptions import (
    ErrorCode,
    LogicError,
    TemplateError,
    TemplateNotFoundError,
    TemplateSyntaxError,
)
from kiln.environment.extension_set import ExtensionSet
from kiln.environment.identity import TEMPLATE_CLASS_PREFIX, derive_identity, is_fresh
from kiln.environment.loaders import ChoiceLoader, DictLoader, Loader
from kiln.environment.units import define_unit, get_unit
from kiln.extensions.core import CoreExtension
from kiln.extensions.optimizer import OPTIMIZE_ALL, OptimizerExtension
from kiln.template import Template

if TYPE_CHECKING:
    from kiln._types import Token
    from kiln.compiler import Compiler
    from kiln.extensions import Extension, NodeVisitor
    from kiln.lexer import Lexer
    from kiln.nodes import Template as TemplateNode
    from kiln.parser import Parser

logger = logging.getLogger(__name__)

STRING_TEMPLATE_PREFIX = "__string_template__"


def _normalize_charset(charset: str) -> str:
    charset = charset.upper()
    return "UTF-8" if charset == "UTF8" else charset


@dataclass(eq=False)
class Environment:
    """Central configuration and template management hub.

    Attributes:
        loader: Template source provider (defaults to an empty DictLoader)
        debug: Debug mode; also the default for ``auto_reload``
        charset: Output charset for `display()` to binary streams
        template_class: Class instantiated for loaded templates
        strict_variables: Raise UndefinedError for undefined names
        cache: ``False``, a directory path, or an ArtifactCache
        auto_reload: Check freshness of stored artifacts (None: follow ``debug``)
        optimizations: Optimizer level (0 disables, -1 enables everything)

    Example:
            >>> env = Environment(loader=FileSystemLoader("templates/"), cache=".kiln-cache")
            >>> env.add_global("site_name", "My Site")
            >>> env.render("index.html", page=page)

    """

    loader: Loader = field(default_factory=lambda: DictLoader({}))
    debug: bool = False
    charset: str = "UTF-8"
    template_class: type[Template] = Template
    strict_variables: bool = False
    cache: str | ArtifactCache | bool = False
    auto_reload: bool | None = None
    optimizations: int = OPTIMIZE_ALL

    _cache_target: CacheTarget = field(init=False, repr=False)
    _artifact_cache: ArtifactCache = field(init=False, repr=False)
    _extension_set: ExtensionSet = field(init=False, repr=False)
    _globals: dict[str, Any] = field(init=False, repr=False, default_factory=dict)
    _resolved_globals: dict[str, Any] | None = field(init=False, repr=False, default=None)
    _loaded_templates: dict[str, Template] = field(init=False, repr=False, default_factory=dict)
    _lexer: Lexer | None = field(init=False, repr=False, default=None)
    _parser: Parser | None = field(init=False, repr=False, default=None)
    _compiler: Compiler | None = field(init=False, repr=False, default=None)
    _template_class_prefix: str = field(init=False, repr=False, default=TEMPLATE_CLASS_PREFIX)
    _lock: threading.RLock = field(init=False, repr=False, default_factory=threading.RLock)

    def __post_init__(self) -> None:
        self.charset = _normalize_charset(self.charset)
        if self.auto_reload is None:
            self.auto_reload = self.debug
        self.set_cache(self.cache)

        self._extension_set = ExtensionSet()
        self.add_extension(CoreExtension())
        self.add_extension(OptimizerExtension(self.optimizations))

    # =========================================================================
    # Configuration
    # =========================================================================

    def enable_debug(self) -> None:
        self.debug = True

    def disable_debug(self) -> None:
        self.debug = False

    def is_debug(self) -> bool:
        return self.debug

    def enable_auto_reload(self) -> None:
        self.auto_reload = True

    def disable_auto_reload(self) -> None:
        self.auto_reload = False

    def is_auto_reload(self) -> bool:
        return bool(self.auto_reload)

    def enable_strict_variables(self) -> None:
        self.strict_variables = True

    def disable_strict_variables(self) -> None:
        self.strict_variables = False

    def is_strict_variables(self) -> bool:
        return self.strict_variables

    def set_charset(self, charset: str) -> None:
        self.charset = _normalize_charset(charset)

    def set_cache(self, cache: str | ArtifactCache | bool) -> None:
        """Configure where compiled artifacts are persisted.

        Raises:
            LogicError: If ``cache`` is not False, a path or an ArtifactCache
        """
        target = resolve_cache_target(cache)
        self.cache = cache
        self._cache_target = target
        self._artifact_cache = target.create_cache()

    def get_cache(self, original: bool = True) -> str | ArtifactCache | bool:
        """Return the ``cache`` option as given, or the resolved ArtifactCache."""
        return self.cache if original else self._artifact_cache

    @property
    def cache_target(self) -> CacheTarget:
        return self._cache_target

    def set_loader(self, loader: Loader) -> None:
        with self._lock:
            self.loader = loader

    def get_loader(self) -> Loader:
        return self.loader

    @contextlib.contextmanager
    def using_loader(self, loader: Loader) -> Iterator[Loader]:
        """Temporarily replace the loader; the previous one is always restored."""
        with self._lock:
            previous = self.loader
            self.loader = loader
            try:
                yield loader
            finally:
                self.loader = previous

    # =========================================================================
    # Identity and freshness
    # =========================================================================

    def get_template_class(self, name: str, index: int | None = None) -> str:
        """Return the CacheIdentity of ``name`` under the current configuration."""
        return derive_identity(
            self.loader,
            self._extension_set.get_signature(),
            name,
            index,
            prefix=self._template_class_prefix,
        )

    def is_template_fresh(self, name: str, timestamp: float) -> bool:
        """True if an artifact for ``name`` written at ``timestamp`` is still valid."""
        return is_fresh(self._extension_set, self.loader, name, timestamp)

    # =========================================================================
    # Loading
    # =========================================================================

    def render(
        self,
        template_name: str,
        context: Mapping[str, Any] | None = None,
        /,
        **kwargs: Any,
    ) -> str:
        """Load and render a template; keyword arguments extend ``context``."""
        return self.load_template(template_name).render(context or {}, **kwargs)

    def display(
        self,
        template_name: str,
        context: Mapping[str, Any] | None = None,
        out: TextIO | BinaryIO | None = None,
    ) -> None:
        """Load a template and write its output to ``out`` (default: stdout)."""
        self.load_template(template_name).display(context, out)

    def load_template(self, name: str, index: int | None = None) -> Template:
        """Return the loaded template for ``name``, compiling it if needed.

        Args:
            name: Template name passed to the loader
            index: Index of an embedded sub-template sharing ``name``

        Raises:
            TemplateNotFoundError: If the loader cannot find the template
            TemplateSyntaxError: If the source cannot be compiled
        """
        with self._lock:
            identity = self.get_template_class(name, index)

            template = self._loaded_templates.get(identity)
            if template is not None:
                return template

            unit = get_unit(identity)
            if unit is None:
                cache = self._artifact_cache
                key = cache.generate_key(name, identity)

                if not self.auto_reload or self.is_template_fresh(
                    name, cache.get_timestamp(key)
                ):
                    cache.activate(key)
                    unit = get_unit(identity)

                if unit is None:
                    source, filename = self.loader.get_source(name)
                    content = self.compile_source(source, name, filename)
                    cache.write(key, content)
                    unit = define_unit(identity, content, filename or f"<template {name}>")

            self._extension_set.init_runtime(self)

            template = self.template_class(self, unit, name, identity)
            self._loaded_templates[identity] = template
            return template

    def get_template(self, name: str) -> Template:
        """Alias of `load_template()`."""
        return self.load_template(name)

    def create_template(self, source: str) -> Template:
        """Compile a template from a source string.

        The source is served under a random name by an inline loader placed
        in front of the current one, for the duration of the load only.

        Every call activates a new unit that stays in the process for its
        lifetime (and, with a persistent cache, writes a new artifact), so
        this is not meant for per-request use: keep sources in a loader.

        Example:
            >>> env.create_template("Hello {{ name }}").render(name="World")
            'Hello World'
        """
        name = STRING_TEMPLATE_PREFIX + sha256(secrets.token_bytes(32)).hexdigest()
        loader = ChoiceLoader([DictLoader({name: source}), self.loader])

        with self.using_loader(loader):
            return self.load_template(name)

    def from_string(self, source: str) -> Template:
        """Alias of `create_template()`."""
        return self.create_template(source)

    def resolve_template(self, names: str | Template | Iterable[str | Template]) -> Template:
        """Return the first candidate that can be loaded.

        Candidates are tried in order; a Template candidate is returned as
        is. A single failing name re-raises its own error; several failing
        names raise one error listing all of them.

        Raises:
            TemplateNotFoundError: If no candidate can be loaded
        """
        if isinstance(names, (str, Template)):
            candidates: list[str | Template] = [names]
        else:
            candidates = list(names)

        attempted: list[str] = []
        last_error: TemplateNotFoundError | None = None
        for candidate in candidates:
            if isinstance(candidate, Template):
                return candidate
            attempted.append(candidate)
            try:
                return self.load_template(candidate)
            except TemplateNotFoundError as e:
                last_error = e

        if not attempted:
            raise TemplateNotFoundError("No template candidates were given.")
        if len(attempted) == 1 and last_error is not None:
            raise last_error

        raise TemplateNotFoundError(
            "Unable to find one of the following templates: "
            + ", ".join(f'"{name}"' for name in attempted)
            + "."
        )

    # =========================================================================
    # Compile pipeline
    # =========================================================================

    def set_lexer(self, lexer: Lexer) -> None:
        self._lexer = lexer

    def tokenize(self, source: str, name: str | None = None) -> list[Token]:
        if self._lexer is None:
            from kiln.lexer import Lexer

            self._lexer = Lexer()
        return self._lexer.tokenize(source, name)

    def set_parser(self, parser: Parser) -> None:
        self._parser = parser

    def parse(
        self,
        tokens: list[Token],
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
    ) -> TemplateNode:
        if self._parser is None:
            from kiln.parser import Parser

            self._parser = Parser(self)
        return self._parser.parse(tokens, name, filename, source)

    def set_compiler(self, compiler: Compiler) -> None:
        self._compiler = compiler

    def compile(self, node: TemplateNode) -> str:
        if self._compiler is None:
            from kiln.compiler import Compiler

            self._compiler = Compiler(self)
        return self._compiler.compile(node)

    def compile_source(
        self, source: str, name: str | None = None, filename: str | None = None
    ) -> str:
        """Compile template source to Python module source.

        Raises:
            TemplateSyntaxError: On any failure of tokenizing, parsing or
                generating; unexpected exceptions are wrapped with the
                original as ``__cause__``. Other kiln errors raised by the
                pipeline propagate with the template name filled in.
        """
        logger.debug("Compiling template %r", name)
        try:
            return self.compile(self.parse(self.tokenize(source, name), name, filename, source))
        except TemplateError as e:
            e.set_template(name, filename)
            raise
        except Exception as e:
            error = TemplateSyntaxError(
                f"An exception has been thrown during the compilation of a template ({e})",
                name=name,
                filename=filename,
            )
            error.code = ErrorCode.COMPILE_ERROR
            raise error from e

    # =========================================================================
    # Extensions
    # =========================================================================

    def has_extension(self, name: str | type[Extension]) -> bool:
        return self._extension_set.has_extension(name)

    def get_extension(self, name: str | type[Extension]) -> Extension:
        return self._extension_set.get_extension(name)

    def add_extension(self, extension: Extension) -> None:
        self._extension_set.add_extension(extension)

    def set_extensions(self, extensions: Iterable[Extension]) -> None:
        self._extension_set.set_extensions(extensions)

    def get_extensions(self) -> dict[str, Extension]:
        return self._extension_set.get_extensions()

    @property
    def extension_set(self) -> ExtensionSet:
        return self._extension_set

    def add_filter(self, name: str, func: Callable[..., Any]) -> None:
        self._extension_set.add_filter(name, func)

    def get_filter(self, name: str) -> Callable[..., Any] | None:
        return self._extension_set.get_filter(name)

    def get_filters(self) -> dict[str, Callable[..., Any]]:
        return self._extension_set.get_filters()

    def register_undefined_filter_callback(
        self, callback: Callable[[str], Callable[..., Any] | None]
    ) -> None:
        self._extension_set.register_undefined_filter_callback(callback)

    def add_test(self, name: str, func: Callable[..., bool]) -> None:
        self._extension_set.add_test(name, func)

    def get_test(self, name: str) -> Callable[..., bool] | None:
        return self._extension_set.get_test(name)

    def get_tests(self) -> dict[str, Callable[..., bool]]:
        return self._extension_set.get_tests()

    def add_function(self, name: str, func: Callable[..., Any]) -> None:
        self._extension_set.add_function(name, func)

    def get_function(self, name: str) -> Callable[..., Any] | None:
        return self._extension_set.get_function(name)

    def get_functions(self) -> dict[str, Callable[..., Any]]:
        return self._extension_set.get_functions()

    def register_undefined_function_callback(
        self, callback: Callable[[str], Callable[..., Any] | None]
    ) -> None:
        self._extension_set.register_undefined_function_callback(callback)

    def add_node_visitor(self, visitor: NodeVisitor) -> None:
        self._extension_set.add_node_visitor(visitor)

    def get_node_visitors(self) -> list[NodeVisitor]:
        return self._extension_set.get_node_visitors()

    def add_operators(
        self,
        unary: dict[str, Callable[..., Any]] | None = None,
        binary: dict[str, Callable[..., Any]] | None = None,
    ) -> None:
        self._extension_set.add_operators(unary, binary)

    def get_unary_operators(self) -> dict[str, Callable[..., Any]]:
        return self._extension_set.get_unary_operators()

    def get_binary_operators(self) -> dict[str, Callable[..., Any]]:
        return self._extension_set.get_binary_operators()

    # =========================================================================
    # Globals
    # =========================================================================

    def add_global(self, name: str, value: Any) -> None:
        """Register a global available to every template.

        Raises:
            LogicError: If the extensions are initialized and ``name`` is new
        """
        with self._lock:
            if self._extension_set.is_initialized() and name not in self._current_globals():
                raise LogicError(
                    f'Unable to add global "{name}" as the runtime or the extensions '
                    "have already been initialized."
                )

            if self._resolved_globals is not None:
                self._resolved_globals[name] = value
            else:
                self._globals[name] = value

    def get_globals(self) -> dict[str, Any]:
        """Extension globals overlaid with locally registered ones (local wins).

        Returns a copy; globals change only through `add_global()`.
        """
        with self._lock:
            return dict(self._current_globals())

    def _current_globals(self) -> dict[str, Any]:
        """The live globals map.

        Once the extensions are initialized the merged map is computed once
        and reused.
        """
        with self._lock:
            if self._extension_set.is_initialized():
                if self._resolved_globals is None:
                    self._resolved_globals = {
                        **self._extension_set.get_globals(),
                        **self._globals,
                    }
                return self._resolved_globals

            return {**self._extension_set.get_globals(), **self._globals}

    def merge_globals(self, context: Mapping[str, Any]) -> dict[str, Any]:
        """Return ``context`` completed with globals; context values win."""
        merged = dict(context)
        # globals are usually far fewer than context keys
        for key, value in self._current_globals().items():
            if key not in merged:
                merged[key] = value
        return merged
