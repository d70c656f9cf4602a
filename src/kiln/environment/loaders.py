"""Template loaders for the kiln environment.

Loaders provide template source and staleness metadata to the Environment.
Beyond `get_source(name)` returning ``(source, filename)``, every loader
reports a per-name cache key (part of the compiled artifact's identity) and
whether a cached artifact written at a given time is still fresh.

Built-in Loaders:
- `FileSystemLoader`: Load from filesystem directories
- `DictLoader`: Load from an in-memory dictionary (testing/embedded)
- `ChoiceLoader`: Try multiple loaders in order (theme fallback)
- `FunctionLoader`: Wrap a callable as a loader (quick one-offs)

Custom Loaders:
Implement the Loader protocol:
    ```python
    class DatabaseLoader:
        def get_source(self, name: str) -> tuple[str, str | None]:
            row = db.query("SELECT source FROM templates WHERE name = ?", name)
            if not row:
                raise TemplateNotFoundError(f"Template '{name}' not found")
            return row.source, f"db://{name}"

        def get_cache_key(self, name: str) -> str:
            return f"db://{name}"

        def is_fresh(self, name: str, timestamp: float) -> bool:
            return db.query("SELECT updated FROM templates WHERE name = ?", name) <= timestamp

        def exists(self, name: str) -> bool:
            return db.query("SELECT 1 FROM templates WHERE name = ?", name) is not None

        def list_templates(self) -> list[str]:
            return [r.name for r in db.query("SELECT name FROM templates")]
    ```

Thread-Safety:
Loaders should be safe for concurrent calls. All built-in loaders are
(FileSystemLoader reads files atomically, DictLoader only reads its mapping,
ChoiceLoader delegates to its children, FunctionLoader delegates to the
user-provided callable).

"""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from kiln.environment.exceptions import TemplateNotFoundError


@runtime_checkable
class Loader(Protocol):
    """Protocol every template loader implements."""

    def get_source(self, name: str) -> tuple[str, str | None]: ...

    def get_cache_key(self, name: str) -> str: ...

    def is_fresh(self, name: str, timestamp: float) -> bool: ...

    def exists(self, name: str) -> bool: ...

    def list_templates(self) -> list[str]: ...


class FileSystemLoader:
    """Load templates from filesystem directories.

    Searches one or more directories for templates by name. The first
    matching file is returned.

    Cache key is the resolved path of the matching file, so two names that
    point at the same file share compiled artifacts. A cached artifact is
    fresh while the file's modification time is not newer than the
    artifact's timestamp.

    Search Order:
        Directories are searched in order. First match wins:
            ```python
            loader = FileSystemLoader(["themes/custom/", "themes/default/"])
            # Looks in themes/custom/ first, then themes/default/
            ```

    Example:
            >>> loader = FileSystemLoader("templates/")
            >>> source, filename = loader.get_source("pages/about.html")
            >>> print(filename)
            'templates/pages/about.html'

    Raises:
        TemplateNotFoundError: If template not found in any search path

    """

    __slots__ = ("_encoding", "_paths")

    def __init__(
        self,
        paths: str | os.PathLike[str] | Sequence[str | os.PathLike[str]],
        encoding: str = "utf-8",
    ):
        if isinstance(paths, (str, os.PathLike)):
            paths = [paths]
        self._paths = [Path(p) for p in paths]
        self._encoding = encoding

    def _find(self, name: str) -> Path:
        for base in self._paths:
            path = base / name
            if path.is_file():
                return path

        raise TemplateNotFoundError(
            f"Template '{name}' not found in: {', '.join(str(p) for p in self._paths)}"
        )

    def get_source(self, name: str) -> tuple[str, str]:
        """Load template source from filesystem."""
        path = self._find(name)
        return path.read_text(self._encoding), str(path)

    def get_cache_key(self, name: str) -> str:
        return str(self._find(name).resolve())

    def is_fresh(self, name: str, timestamp: float) -> bool:
        return self._find(name).stat().st_mtime <= timestamp

    def exists(self, name: str) -> bool:
        try:
            self._find(name)
        except TemplateNotFoundError:
            return False
        return True

    def list_templates(self) -> list[str]:
        """List all files in search paths."""
        templates = set()
        for base in self._paths:
            if base.is_dir():
                for path in base.rglob("*"):
                    if path.is_file():
                        templates.add(path.relative_to(base).as_posix())
        return sorted(templates)


class DictLoader:
    """Load templates from an in-memory dictionary.

    Maps template names to source strings. Useful for testing, embedded
    templates, or dynamically generated templates.

    The cache key encodes the name and the source itself (as a JSON pair,
    so no name can collide with another name's key): editing an entry
    yields a new artifact identity, so in-memory templates are always fresh.

    Example:
            >>> loader = DictLoader({"hello.html": "Hello, {{ name }}!"})
            >>> env = Environment(loader=loader)
            >>> env.render("hello.html", name="World")
            'Hello, World!'

    Raises:
        TemplateNotFoundError: If template name not in mapping

    """

    __slots__ = ("_mapping",)

    def __init__(self, mapping: dict[str, str]):
        self._mapping = mapping

    def _lookup(self, name: str) -> str:
        if name not in self._mapping:
            from difflib import get_close_matches

            available = sorted(self._mapping.keys())
            msg = f"Template '{name}' not found"
            matches = get_close_matches(name, available, n=1, cutoff=0.6)
            if matches:
                msg += f". Did you mean '{matches[0]}'?"
            elif available:
                msg += f". Available: {', '.join(available[:10])}"
                if len(available) > 10:
                    msg += f" ... ({len(available)} total)"
            raise TemplateNotFoundError(msg)
        return self._mapping[name]

    def get_source(self, name: str) -> tuple[str, None]:
        return self._lookup(name), None

    def get_cache_key(self, name: str) -> str:
        return json.dumps([name, self._lookup(name)])

    def is_fresh(self, name: str, timestamp: float) -> bool:
        self._lookup(name)
        return True

    def exists(self, name: str) -> bool:
        return name in self._mapping

    def set_template(self, name: str, source: str) -> None:
        self._mapping[name] = source

    def list_templates(self) -> list[str]:
        return sorted(self._mapping.keys())


class ChoiceLoader:
    """Try multiple loaders in order, returning the first match.

    Useful for theme fallback patterns where a custom theme overrides a
    subset of templates and the default theme provides the rest. Cache key
    and freshness come from the same loader that provides the source.

    Example:
            >>> custom = DictLoader({"nav.html": "<nav>Custom</nav>"})
            >>> default = DictLoader({
            ...     "nav.html": "<nav>Default</nav>",
            ...     "footer.html": "<footer>Default</footer>",
            ... })
            >>> env = Environment(loader=ChoiceLoader([custom, default]))
            >>> env.render("nav.html")     # from custom
            '<nav>Custom</nav>'
            >>> env.render("footer.html")  # from default
            '<footer>Default</footer>'

    Raises:
        TemplateNotFoundError: If no loader can find the template

    """

    __slots__ = ("_loaders",)

    def __init__(self, loaders: Sequence[Loader]):
        self._loaders = list(loaders)

    def add_loader(self, loader: Loader) -> None:
        self._loaders.append(loader)

    def get_loaders(self) -> list[Loader]:
        return list(self._loaders)

    def _find(self, name: str) -> Loader:
        for loader in self._loaders:
            if loader.exists(name):
                return loader
        raise TemplateNotFoundError(
            f"Template '{name}' not found in any of {len(self._loaders)} loaders"
        )

    def get_source(self, name: str) -> tuple[str, str | None]:
        """Return the source from the first loader that has the template."""
        return self._find(name).get_source(name)

    def get_cache_key(self, name: str) -> str:
        return self._find(name).get_cache_key(name)

    def is_fresh(self, name: str, timestamp: float) -> bool:
        return self._find(name).is_fresh(name, timestamp)

    def exists(self, name: str) -> bool:
        return any(loader.exists(name) for loader in self._loaders)

    def list_templates(self) -> list[str]:
        """Merge template lists from all loaders (deduplicated, sorted)."""
        templates: set[str] = set()
        for loader in self._loaders:
            templates.update(loader.list_templates())
        return sorted(templates)


class FunctionLoader:
    """Wrap a callable as a template loader.

    Pass a function that takes a template name and returns the source
    (or ``None`` if not found). The function can return either:
        - ``str``: Template source (filename will be ``"<function>"``).
        - ``tuple[str, str | None]``: ``(source, filename)``.
        - ``None``: Template not found (raises ``TemplateNotFoundError``).

    The callable is consulted for the cache key too, so a changed source
    maps to a new artifact identity.

    Example:
            >>> def load(name):
            ...     if name == "greeting.html":
            ...         return "Hello, {{ name }}!"
            ...     return None
            >>> env = Environment(loader=FunctionLoader(load))
            >>> env.render("greeting.html", name="World")
            'Hello, World!'

    """

    __slots__ = ("_load_func",)

    def __init__(
        self,
        load_func: Callable[[str], str | tuple[str, str | None] | None],
    ):
        self._load_func = load_func

    def get_source(self, name: str) -> tuple[str, str | None]:
        """Call the load function and normalize the result."""
        result = self._load_func(name)

        if result is None:
            raise TemplateNotFoundError(f"Template '{name}' not found")

        if isinstance(result, str):
            return result, "<function>"

        return result

    def get_cache_key(self, name: str) -> str:
        source, _ = self.get_source(name)
        return json.dumps([name, source])

    def is_fresh(self, name: str, timestamp: float) -> bool:
        return True

    def exists(self, name: str) -> bool:
        return self._load_func(name) is not None

    def list_templates(self) -> list[str]:
        """FunctionLoader cannot enumerate templates."""
        return []
