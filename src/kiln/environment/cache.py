"""Artifact caches: where compiled template source is persisted.

An artifact cache stores the generated Python source of a template under a
key derived from its identity, reports when it was written, and can
activate a stored artifact into the running process.

Built-in caches:
- `NullCache`: Caching disabled; every new process compiles again
- `FilesystemCache`: One ``.py`` file per artifact under a directory
- `MemoryCache`: In-process dictionary (testing, or as a custom store)

Cache target:
The Environment's ``cache`` option accepts ``False``, a directory path or
an `ArtifactCache` instance. `resolve_cache_target()` turns it once into
one of `DisabledTarget`, `FilesystemTarget` or `CustomTarget`; anything
else is a `LogicError`.

Concurrency:
Independent processes may write the same key at the same time. They write
identical content, so the only requirement is that a reader sees either
the whole file or nothing: `FilesystemCache.write()` writes a temporary
file next to the target and renames it into place.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path

from kiln.environment.exceptions import LogicError
from kiln.environment.units import define_unit, is_defined

logger = logging.getLogger(__name__)


class ArtifactCache(ABC):
    """Base class for artifact caches."""

    @abstractmethod
    def generate_key(self, name: str, identity: str) -> str:
        """Return the storage key for ``identity`` (``name`` is informative)."""

    @abstractmethod
    def get_timestamp(self, key: str) -> float:
        """When the artifact under ``key`` was written, or 0 if absent."""

    @abstractmethod
    def load(self, key: str) -> str | None:
        """Return the stored content for ``key``, or None if absent."""

    @abstractmethod
    def write(self, key: str, content: str) -> None:
        """Persist ``content`` under ``key``, replacing any previous content."""

    @abstractmethod
    def identity_of(self, key: str) -> str:
        """Recover the identity a key was generated for."""

    def activate(self, key: str) -> None:
        """Activate the stored artifact into the process.

        Does nothing when the artifact is absent or its identity is
        already activated.
        """
        identity = self.identity_of(key)
        if is_defined(identity):
            return
        content = self.load(key)
        if content is None:
            return
        logger.debug("Loading compiled template %s from %s", identity, key)
        define_unit(identity, content, key)


class NullCache(ArtifactCache):
    """Caching disabled."""

    def generate_key(self, name: str, identity: str) -> str:
        return ""

    def get_timestamp(self, key: str) -> float:
        return 0

    def load(self, key: str) -> str | None:
        return None

    def write(self, key: str, content: str) -> None:
        pass

    def identity_of(self, key: str) -> str:
        return ""

    def activate(self, key: str) -> None:
        pass


class FilesystemCache(ArtifactCache):
    """Store artifacts as Python files under ``directory``.

    Layout: ``<directory>/<hh>/<identity>.py`` where ``hh`` is the first two
    hex digits of the SHA-256 of the identity, to keep directories small.

    Example:
            >>> env = Environment(loader=loader, cache="/tmp/kiln-cache")
            >>> env.render("index.html")  # compiles and writes the artifact
    """

    __slots__ = ("_directory",)

    def __init__(self, directory: str | os.PathLike[str]):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def generate_key(self, name: str, identity: str) -> str:
        digest = sha256(identity.encode("utf-8")).hexdigest()
        return str(self._directory / digest[:2] / f"{identity}.py")

    def get_timestamp(self, key: str) -> float:
        try:
            return os.stat(key).st_mtime
        except FileNotFoundError:
            return 0

    def load(self, key: str) -> str | None:
        try:
            return Path(key).read_text("utf-8")
        except FileNotFoundError:
            return None

    def write(self, key: str, content: str) -> None:
        target = Path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("Wrote compiled template to %s", key)

    def identity_of(self, key: str) -> str:
        return Path(key).stem


class MemoryCache(ArtifactCache):
    """Keep artifacts in a dictionary for the lifetime of the cache object."""

    __slots__ = ("_entries", "_lock")

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def generate_key(self, name: str, identity: str) -> str:
        return identity

    def get_timestamp(self, key: str) -> float:
        entry = self._entries.get(key)
        return entry[1] if entry else 0

    def load(self, key: str) -> str | None:
        entry = self._entries.get(key)
        return entry[0] if entry else None

    def write(self, key: str, content: str) -> None:
        with self._lock:
            self._entries[key] = (content, time.time())

    def identity_of(self, key: str) -> str:
        return key

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Cache target
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DisabledTarget:
    def create_cache(self) -> ArtifactCache:
        return NullCache()


@dataclass(frozen=True, slots=True)
class FilesystemTarget:
    path: Path

    def create_cache(self) -> ArtifactCache:
        return FilesystemCache(self.path)


@dataclass(frozen=True, slots=True)
class CustomTarget:
    cache: ArtifactCache

    def create_cache(self) -> ArtifactCache:
        return self.cache


CacheTarget = DisabledTarget | FilesystemTarget | CustomTarget


def resolve_cache_target(cache: object) -> CacheTarget:
    """Resolve the ``cache`` option into a cache target.

    Raises:
        LogicError: If ``cache`` is not ``False``, a path or an ArtifactCache
    """
    if cache is False:
        return DisabledTarget()
    if isinstance(cache, (str, os.PathLike)):
        return FilesystemTarget(Path(cache))
    if isinstance(cache, ArtifactCache):
        return CustomTarget(cache)
    raise LogicError(
        "Cache can only be False, a directory path, or an ArtifactCache instance; "
        f"got {type(cache).__name__}."
    )
