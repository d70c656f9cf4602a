"""Shared helpers for kiln tests.

Activated units live in a process-wide registry keyed by identity, so a
test that counts compilations must use a source no other test uses.
`unique()` appends a random comment to make the source (and with it the
identity) unique without changing the rendered output.
"""

from __future__ import annotations

import uuid
from collections import Counter
from typing import Any

from kiln import DictLoader, Environment, MemoryCache, TemplateNotFoundError


def unique(source: str) -> str:
    """Return ``source`` with a random trailing comment."""
    return f"{source}{{# {uuid.uuid4().hex} #}}"


class CompileCounter:
    """Count `Environment.compile_source()` calls on one environment."""

    def __init__(self, env: Environment):
        self.calls: list[str | None] = []
        original = env.compile_source

        def compile_source(source: str, name: str | None = None, filename: str | None = None):
            self.calls.append(name)
            return original(source, name, filename)

        env.compile_source = compile_source  # type: ignore[method-assign]

    @property
    def count(self) -> int:
        return len(self.calls)


class RecordingCache(MemoryCache):
    """MemoryCache that counts calls to each cache operation."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: Counter[str] = Counter()

    def reset(self) -> None:
        self.calls.clear()

    def get_timestamp(self, key: str) -> float:
        self.calls["get_timestamp"] += 1
        return super().get_timestamp(key)

    def load(self, key: str) -> str | None:
        self.calls["load"] += 1
        return super().load(key)

    def write(self, key: str, content: str) -> None:
        self.calls["write"] += 1
        super().write(key, content)

    def activate(self, key: str) -> None:
        self.calls["activate"] += 1
        super().activate(key)


class StaleDictLoader(DictLoader):
    """DictLoader that reports every cached artifact as stale."""

    def is_fresh(self, name: str, timestamp: float) -> bool:
        return False


class RaisingLoader:
    """Loader whose lookups all raise the same error object."""

    def __init__(self, message: str = "nope") -> None:
        self.error = TemplateNotFoundError(message)

    def get_source(self, name: str) -> tuple[str, str | None]:
        raise self.error

    def get_cache_key(self, name: str) -> str:
        raise self.error

    def is_fresh(self, name: str, timestamp: float) -> bool:
        raise self.error

    def exists(self, name: str) -> bool:
        return False

    def list_templates(self) -> list[str]:
        return []


def store_artifact(env: Environment, name: str) -> tuple[str, str]:
    """Compile ``name`` and persist it in the env's cache without activating it.

    Returns:
        ``(identity, key)`` of the stored artifact
    """
    cache: Any = env.get_cache(original=False)
    identity = env.get_template_class(name)
    source, filename = env.loader.get_source(name)
    key = cache.generate_key(name, identity)
    cache.write(key, env.compile_source(source, name, filename))
    return identity, key
