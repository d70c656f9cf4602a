"""Artifact identity and freshness.

A compiled artifact is identified by a SHA-256 digest over everything that
can change the generated code:

- the loader's per-name cache key (which source the name resolves to),
- the extension signature (filters, functions, tests, operators, visitors),
- a host capability flag (free-threaded interpreter with the GIL disabled),
- the host version (interpreter cache tag and kiln version).

Identical inputs always give the identical identity, and a change to any
input gives a new one, so a cached artifact can never run stale code.

Freshness decides whether an artifact persisted earlier may be reused when
auto-reload is on: the extensions and the template source must both be
older than (or as old as) the artifact.
"""

from __future__ import annotations

import sys
from hashlib import sha256
from typing import TYPE_CHECKING

from kiln.environment.exceptions import LogicError

if TYPE_CHECKING:
    from kiln.environment.extension_set import ExtensionSet
    from kiln.environment.loaders import Loader

TEMPLATE_CLASS_PREFIX = "__KilnTemplate_"


def has_native_acceleration() -> bool:
    """True on free-threaded builds running with the GIL disabled."""
    is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
    return is_gil_enabled is not None and not is_gil_enabled()


def host_version() -> str:
    from kiln import __version__

    return f"{sys.implementation.cache_tag}:{__version__}"


def derive_identity(
    loader: Loader,
    signature: str,
    name: str,
    index: int | None = None,
    *,
    prefix: str = TEMPLATE_CLASS_PREFIX,
) -> str:
    """Compute the CacheIdentity of ``name`` compiled under ``signature``.

    Args:
        loader: Loader providing the per-name cache key
        signature: Current extension signature
        name: Template name (non-empty)
        index: Optional index of an embedded sub-template

    Raises:
        LogicError: If ``name`` is empty or ``index`` is negative
        TemplateNotFoundError: If the loader does not know ``name``
    """
    if not name:
        raise LogicError("A template name must be a non-empty string.")
    if index is not None and index < 0:
        raise LogicError(f"Embedded template index must be >= 0, got {index}.")

    key = loader.get_cache_key(name)
    key += signature
    key += "1" if has_native_acceleration() else ""
    key += ":" + host_version()

    identity = prefix + sha256(key.encode("utf-8")).hexdigest()
    if index is not None:
        identity += f"_{index}"
    return identity


def is_fresh(
    extension_set: ExtensionSet, loader: Loader, name: str, timestamp: float
) -> bool:
    """True if an artifact cached at ``timestamp`` is still valid for ``name``.

    Both the extensions and the template source must be unmodified since
    ``timestamp``.
    """
    return extension_set.get_last_modified() <= timestamp and loader.is_fresh(
        name, timestamp
    )
