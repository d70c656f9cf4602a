"""Process-wide registry of activated template units.

Activating an artifact executes its generated Python source into a fresh
module object. A unit cannot be un-defined, and defining the same identity
twice is not allowed, so every identity is activated at most once per
process. The check and the definition happen under one lock.

Units are independent of any Environment: the generated ``render``
function receives the environment-bound runtime at call time.
"""

from __future__ import annotations

import logging
import threading
import types

logger = logging.getLogger(__name__)

_units: dict[str, types.ModuleType] = {}
_lock = threading.Lock()


def is_defined(identity: str) -> bool:
    return identity in _units


def get_unit(identity: str) -> types.ModuleType | None:
    return _units.get(identity)


def define_unit(identity: str, content: str, filename: str | None = None) -> types.ModuleType:
    """Activate ``content`` under ``identity``, or return the existing unit.

    Args:
        identity: CacheIdentity of the artifact
        content: Generated Python module source
        filename: Shown in tracebacks of code from this unit

    Returns:
        The activated module; the first definition wins.
    """
    unit = _units.get(identity)
    if unit is not None:
        return unit

    with _lock:
        unit = _units.get(identity)
        if unit is not None:
            return unit

        code = compile(content, filename or f"<{identity}>", "exec")
        unit = types.ModuleType(f"kiln._units.{identity}")
        exec(code, unit.__dict__)
        _units[identity] = unit
        logger.debug("Activated template unit %s", identity)
        return unit
