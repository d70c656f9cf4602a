"""Built-in filters for kiln templates.

Filters transform a value inside an output tag: `{{ name | upper }}`,
`{{ items | join(", ") }}`. They are plain callables taking the value as
first argument followed by the filter arguments.
"""

from __future__ import annotations

import html
from collections.abc import Callable, Iterable
from typing import Any


def _filter_default(value: Any, default: Any = "", boolean: bool = False) -> Any:
    """Return ``default`` when value is None (or falsy with ``boolean``)."""
    if value is None or (boolean and not value):
        return default
    return value


def _filter_join(value: Iterable[Any], separator: str = "") -> str:
    return separator.join(str(item) for item in value)


def _filter_length(value: Any) -> int:
    return len(value)


def _filter_escape(value: Any) -> str:
    return html.escape(str(value))


def _filter_first(value: Iterable[Any]) -> Any:
    for item in value:
        return item
    return None


def _filter_replace(value: Any, old: str, new: str) -> str:
    return str(value).replace(old, new)


DEFAULT_FILTERS: dict[str, Callable[..., Any]] = {
    "capitalize": lambda v: str(v).capitalize(),
    "default": _filter_default,
    "d": _filter_default,
    "e": _filter_escape,
    "escape": _filter_escape,
    "first": _filter_first,
    "join": _filter_join,
    "length": _filter_length,
    "lower": lambda v: str(v).lower(),
    "replace": _filter_replace,
    "title": lambda v: str(v).title(),
    "trim": lambda v: str(v).strip(),
    "upper": lambda v: str(v).upper(),
}
