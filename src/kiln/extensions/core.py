"""Core extension: the built-in filters, tests and functions."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from kiln.environment.filters import DEFAULT_FILTERS
from kiln.environment.tests import DEFAULT_TESTS
from kiln.extensions import Extension


class CoreExtension(Extension):
    """Registered on every Environment."""

    def get_filters(self) -> dict[str, Callable[..., Any]]:
        return dict(DEFAULT_FILTERS)

    def get_tests(self) -> dict[str, Callable[..., bool]]:
        return dict(DEFAULT_TESTS)

    def get_functions(self) -> dict[str, Callable[..., Any]]:
        return {
            "range": range,
            "max": max,
            "min": min,
        }
