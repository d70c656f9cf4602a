"""Pytest configuration and fixtures for kiln tests."""

import pytest

from kiln import DictLoader, Environment

from .helpers import RecordingCache


@pytest.fixture
def env():
    """Create a basic kiln Environment."""
    return Environment()


@pytest.fixture
def recording_cache():
    """MemoryCache that counts its calls."""
    return RecordingCache()


@pytest.fixture
def env_with_loader():
    """Create a kiln Environment with DictLoader and test templates."""
    loader = DictLoader(
        {
            "hello.html": "Hello, {{ name }}!",
            "upper.html": "{{ name | upper }}",
            "user.html": "{{ user.name }} <{{ user.email | default('n/a') }}>",
        }
    )
    return Environment(loader=loader)
