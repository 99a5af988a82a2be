"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import pytest

sys.path.append(os.path.join(os.getcwd(), "src"))
sys.path.append(os.path.dirname(__file__))

from fakes import InMemorySearchStore, InMemorySourceStore  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> None:
    """Set up test environment variables."""
    os.environ.setdefault("APP_ENV", "test")
    os.environ.setdefault("LOG_LEVEL", "debug")
    os.environ.setdefault("WORKER_HEALTH_ENABLED", "false")


@pytest.fixture
def source_store() -> InMemorySourceStore:
    return InMemorySourceStore()


@pytest.fixture
def search_store() -> InMemorySearchStore:
    return InMemorySearchStore()
