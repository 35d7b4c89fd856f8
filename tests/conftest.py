"""
Pytest configuration and shared fixtures for relgraph tests.

Test Categories:
- unit: Fast tests against a temporary SQLite store (< 100ms each)
- slow: Tests that build larger registries or run many transactions

Run categories:
- pytest -m unit              # Fast unit tests only
- pytest -m "not slow"        # Skip slow tests
- pytest                      # All tests
"""
import pytest

from relgraph.services.graph_store import GraphStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "slow: Slow tests (large registries, many transactions)")


@pytest.fixture
def graph_store(tmp_path):
    """Create an isolated GraphStore backed by a temporary database."""
    return GraphStore(str(tmp_path / "relgraph.db"))


@pytest.fixture(autouse=True)
def isolate_default_store(tmp_path, monkeypatch):
    """
    Point the default database path at the test's temp directory.

    Services built without an explicit store fall back to the singleton,
    which must never touch the real data directory during tests.
    """
    from config.settings import settings
    monkeypatch.setattr(settings, "db_path", tmp_path / "default.db")


@pytest.fixture(autouse=True)
def reset_singletons_after_test():
    """Reset singletons after each test so stores don't leak across tests."""
    yield
    from tests.reset_singletons import reset_all_singletons
    reset_all_singletons()
