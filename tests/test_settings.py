"""Tests for configuration settings."""
from pathlib import Path

from config.settings import Settings


def test_defaults(monkeypatch):
    """Defaults apply when no environment overrides are set."""
    for name in ("RELGRAPH_DB_PATH", "RELGRAPH_DUPLICATE_SCAN_LIMIT", "RELGRAPH_DEFAULT_PRIVACY_TIER"):
        monkeypatch.delenv(name, raising=False)

    s = Settings(_env_file=None)
    assert s.db_path == Path("./data/relgraph.db")
    assert s.default_privacy_tier == "INTERNAL"
    assert s.default_organization_type == "PROSPECT"
    assert s.person_duplicate_threshold == 0.85
    assert s.organization_duplicate_threshold == 0.80


def test_env_overrides(monkeypatch, tmp_path):
    """RELGRAPH_ environment variables override defaults."""
    monkeypatch.setenv("RELGRAPH_DB_PATH", str(tmp_path / "graph.db"))
    monkeypatch.setenv("RELGRAPH_DUPLICATE_SCAN_LIMIT", "10")

    s = Settings(_env_file=None)
    assert s.db_path == tmp_path / "graph.db"
    assert s.duplicate_scan_limit == 10


def test_store_uses_configured_path(tmp_path):
    """The default store lives at settings.db_path (patched per test)."""
    from relgraph.services.graph_store import get_graph_store

    store = get_graph_store()
    assert Path(store.db_path) == (tmp_path / "default.db").resolve()
