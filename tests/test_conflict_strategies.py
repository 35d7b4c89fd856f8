"""
Tests for the conflict strategy table and its YAML overrides.
"""
import pytest

from config.conflict_strategies import (
    BUILTIN_STRATEGIES,
    CONFLICT_STRATEGIES,
    DEFAULT_CONFLICT_STRATEGY,
    VALID_STRATEGIES,
    _load_strategy_overrides,
)

pytestmark = pytest.mark.unit


class TestBuiltinStrategies:
    def test_all_builtin_strategies_valid(self):
        assert set(BUILTIN_STRATEGIES.values()) <= VALID_STRATEGIES

    def test_loaded_table_is_valid(self):
        assert set(CONFLICT_STRATEGIES.values()) <= VALID_STRATEGIES
        assert DEFAULT_CONFLICT_STRATEGY in VALID_STRATEGIES


class TestLoadOverrides:
    """Tests for _load_strategy_overrides."""

    def test_missing_file_uses_builtins(self, tmp_path):
        strategies, default = _load_strategy_overrides(tmp_path / "missing.yaml")
        assert strategies == BUILTIN_STRATEGIES
        assert default == "highest_confidence"

    def test_overrides_and_default(self, tmp_path):
        path = tmp_path / "conflict_strategies.yaml"
        path.write_text(
            "default: latest_wins\n"
            "strategies:\n"
            "  bio: merge\n"
            "  email: latest_wins\n"
        )

        strategies, default = _load_strategy_overrides(path)

        assert default == "latest_wins"
        assert strategies["bio"] == "merge"
        assert strategies["email"] == "latest_wins"
        assert strategies["MRR"] == "latest_wins"

    def test_invalid_entries_ignored(self, tmp_path, caplog):
        path = tmp_path / "conflict_strategies.yaml"
        path.write_text(
            "default: coin_flip\n"
            "strategies:\n"
            "  bio: shrug\n"
            "  notes: user_confirm\n"
        )

        strategies, default = _load_strategy_overrides(path)

        assert default == "highest_confidence"
        assert "bio" not in strategies
        assert strategies["notes"] == "user_confirm"
        assert "shrug" in caplog.text

    def test_empty_file(self, tmp_path):
        path = tmp_path / "conflict_strategies.yaml"
        path.write_text("")
        strategies, default = _load_strategy_overrides(path)
        assert strategies == BUILTIN_STRATEGIES

    @pytest.mark.parametrize("content", ["- bio\n- notes\n", "just a string\n", "42\n"])
    def test_non_mapping_top_level_falls_back(self, tmp_path, caplog, content):
        path = tmp_path / "conflict_strategies.yaml"
        path.write_text(content)

        strategies, default = _load_strategy_overrides(path)

        assert strategies == BUILTIN_STRATEGIES
        assert default == "highest_confidence"
        assert "must be a mapping" in caplog.text

    def test_malformed_yaml_falls_back(self, tmp_path):
        path = tmp_path / "conflict_strategies.yaml"
        path.write_text("strategies: [unclosed\n")
        strategies, default = _load_strategy_overrides(path)
        assert strategies == BUILTIN_STRATEGIES
        assert default == "highest_confidence"
