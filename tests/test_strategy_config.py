"""
Tests for strategy_config.py
"""

import json

import pytest

from foxbot import strategy_config
from foxbot.strategy_config import CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH, StrategyConfig


@pytest.fixture
def restore_singleton():
    saved = strategy_config._config
    yield
    strategy_config._config = saved


class TestLoading:

    def test_packaged_defaults(self):
        config = StrategyConfig(str(DEFAULT_CONFIG_PATH))
        assert config.is_loaded
        assert config.name == "default"
        assert config.get('decision', 'safe_danger_max') == 3.0
        assert config.get_weight('w_loot') == 6.0

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        config = StrategyConfig(str(tmp_path / "missing.json"))
        assert not config.is_loaded
        assert config.get('decision', 'safe_danger_max', 3.5) == 3.5
        assert config.get_weight('w_loot', 6.0) == 6.0
        assert config.get_section('ops') == {}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{oops")
        config = StrategyConfig(str(path))
        assert not config.is_loaded
        assert config.version == '0.0.0'

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "env.json"
        path.write_text(json.dumps({"name": "from-env", "ops": {"never_pass": True}}))
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        config = StrategyConfig()

        assert config.name == "from-env"
        assert config.get('ops', 'never_pass') is True


class TestFromDict:

    def test_overrides_merge_per_key(self):
        base = StrategyConfig(str(DEFAULT_CONFIG_PATH))
        config = StrategyConfig.from_dict({'ops': {'never_pass': True}}, base=base)

        assert config.get('ops', 'never_pass') is True
        assert config.get('ops', 'combo_top_k') == 6
        assert base.get('ops', 'never_pass') is False

    def test_without_base(self):
        config = StrategyConfig.from_dict({'utility': {'w_loot': 2.0}})
        assert config.get_weight('w_loot') == 2.0
        assert config.get('decision', 'safe_danger_max', 3.0) == 3.0


class TestSingleton:

    def test_set_config_path_replaces_singleton(self, tmp_path, restore_singleton):
        path = tmp_path / "tuned.json"
        path.write_text(json.dumps({"name": "tuned"}))

        strategy_config.set_config_path(str(path))

        assert strategy_config.get_config().name == "tuned"
        assert strategy_config.get_config() is strategy_config.get_config()

    def test_reload_picks_up_edits(self, tmp_path, restore_singleton):
        path = tmp_path / "live.json"
        path.write_text(json.dumps({"name": "v1"}))
        strategy_config.set_config_path(str(path))

        path.write_text(json.dumps({"name": "v2"}))
        strategy_config.reload_config()

        assert strategy_config.get_config().name == "v2"
