"""Tests for configuration loading and saving."""

import json
import os
import pytest
from unittest.mock import patch


CLEAN_ENV_KEYS = (
    "CHATWORK_API_TOKEN", "CHATWORK_ROOM_ID", "CLAUDE_API_KEY", "ANTHROPIC_API_KEY",
    "ANTHROPIC_MODEL", "OPENAI_API_KEY", "GOOGLE_API_KEY", "EXTRACTOR_LLM_PROVIDER",
    "ANALYSIS_MODE", "MAX_TOKENS", "EXTRACT_FROM", "DAYS_TO_EXTRACT", "CACHE_DIR",
    "TEAM_PROFILES_PATH", "DEBUG_MODE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in CLEAN_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestDefaults:
    def test_defaults(self):
        from extractor.common.config import ExtractorConfig
        cfg = ExtractorConfig()
        assert cfg.llm.provider == "anthropic"
        assert cfg.analyzer.mode == "batch"
        assert cfg.analyzer.concurrency == 5
        assert cfg.analyzer.poll_interval == 10.0
        assert cfg.analyzer.max_wait is None
        assert cfg.filter.min_length == 3
        assert cfg.filter.max_length == 500
        assert cfg.filter.boilerplate_threshold == 50
        assert cfg.selection.exclude_categories == ["excluded"]

    def test_llm_model_follows_provider(self):
        from extractor.common.config import LLMConfig, DEFAULT_MODEL
        cfg = LLMConfig()
        assert cfg.model == DEFAULT_MODEL
        cfg.provider = "openai"
        assert cfg.model == cfg.openai_model


class TestLoadConfig:
    def test_missing_file_uses_defaults(self, tmp_path):
        from extractor.common.config import load_config
        with patch("extractor.common.config.CONFIG_PATH", tmp_path / "nope.json"):
            cfg = load_config()
        assert cfg.chatwork.room_ids == []
        assert cfg.analyzer.max_tokens == 2048

    def test_file_sections(self, tmp_path):
        from extractor.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "chatwork": {"api_token": "cw-file", "room_ids": ["111", "222"]},
            "analyzer": {"mode": "realtime", "concurrency": 3, "max_wait": 600},
            "filter": {"min_length": 5},
            "extract_from": "2025-01-01",
        }))

        with patch("extractor.common.config.CONFIG_PATH", config_file):
            cfg = load_config()

        assert cfg.chatwork.api_token == "cw-file"
        assert cfg.chatwork.room_ids == ["111", "222"]
        assert cfg.analyzer.mode == "realtime"
        assert cfg.analyzer.concurrency == 3
        assert cfg.analyzer.max_wait == 600
        assert cfg.filter.min_length == 5
        assert cfg.filter.max_length == 500
        assert cfg.extract_from == "2025-01-01"

    def test_broken_file_falls_back_to_defaults(self, tmp_path, caplog):
        import logging
        from extractor.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with patch("extractor.common.config.CONFIG_PATH", config_file), \
             caplog.at_level(logging.WARNING, logger="extractor.common.config"):
            cfg = load_config()

        assert cfg.analyzer.mode == "batch"
        assert "Failed to load config file" in caplog.text

    def test_env_overrides_file(self, tmp_path):
        from extractor.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"chatwork": {"api_token": "cw-file"}}))

        env = {
            "CHATWORK_API_TOKEN": "cw-env",
            "CHATWORK_ROOM_ID": "111, 222",
            "CLAUDE_API_KEY": "sk-ant-env",
            "ANALYSIS_MODE": "REALTIME",
            "MAX_TOKENS": "4096",
            "DEBUG_MODE": "true",
        }
        with patch("extractor.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, env, clear=False):
            cfg = load_config()

        assert cfg.chatwork.api_token == "cw-env"
        assert cfg.chatwork.room_ids == ["111", "222"]
        assert cfg.llm.anthropic_api_key == "sk-ant-env"
        assert cfg.analyzer.mode == "realtime"
        assert cfg.analyzer.max_tokens == 4096
        assert cfg.debug is True

    def test_days_to_extract_is_accepted(self, tmp_path):
        from extractor.common.config import load_config
        with patch("extractor.common.config.CONFIG_PATH", tmp_path / "nope.json"), \
             patch.dict(os.environ, {"DAYS_TO_EXTRACT": "30"}, clear=False):
            cfg = load_config()
        assert cfg.extract_from == "30"

    def test_extract_from_wins_over_days_to_extract(self, tmp_path):
        from extractor.common.config import load_config
        env = {"DAYS_TO_EXTRACT": "30", "EXTRACT_FROM": "2025-06-01"}
        with patch("extractor.common.config.CONFIG_PATH", tmp_path / "nope.json"), \
             patch.dict(os.environ, env, clear=False):
            cfg = load_config()
        assert cfg.extract_from == "2025-06-01"


class TestSaveConfig:
    def test_save_config_omits_env_keys(self, tmp_path):
        from extractor.common.config import load_config, save_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{}")

        env = {"ANTHROPIC_API_KEY": "sk-from-env", "CHATWORK_API_TOKEN": "cw-from-env"}
        with patch("extractor.common.config.CONFIG_PATH", config_file), \
             patch("extractor.common.config.CONFIG_DIR", tmp_path), \
             patch.dict(os.environ, env, clear=False):
            cfg = load_config()
            save_config(cfg)

        saved = json.loads(config_file.read_text())
        assert saved["llm"]["anthropic_api_key"] == ""
        assert saved["chatwork"]["api_token"] == ""

    def test_save_config_round_trips_file_values(self, tmp_path):
        from extractor.common.config import load_config, save_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "llm": {"provider": "openai", "openai_api_key": "sk-file"},
            "selection": {"exclude_versatility": ["exclude", "low"]},
        }))

        with patch("extractor.common.config.CONFIG_PATH", config_file), \
             patch("extractor.common.config.CONFIG_DIR", tmp_path):
            cfg = load_config()
            save_config(cfg)
            reloaded = load_config()

        assert reloaded.llm.provider == "openai"
        assert reloaded.llm.openai_api_key == "sk-file"
        assert reloaded.selection.exclude_versatility == ["exclude", "low"]


class TestInvalidConfig:
    def test_non_integer_max_tokens_is_config_error(self, tmp_path):
        from extractor.common.config import load_config
        from extractor.common.errors import ConfigError
        with patch("extractor.common.config.CONFIG_PATH", tmp_path / "nope.json"), \
             patch.dict(os.environ, {"MAX_TOKENS": "lots"}, clear=False):
            with pytest.raises(ConfigError, match="MAX_TOKENS"):
                load_config()

    def test_null_section_uses_defaults(self, tmp_path):
        from extractor.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"chatwork": None, "analyzer": None, "filter": {"min_length": 4}}))

        with patch("extractor.common.config.CONFIG_PATH", config_file):
            cfg = load_config()

        assert cfg.chatwork.room_ids == []
        assert cfg.analyzer.mode == "batch"
        assert cfg.filter.min_length == 4

    def test_non_object_section_is_config_error(self, tmp_path):
        from extractor.common.config import load_config
        from extractor.common.errors import ConfigError
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"llm": ["anthropic"]}))

        with patch("extractor.common.config.CONFIG_PATH", config_file):
            with pytest.raises(ConfigError, match="llm"):
                load_config()

    def test_non_object_file_is_config_error(self, tmp_path):
        from extractor.common.config import load_config
        from extractor.common.errors import ConfigError
        config_file = tmp_path / "config.json"
        config_file.write_text("[]")

        with patch("extractor.common.config.CONFIG_PATH", config_file):
            with pytest.raises(ConfigError):
                load_config()
