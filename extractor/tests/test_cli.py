"""Tests for the extract_knowledge command line entry point."""

import importlib.util
import json
import pytest
from pathlib import Path
from unittest.mock import patch

from extractor.analyzer.message_filter import FilterStats
from extractor.common.schemas import AnalysisRecord
from extractor.pipeline import RunSummary


SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "extract_knowledge.py"

CLEAN_ENV_KEYS = (
    "CHATWORK_API_TOKEN", "CHATWORK_ROOM_ID", "CLAUDE_API_KEY", "ANTHROPIC_API_KEY",
    "ANALYSIS_MODE", "MAX_TOKENS", "EXTRACT_FROM", "DAYS_TO_EXTRACT", "CACHE_DIR", "DEBUG_MODE",
)


@pytest.fixture
def cli():
    spec = importlib.util.spec_from_file_location("extract_knowledge", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def isolated(tmp_path, monkeypatch, cli):
    for key in CLEAN_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CACHE_DIR", str(tmp_path / "cache"))
    config_file = tmp_path / "config.json"
    with patch("extractor.common.config.CONFIG_PATH", config_file), \
         patch("extractor.common.config.CONFIG_DIR", tmp_path), \
         patch.object(cli, "CONFIG_PATH", config_file), \
         patch.object(cli, "load_dotenv"):
        yield config_file


class TestMain:
    def test_save_config_writes_effective_settings(self, cli, isolated, capsys):
        cli.main(["--room", "111", "--room", "222", "--mode", "realtime", "--extract-from", "30", "--save-config"])

        saved = json.loads(isolated.read_text())
        assert saved["chatwork"]["room_ids"] == ["111", "222"]
        assert saved["analyzer"]["mode"] == "realtime"
        assert saved["extract_from"] == "30"
        assert "Configuration saved" in capsys.readouterr().out

    def test_save_config_does_not_persist_env_token(self, cli, isolated, monkeypatch):
        monkeypatch.setenv("CHATWORK_API_TOKEN", "cw-secret")
        cli.main(["--room", "111", "--save-config"])

        saved = json.loads(isolated.read_text())
        assert saved["chatwork"]["api_token"] == ""

    def test_invalid_max_tokens_exits_1(self, cli, isolated, monkeypatch):
        monkeypatch.setenv("MAX_TOKENS", "many")
        with pytest.raises(SystemExit) as exc:
            cli.main(["--room", "111", "--stats"])
        assert exc.value.code == 1

    def test_no_room_exits_1(self, cli, isolated):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--stats"])
        assert exc.value.code == 1


class TestPrintSummary:
    def test_role_labels_are_printed(self, cli, capsys):
        summary = RunSummary(
            room_id="4242",
            room_name="制作チーム",
            fetched=2,
            unanalyzed=2,
            filter_stats=FilterStats(total=2),
            knowledge=[AnalysisRecord(message_id="1", category="policy-instruction", versatility="high")],
            knowledge_by_role={"Senior": 1},
        )
        cli.print_summary(summary)

        out = capsys.readouterr().out
        assert "policy-instruction: 1" in out
        assert "by Senior: 1" in out
