"""Tests for the speaker map and team profiles."""

import json
import pytest

from extractor.cache.speakers import SpeakerMapStore
from extractor.common.errors import SpeakerMapMissingError
from extractor.common.schemas import ChatMessage
from extractor.common.team_profiles import TeamProfiles


def _msg(id, account_id, name):
    return ChatMessage(id=id, speaker_account_id=account_id, speaker_name=name, body="本文です", sent_at=1)


@pytest.fixture
def store(tmp_path):
    return SpeakerMapStore(tmp_path)


@pytest.fixture
def profiles_file(tmp_path):
    path = tmp_path / "team-profiles.json"
    path.write_text(json.dumps({
        "profiles": {
            "10": {"name": "Sato", "role": "senior"},
            "20": {"name": "Suzuki", "role": "junior"},
            "30": {"name": "Tanaka", "role": "intern"},
        }
    }), encoding="utf-8")
    return path


class TestSpeakerMapStore:
    def test_default_role_without_resolver(self, store):
        store.save("100", [_msg("1", 10, "Sato")])
        info = store.get_speaker_info("100", "1")

        assert info.account_id == 10
        assert info.speaker_name == "Sato"
        assert info.speaker_role == "member"

    def test_roles_from_profiles(self, store, profiles_file):
        profiles = TeamProfiles.load(profiles_file)
        store.save("100", [_msg("1", 10, "Sato"), _msg("2", 99, "Guest")], role_resolver=profiles.role_for)

        assert store.get_speaker_info("100", "1").speaker_role == "senior"
        assert store.get_speaker_info("100", "2").speaker_role == "member"

    def test_merge_is_last_write_wins(self, store):
        store.save("100", [_msg("1", 10, "Sato"), _msg("2", 20, "Suzuki")])
        store.save("100", [_msg("1", 10, "Sato Taro")])

        cache = store.load("100")
        assert set(cache.speakers) == {"1", "2"}
        assert cache.speakers["1"].speaker_name == "Sato Taro"

    def test_require_raises_without_map(self, store):
        with pytest.raises(SpeakerMapMissingError, match="100"):
            store.require("100")

    def test_require_returns_map(self, store):
        store.save("100", [_msg("1", 10, "Sato")])
        assert "1" in store.require("100").speakers

    def test_unknown_message(self, store):
        assert store.get_speaker_info("100", "1") is None


class TestTeamProfiles:
    def test_missing_file_is_empty(self, tmp_path):
        profiles = TeamProfiles.load(tmp_path / "missing.json")
        assert not profiles.has_profiles
        assert profiles.role_for(10) is None
        assert profiles.resolve_role(10).role == "member"

    def test_invalid_role_becomes_member(self, profiles_file, caplog):
        import logging
        with caplog.at_level(logging.WARNING, logger="extractor.common.team_profiles"):
            profiles = TeamProfiles.load(profiles_file)

        assert profiles.role_for(30) == "member"
        assert "Invalid role" in caplog.text

    def test_resolve_role_label(self, profiles_file):
        profiles = TeamProfiles.load(profiles_file)
        resolved = profiles.resolve_role(20)
        assert resolved.role == "junior"
        assert resolved.label == "Junior"

    def test_broken_file_is_empty(self, tmp_path):
        path = tmp_path / "team-profiles.json"
        path.write_text("{", encoding="utf-8")
        assert not TeamProfiles.load(path).has_profiles
