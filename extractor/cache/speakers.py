"""
Speaker Map

Persistent message_id -> speaker mapping, kept apart from the analysis
records so output can be attributed or anonymized later. Attribution cannot
be rebuilt retroactively, so consumers must treat a missing map as fatal.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from pydantic import ValidationError

from ..common.errors import SpeakerMapMissingError
from ..common.schemas import ChatMessage, SpeakerInfo, SpeakerMapCache, utc_now_iso
from ..common.team_profiles import DEFAULT_ROLE
from .json_store import read_json, write_json_atomic

logger = logging.getLogger("extractor.cache.speakers")

RoleResolver = Callable[[int], Optional[str]]


class SpeakerMapStore:
    """File-backed speaker map, one JSON file per room"""

    def __init__(self, cache_dir: Union[str, Path] = "./cache"):
        self._cache_dir = Path(cache_dir)

    def cache_path(self, room_id: str) -> Path:
        return self._cache_dir / f"speakers_{room_id}.json"

    def load(self, room_id: str) -> Optional[SpeakerMapCache]:
        path = self.cache_path(room_id)
        try:
            data = read_json(path)
            if data is None:
                return None
            return SpeakerMapCache.model_validate(data)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError, ValidationError) as e:
            logger.error("Failed to read speaker map %s: %s", path, e)
            return None

    def require(self, room_id: str) -> SpeakerMapCache:
        """Load the map or raise; for consumers that must attribute records"""
        cache = self.load(room_id)
        if cache is None:
            raise SpeakerMapMissingError(room_id)
        return cache

    def save(
        self,
        room_id: str,
        messages: Sequence[ChatMessage],
        role_resolver: Optional[RoleResolver] = None,
    ) -> SpeakerMapCache:
        """Merge speakers of ``messages`` into the stored map (last write wins)"""
        existing = self.load(room_id)
        speakers = dict(existing.speakers) if existing else {}

        for msg in messages:
            role = role_resolver(msg.speaker_account_id) if role_resolver else None
            speakers[msg.id] = SpeakerInfo(
                account_id=msg.speaker_account_id,
                speaker_name=msg.speaker_name,
                speaker_role=role or DEFAULT_ROLE,
            )

        cache = SpeakerMapCache(room_id=room_id, last_updated=utc_now_iso(), speakers=speakers)
        write_json_atomic(self.cache_path(room_id), cache.model_dump(mode="json"))
        logger.info("Saved %d speakers (total %d)", len(messages), len(speakers))
        return cache

    def get_speaker_info(self, room_id: str, message_id: str) -> Optional[SpeakerInfo]:
        cache = self.load(room_id)
        return cache.speakers.get(str(message_id)) if cache else None
