"""
Message Store

Append-only, de-duplicated cache of retrieved chat messages per room, plus
the set of message ids that have already been submitted for analysis.
"""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Union

from pydantic import ValidationError

from ..common.schemas import (
    CacheStats,
    ChatMessage,
    MessageCache,
    message_id_sort_key,
    utc_now_iso,
)
from .json_store import read_json, write_json_atomic

logger = logging.getLogger("extractor.cache.messages")


def _dedupe(messages: Iterable[ChatMessage]) -> List[ChatMessage]:
    """Keep the first occurrence of each id"""
    seen: Set[str] = set()
    unique = []
    for msg in messages:
        if msg.id not in seen:
            seen.add(msg.id)
            unique.append(msg)
    return unique


class MessageStore:
    """
    File-backed message cache, one JSON file per room.

    The chat API stays the source of truth: a broken cache file is treated
    as "no cache" and the newest window can always be fetched again.
    """

    def __init__(self, cache_dir: Union[str, Path] = "./cache"):
        self._cache_dir = Path(cache_dir)

    def cache_path(self, room_id: str) -> Path:
        return self._cache_dir / f"room_{room_id}.json"

    def load(self, room_id: str) -> Optional[MessageCache]:
        """Load a room's cache, or None if it is missing or unreadable"""
        path = self.cache_path(room_id)
        try:
            data = read_json(path)
            if data is None:
                return None
            return MessageCache.model_validate(data)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError, ValidationError) as e:
            logger.error("Failed to read message cache %s, ignoring it: %s", path, e)
            return None

    def merge(
        self,
        existing: Sequence[ChatMessage],
        incoming: Sequence[ChatMessage],
    ) -> List[ChatMessage]:
        """
        Union two message sequences by id.

        Messages with a new id are appended; the result is sorted by sent_at
        descending (numeric id breaks ties, so the order of ``incoming`` never
        changes the outcome).
        """
        merged = _dedupe(existing)
        known = {m.id for m in merged}
        added = 0
        for msg in incoming:
            if msg.id not in known:
                known.add(msg.id)
                merged.append(msg)
                added += 1

        merged.sort(key=lambda m: (m.sent_at, message_id_sort_key(m.id)), reverse=True)

        if added:
            logger.info("Added %d new messages", added)
        return merged

    def save(
        self,
        room_id: str,
        messages: Sequence[ChatMessage],
        analyzed_ids: Optional[Iterable[str]] = None,
    ) -> MessageCache:
        """
        Persist a room's messages.

        ``analyzed_ids`` are unioned into the ids already on disk; the set
        never shrinks.
        """
        existing = self.load(room_id)
        known_analyzed: Set[str] = set(existing.analyzed_ids) if existing else set()
        if analyzed_ids:
            known_analyzed.update(str(i) for i in analyzed_ids)

        ordered = _dedupe(messages)
        ordered.sort(key=lambda m: message_id_sort_key(m.id), reverse=True)

        cache = MessageCache(
            room_id=room_id,
            last_updated=utc_now_iso(),
            last_message_id=ordered[0].id if ordered else None,
            messages=ordered,
            analyzed_ids=known_analyzed,
        )

        path = self.cache_path(room_id)
        write_json_atomic(path, cache.model_dump(mode="json"))
        logger.info("Saved %d messages (%s)", len(ordered), path)
        return cache

    def get_analyzed_ids(self, room_id: str) -> Set[str]:
        cache = self.load(room_id)
        return set(cache.analyzed_ids) if cache else set()

    @staticmethod
    def get_unanalyzed(
        messages: Sequence[ChatMessage],
        analyzed_ids: Iterable[str],
    ) -> List[ChatMessage]:
        """Messages not yet submitted for analysis, in input order"""
        done = set(analyzed_ids)
        return [m for m in messages if m.id not in done]

    def mark_as_analyzed(self, room_id: str, ids: Iterable[str]) -> None:
        """
        Record ids as submitted for analysis.

        No-op when the room has no cache yet: analysis cannot be marked
        before any message has been stored.
        """
        ids = list(ids)
        cache = self.load(room_id)
        if cache is None:
            logger.debug("No message cache for room %s, not marking %d ids", room_id, len(ids))
            return
        self.save(room_id, cache.messages, ids)

    def stats(self, room_id: str) -> Optional[CacheStats]:
        """Summary of a room's cache, None on first run"""
        cache = self.load(room_id)
        if cache is None:
            return None

        sent = [m.sent_at for m in cache.messages]
        return CacheStats(
            room_id=room_id,
            message_count=len(cache.messages),
            analyzed_count=len(cache.analyzed_ids),
            last_updated=cache.last_updated,
            oldest_sent_at=min(sent) if sent else None,
            newest_sent_at=max(sent) if sent else None,
        )
