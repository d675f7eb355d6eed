"""
Result Store

Per-room cache of analysis records, keyed by message id and merged across
runs. The most recently analyzed record for a message id wins.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from ..common.schemas import AnalysisCache, AnalysisRecord, message_id_sort_key, utc_now_iso
from .json_store import read_json, write_json_atomic

logger = logging.getLogger("extractor.cache.analysis")


class AnalysisStore:
    """File-backed analysis cache, one JSON file per room. Grows only."""

    def __init__(self, cache_dir: Union[str, Path] = "./cache"):
        self._cache_dir = Path(cache_dir)

    def cache_path(self, room_id: str) -> Path:
        return self._cache_dir / f"analysis_{room_id}.json"

    def load_cache(self, room_id: str) -> Optional[AnalysisCache]:
        path = self.cache_path(room_id)
        try:
            data = read_json(path)
            if data is None:
                return None
            return AnalysisCache.model_validate(data)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError, ValidationError) as e:
            logger.error("Failed to read analysis cache %s, ignoring it: %s", path, e)
            return None

    def load(self, room_id: str) -> List[AnalysisRecord]:
        cache = self.load_cache(room_id)
        return list(cache.results) if cache else []

    def save(
        self,
        room_id: str,
        records: Sequence[AnalysisRecord],
        model: str,
    ) -> AnalysisCache:
        """Merge ``records`` into the stored set (incoming wins) and persist"""
        merged: Dict[str, AnalysisRecord] = {r.message_id: r for r in self.load(room_id)}
        previous = len(merged)

        incoming: Dict[str, AnalysisRecord] = {}
        for record in records:
            if record.message_id in incoming:
                logger.debug("Several records for message %s, keeping the last", record.message_id)
            incoming[record.message_id] = record
        merged.update(incoming)

        results = sorted(merged.values(), key=lambda r: message_id_sort_key(r.message_id), reverse=True)
        cache = AnalysisCache(
            room_id=room_id,
            last_updated=utc_now_iso(),
            model=model,
            results=results,
        )

        path = self.cache_path(room_id)
        write_json_atomic(path, cache.model_dump(mode="json"))
        logger.info(
            "Saved %d records (%d new, total %d) with %s",
            len(incoming), len(merged) - previous, len(merged), model,
        )
        return cache
