"""
Pending Batch Journal

Remembers a submitted batch job until its results are collected, so a
restarted process can resume polling instead of re-submitting.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import ValidationError

from ..common.schemas import CorrelationEntry, PendingBatch, utc_now_iso
from .json_store import read_json, write_json_atomic

logger = logging.getLogger("extractor.cache.pending_batch")


class PendingBatchStore:
    """One journal file per room; at most one pending batch per room"""

    def __init__(self, cache_dir: Union[str, Path] = "./cache"):
        self._cache_dir = Path(cache_dir)

    def cache_path(self, room_id: str) -> Path:
        return self._cache_dir / f"pending_batch_{room_id}.json"

    def load(self, room_id: str) -> Optional[PendingBatch]:
        path = self.cache_path(room_id)
        try:
            data = read_json(path)
            if data is None:
                return None
            return PendingBatch.model_validate(data)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError, ValidationError) as e:
            logger.error("Failed to read pending batch %s, ignoring it: %s", path, e)
            return None

    def save(
        self,
        room_id: str,
        batch_id: str,
        correlation: Dict[str, CorrelationEntry],
        model: str = "",
    ) -> PendingBatch:
        pending = PendingBatch(
            room_id=room_id,
            batch_id=batch_id,
            model=model,
            submitted_at=utc_now_iso(),
            correlation=dict(correlation),
        )
        write_json_atomic(self.cache_path(room_id), pending.model_dump(mode="json"))
        logger.info("Recorded pending batch %s for room %s", batch_id, room_id)
        return pending

    def clear(self, room_id: str) -> None:
        path = self.cache_path(room_id)
        if path.exists():
            path.unlink()
            logger.debug("Cleared pending batch for room %s", room_id)
