"""
Per-room Caches

JSON files under the cache directory, one per room and concern:
- room_<id>.json: retrieved messages + analyzed ids (MessageStore)
- analysis_<id>.json: analysis records (AnalysisStore)
- speakers_<id>.json: message_id -> speaker (SpeakerMapStore)
- pending_batch_<id>.json: a submitted, uncollected batch (PendingBatchStore)

Each file can be deleted on its own to force a re-fetch or re-analysis of
that concern only.
"""

from .messages import MessageStore
from .analysis import AnalysisStore
from .speakers import SpeakerMapStore
from .pending_batch import PendingBatchStore

__all__ = [
    "MessageStore",
    "AnalysisStore",
    "SpeakerMapStore",
    "PendingBatchStore",
]
