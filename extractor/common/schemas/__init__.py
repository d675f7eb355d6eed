"""
Cache and Record Schemas

Pydantic models for everything the extractor persists per room.
"""

from .records import (
    Category,
    Versatility,
    ChatMessage,
    MessageCache,
    CacheStats,
    AnalysisRecord,
    AnalysisCache,
    SpeakerInfo,
    SpeakerMapCache,
    CorrelationEntry,
    PendingBatch,
    message_id_sort_key,
    utc_now_iso,
)

__all__ = [
    "Category",
    "Versatility",
    "ChatMessage",
    "MessageCache",
    "CacheStats",
    "AnalysisRecord",
    "AnalysisCache",
    "SpeakerInfo",
    "SpeakerMapCache",
    "CorrelationEntry",
    "PendingBatch",
    "message_id_sort_key",
    "utc_now_iso",
]
