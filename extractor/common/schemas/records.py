"""
Cache Record Schemas

Messages, analysis records and speaker entries as persisted per room.
Every cache file is plain JSON so it can be inspected or deleted by hand.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set
from pydantic import BaseModel, Field, field_serializer, field_validator
from enum import Enum


# ============================================================================
# Enums
# ============================================================================

class Category(str, Enum):
    """Knowledge category assigned by the classifier"""
    IMPLEMENTATION_KNOWHOW = "implementation-knowhow"
    POLICY_INSTRUCTION = "policy-instruction"
    TROUBLE_HANDLING = "trouble-handling"
    QA_CONSULTATION = "qa-consultation"
    EXCLUDED = "excluded"


class Versatility(str, Enum):
    """How broadly a piece of knowledge applies outside its original room"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    EXCLUDE = "exclude"


# ============================================================================
# Messages
# ============================================================================

def message_id_sort_key(message_id: str):
    """Numeric ordering for chat message ids, lexical fallback for anything else"""
    try:
        return (1, int(message_id), "")
    except (TypeError, ValueError):
        return (0, 0, str(message_id))


class ChatMessage(BaseModel):
    """A single retrieved chat message. Identity is ``id``."""
    id: str
    speaker_account_id: int
    speaker_name: str = ""
    body: str = ""
    sent_at: int = Field(..., description="Unix timestamp (seconds)")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "ChatMessage":
        """Build from the Chatwork API shape (message_id / account / send_time)"""
        account = raw.get("account") or {}
        return cls(
            id=raw["message_id"],
            speaker_account_id=int(account.get("account_id", 0)),
            speaker_name=account.get("name", ""),
            body=raw.get("body", ""),
            sent_at=int(raw.get("send_time", 0)),
        )

    @property
    def sent_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.sent_at, tz=timezone.utc)


class MessageCache(BaseModel):
    """Per-room message cache (newest first, no duplicate ids)"""
    room_id: str
    last_updated: str
    last_message_id: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)
    analyzed_ids: Set[str] = Field(default_factory=set)

    @field_serializer("analyzed_ids")
    def _sorted_ids(self, ids: Set[str]) -> List[str]:
        return sorted(ids, key=message_id_sort_key)


class CacheStats(BaseModel):
    """Summary of a room's message cache"""
    room_id: str
    message_count: int
    analyzed_count: int
    last_updated: str
    oldest_sent_at: Optional[int] = None
    newest_sent_at: Optional[int] = None


# ============================================================================
# Analysis
# ============================================================================

class AnalysisRecord(BaseModel):
    """One piece of extracted knowledge. Identity is ``message_id``."""
    message_id: str
    category: Category
    versatility: Versatility
    title: str = ""
    tags: List[str] = Field(default_factory=list)
    date: str = ""
    formatted_content: str = ""

    @field_validator("tags", mode="before")
    @classmethod
    def _dedupe_tags(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple, set)):
            value = [value]
        seen: List[str] = []
        for tag in value:
            tag = str(tag).strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @field_validator("category", "versatility", mode="before")
    @classmethod
    def _normalize_enum(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class AnalysisCache(BaseModel):
    """Per-room analysis cache"""
    room_id: str
    last_updated: str
    model: str = ""
    results: List[AnalysisRecord] = Field(default_factory=list)


# ============================================================================
# Speakers
# ============================================================================

class SpeakerInfo(BaseModel):
    """Who sent a message, and their resolved team role"""
    account_id: int
    speaker_name: str = ""
    speaker_role: str = "member"


class SpeakerMapCache(BaseModel):
    """Per-room message_id -> SpeakerInfo map"""
    room_id: str
    last_updated: str
    speakers: Dict[str, SpeakerInfo] = Field(default_factory=dict)


# ============================================================================
# Pending batches
# ============================================================================

class CorrelationEntry(BaseModel):
    """Where a classification request came from"""
    message_id: str
    date: str


class PendingBatch(BaseModel):
    """A submitted batch job that has not been collected yet"""
    room_id: str
    batch_id: str
    model: str = ""
    submitted_at: str
    correlation: Dict[str, CorrelationEntry] = Field(default_factory=dict)


def utc_now_iso() -> str:
    """Timestamp used for last_updated / submitted_at fields"""
    return datetime.now(timezone.utc).isoformat()
