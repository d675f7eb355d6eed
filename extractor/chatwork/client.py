"""
Chatwork API Client

Async httpx client for the Chatwork REST API (v2). Only the read endpoints
the extractor needs: room info and the latest messages of a room.

The messages endpoint returns at most the latest 100 messages per call
(force=1) or the difference since the previous call (force=0); there is no
paging further back. fetch_messages() reports a full window as a warning so
the operator knows older messages may be out of reach.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from ..common.errors import ChatworkAPIError, ConfigError
from ..common.schemas import ChatMessage

logger = logging.getLogger("extractor.chatwork.client")

DEFAULT_BASE_URL = "https://api.chatwork.com/v2"
MESSAGE_WINDOW = 100

_DATE_VALUE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class FetchResult:
    """Messages retrieved from one room plus anything the operator should know"""
    messages: List[ChatMessage] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class ChatworkClient:
    """
    Read-only Chatwork API client.

    Usage:
        async with ChatworkClient(api_token="...") as client:
            result = await client.fetch_messages("123456")
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_token:
            raise ConfigError("CHATWORK_API_TOKEN is not set")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"x-chatworktoken": api_token, "Accept": "application/json"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "ChatworkClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        response = await self._client.get(path, params=params)

        remaining = response.headers.get("x-ratelimit-remaining")
        limit = response.headers.get("x-ratelimit-limit")
        if remaining is not None:
            logger.debug("Chatwork rate limit: %s/%s", remaining, limit)

        if not response.is_success:
            raise ChatworkAPIError(response.status_code, response.reason_phrase)
        return response

    async def get_room_info(self, room_id: str) -> Dict[str, Any]:
        """GET /rooms/{room_id}"""
        response = await self._get(f"/rooms/{room_id}")
        return response.json()

    async def get_messages(self, room_id: str, force: bool = True) -> List[Dict[str, Any]]:
        """
        GET /rooms/{room_id}/messages

        Args:
            room_id: Chatwork room id
            force: True returns the latest 100; False only what is new since
                the previous call with this token

        Returns:
            Raw message dicts (empty when the API answers 204 No Content)
        """
        response = await self._get(f"/rooms/{room_id}/messages", params={"force": 1 if force else 0})
        if response.status_code == 204 or not response.content:
            return []
        return response.json()

    async def fetch_messages(self, room_id: str, force: bool = True) -> FetchResult:
        """Retrieve a room's messages as ChatMessage objects"""
        raw_messages = await self.get_messages(room_id, force=force)
        result = FetchResult(messages=[ChatMessage.from_api(raw) for raw in raw_messages])
        logger.info("Fetched %d messages from room %s", len(result.messages), room_id)

        if len(raw_messages) >= MESSAGE_WINDOW:
            result.warnings.append(
                f"Room {room_id}: the API returned a full window of {MESSAGE_WINDOW} messages; "
                "older messages may not be reachable. Run more often to avoid gaps."
            )
        for warning in result.warnings:
            logger.warning(warning)
        return result


def filter_by_extract_from(
    messages: Sequence[ChatMessage],
    value: Optional[str],
    now: Optional[datetime] = None,
) -> Tuple[List[ChatMessage], str]:
    """
    Keep messages sent on or after a cutoff.

    Args:
        messages: Messages to filter
        value: "YYYY-MM-DD" (start of that day, UTC) or a number of days back
        now: Reference time for the day-count form

    Returns:
        (filtered messages, human readable description of the window)
    """
    if value is None or not str(value).strip():
        return list(messages), "all messages"

    value = str(value).strip()
    if _DATE_VALUE.match(value):
        try:
            cutoff = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        except ValueError as e:
            raise ConfigError(f"Invalid EXTRACT_FROM date {value!r}: {e}") from e
        description = f"since {value}"
    elif value.isdigit():
        days = int(value)
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        description = f"last {days} days"
    else:
        raise ConfigError(f"EXTRACT_FROM must be YYYY-MM-DD or a number of days, got {value!r}")

    threshold = int(cutoff.timestamp())
    filtered = [msg for msg in messages if msg.sent_at >= threshold]
    return filtered, description
