"""Tests for the Chatwork API client and the extraction window."""

import httpx
import pytest
from datetime import datetime, timezone

from extractor.chatwork.client import ChatworkClient, filter_by_extract_from
from extractor.common.errors import ChatworkAPIError, ConfigError
from extractor.common.schemas import ChatMessage


def _raw(message_id, send_time=1700000000, body="本文です"):
    return {
        "message_id": message_id,
        "account": {"account_id": 10, "name": "Sato", "avatar_image_url": ""},
        "body": body,
        "send_time": send_time,
        "update_time": 0,
    }


def _client(handler):
    return ChatworkClient(api_token="cw-token", transport=httpx.MockTransport(handler))


class TestChatworkClient:
    def test_token_required(self):
        with pytest.raises(ConfigError):
            ChatworkClient(api_token="")

    @pytest.mark.asyncio
    async def test_get_messages_sends_token_and_force(self):
        seen = {}

        def handler(request):
            seen["token"] = request.headers.get("x-chatworktoken")
            seen["url"] = str(request.url)
            return httpx.Response(200, json=[_raw("1")], headers={"x-ratelimit-remaining": "299", "x-ratelimit-limit": "300"})

        async with _client(handler) as client:
            messages = await client.get_messages("123", force=True)

        assert seen["token"] == "cw-token"
        assert seen["url"] == "https://api.chatwork.com/v2/rooms/123/messages?force=1"
        assert messages[0]["message_id"] == "1"

    @pytest.mark.asyncio
    async def test_no_content_is_empty(self):
        async with _client(lambda request: httpx.Response(204)) as client:
            assert await client.get_messages("123", force=False) == []

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        async with _client(lambda request: httpx.Response(401, json={"errors": ["Invalid API token"]})) as client:
            with pytest.raises(ChatworkAPIError) as exc:
                await client.get_messages("123")
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_get_room_info(self):
        def handler(request):
            assert request.url.path == "/v2/rooms/123"
            return httpx.Response(200, json={"room_id": 123, "name": "制作チーム"})

        async with _client(handler) as client:
            info = await client.get_room_info("123")
        assert info["name"] == "制作チーム"

    @pytest.mark.asyncio
    async def test_fetch_messages_converts(self):
        async with _client(lambda request: httpx.Response(200, json=[_raw(5, body="hello")])) as client:
            result = await client.fetch_messages("123")

        assert result.warnings == []
        message = result.messages[0]
        assert message.id == "5"
        assert message.speaker_account_id == 10
        assert message.speaker_name == "Sato"
        assert message.sent_at == 1700000000

    @pytest.mark.asyncio
    async def test_full_window_warns(self):
        payload = [_raw(str(i)) for i in range(100)]
        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            result = await client.fetch_messages("123")

        assert len(result.messages) == 100
        assert len(result.warnings) == 1
        assert "older messages" in result.warnings[0]


class TestFilterByExtractFrom:
    now = datetime(2025, 6, 30, 12, 0, tzinfo=timezone.utc)

    def _messages(self):
        return [
            ChatMessage(id="1", speaker_account_id=1, body="a", sent_at=int(datetime(2025, 6, 1, tzinfo=timezone.utc).timestamp())),
            ChatMessage(id="2", speaker_account_id=1, body="b", sent_at=int(datetime(2025, 6, 25, tzinfo=timezone.utc).timestamp())),
            ChatMessage(id="3", speaker_account_id=1, body="c", sent_at=int(datetime(2025, 6, 30, tzinfo=timezone.utc).timestamp())),
        ]

    def test_empty_value_keeps_all(self):
        messages, description = filter_by_extract_from(self._messages(), "")
        assert len(messages) == 3
        assert description == "all messages"

    def test_date(self):
        messages, description = filter_by_extract_from(self._messages(), "2025-06-25")
        assert [m.id for m in messages] == ["2", "3"]
        assert description == "since 2025-06-25"

    def test_days(self):
        messages, description = filter_by_extract_from(self._messages(), "7", now=self.now)
        assert [m.id for m in messages] == ["2", "3"]
        assert description == "last 7 days"

    def test_invalid_value(self):
        with pytest.raises(ConfigError):
            filter_by_extract_from(self._messages(), "last week")

    def test_impossible_date(self):
        with pytest.raises(ConfigError):
            filter_by_extract_from(self._messages(), "2025-13-40")
