"""Tests for LLMClient provider abstraction."""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from extractor.common.llm_client import LLMClient


class TestLLMClientInit:
    def test_missing_anthropic_key_logs_info(self, caplog):
        import logging
        with caplog.at_level(logging.INFO, logger="extractor.common.llm_client"):
            client = LLMClient(provider="anthropic")
        assert not client.is_available
        assert not client.supports_batches
        assert "API key not provided" in caplog.text

    def test_missing_openai_key_logs_info(self, caplog):
        import logging
        with caplog.at_level(logging.INFO, logger="extractor.common.llm_client"):
            client = LLMClient(provider="openai")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_unsupported_provider_logs_warning(self, caplog):
        import logging
        with caplog.at_level(logging.WARNING, logger="extractor.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz")
        assert not client.is_available
        assert "Unsupported" in caplog.text

    def test_anthropic_key_builds_clients(self):
        client = LLMClient(provider="anthropic", model="claude-test", anthropic_api_key="sk-ant-test")
        assert client.is_available
        assert client.supports_batches
        assert client.batches is not None

    def test_from_config(self):
        from extractor.common.config import LLMConfig
        cfg = LLMConfig(provider="anthropic", anthropic_api_key="", anthropic_model="claude-x")
        client = LLMClient.from_config(cfg)
        assert client.model == "claude-x"
        assert not client.is_available


class TestLLMClientGenerate:
    def test_generate_raises_when_unavailable(self):
        client = LLMClient(provider="anthropic")
        with pytest.raises(RuntimeError, match="not available"):
            client.generate("test")

    @pytest.mark.asyncio
    async def test_agenerate_raises_when_unavailable(self):
        client = LLMClient(provider="anthropic")
        with pytest.raises(RuntimeError, match="not available"):
            await client.agenerate("test")

    def test_batches_unavailable_for_openai(self):
        client = LLMClient(provider="openai")
        with pytest.raises(RuntimeError, match="Message Batches"):
            client.batches

    def test_generate_anthropic(self):
        client = LLMClient(provider="anthropic", model="claude-test")
        client._client = MagicMock()
        client._client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(text="  hello  ")]
        )

        assert client.generate("hi", max_tokens=10) == "hello"
        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 10
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_agenerate_anthropic(self):
        client = LLMClient(provider="anthropic", model="claude-test")
        client._client = MagicMock()
        client._async_client = MagicMock()
        client._async_client.messages.create = AsyncMock(
            return_value=SimpleNamespace(content=[SimpleNamespace(text='{"a": 1}')])
        )

        assert await client.agenerate("hi") == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_agenerate_openai(self):
        client = LLMClient(provider="openai", model="gpt-test")
        client._client = MagicMock()
        client._async_client = MagicMock()
        client._async_client.chat.completions.create = AsyncMock(
            return_value=SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))])
        )

        assert await client.agenerate("hi", system="be brief") == "ok"
        messages = client._async_client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "be brief"}
