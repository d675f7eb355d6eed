"""
Provider-agnostic LLM client for the extractor.

Supports Anthropic, OpenAI, and Google Gemini with a shared text-generation
interface. Message Batches are Anthropic-only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger("extractor.common.llm_client")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "anthropic",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "anthropic").lower()
        self.model = model
        self._client = None
        self._async_client = None

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
                self._async_client = anthropic.AsyncAnthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import AsyncOpenAI, OpenAI

                self._client = OpenAI(api_key=openai_api_key)
                self._async_client = AsyncOpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
                self._google_model = None
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @classmethod
    def from_config(cls, llm_config) -> "LLMClient":
        """Build a client from an LLMConfig section"""
        return cls(
            provider=llm_config.provider,
            model=llm_config.model,
            anthropic_api_key=llm_config.anthropic_api_key or None,
            openai_api_key=llm_config.openai_api_key or None,
            google_api_key=llm_config.google_api_key or None,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    @property
    def supports_batches(self) -> bool:
        return self.provider == "anthropic" and self._async_client is not None

    @property
    def batches(self):
        """Anthropic Message Batches resource (async)"""
        if not self.supports_batches:
            raise RuntimeError(f"Message Batches are not available for provider {self.provider!r}")
        return self._async_client.messages.batches

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            kwargs = {"system": system} if system else {}
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=self._openai_messages(prompt, system),
                timeout=timeout,
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            if self._google_model is None:
                kwargs = {"model_name": self.model}
                if system:
                    kwargs["system_instruction"] = system
                self._google_model = self._client.GenerativeModel(**kwargs)
            response = self._google_model.generate_content(
                prompt,
                generation_config={"max_output_tokens": max_tokens},
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    async def agenerate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ) -> str:
        """Async variant of generate(); providers without an async SDK run in a thread."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            kwargs = {"system": system} if system else {}
            response = await self._async_client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            response = await self._async_client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=self._openai_messages(prompt, system),
                timeout=timeout,
            )
            return (response.choices[0].message.content or "").strip()

        return await asyncio.to_thread(
            self.generate, prompt, system=system, max_tokens=max_tokens, timeout=timeout
        )

    @staticmethod
    def _openai_messages(prompt: str, system: Optional[str]) -> list:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages
