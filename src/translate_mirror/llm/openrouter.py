"""
OpenRouter LLM provider.

Talks to any OpenAI-compatible endpoint (OpenRouter by default). Retries and
timeouts belong here, not to the job pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from openai import AsyncOpenAI

from translate_mirror.llm.base import Completion, LLMProvider

if TYPE_CHECKING:
    from translate_mirror.config import TranslationConfig

logger = logging.getLogger(__name__)


class OpenRouterProvider(LLMProvider):
    """OpenAI-compatible chat completions with exponential backoff."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 120.0,
        max_retries: int = 3,
    ):
        """
        Initialize the provider.

        Args:
            api_key: API key for the endpoint.
            model: Full model name, e.g. "anthropic/claude-3.5-sonnet".
            base_url: API base URL.
            timeout: Per-request timeout in seconds.
            max_retries: Attempts before the last error is raised.
        """
        self._model_name = model
        self._max_retries = max(1, max_retries)
        # Retries are handled below with backoff
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    @classmethod
    def from_config(cls, config: TranslationConfig) -> OpenRouterProvider:
        if not config.openrouter_api_key:
            raise ValueError("OpenRouter API key is not set (translation.openrouter_api_key or OPENROUTER_API_KEY)")
        return cls(
            api_key=config.openrouter_api_key,
            model=config.default_model,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
        )

    @property
    def name(self) -> str:
        return "openrouter"

    @property
    def model(self) -> str:
        return self._model_name

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ) -> Completion:
        last_error: Exception | None = None

        for attempt in range(self._max_retries):
            try:
                response = await self._client.chat.completions.create(
                    model=self._model_name,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except Exception as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    delay = 2**attempt
                    logger.warning(
                        "Request to %s failed (attempt %d/%d), retrying in %ss: %s",
                        self._model_name,
                        attempt + 1,
                        self._max_retries,
                        delay,
                        e,
                    )
                    await asyncio.sleep(delay)
                continue

            usage = response.usage
            choice = response.choices[0]
            return Completion(
                content=(choice.message.content or "").strip(),
                model=response.model or self._model_name,
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                finish_reason=choice.finish_reason,
                attempts=attempt + 1,
            )

        raise last_error or RuntimeError("LLM request failed after retries")
