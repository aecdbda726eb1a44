"""
LLM provider interface.

A translation job is a single request: a system prompt describing the target
language, and a user message holding the field values as one JSON object.
Providers only implement the transport (``complete``); building the field
request is shared.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass


@dataclass
class Completion:
    """Text produced for one request, with the usage recorded in the logs."""

    content: str
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str | None = None
    attempts: int = 1

    @property
    def truncated(self) -> bool:
        """The reply stopped at max_tokens, so its JSON is likely incomplete."""
        return self.finish_reason == "length"


def field_messages(system_prompt: str, values: Mapping[str, str]) -> list[dict[str, str]]:
    """Chat messages asking for the translation of ``values``."""
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": json.dumps(dict(values), ensure_ascii=False, indent=2)},
    ]


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ) -> Completion:
        """
        Run one chat completion.

        Retries and timeouts are the provider's business; the last error is
        raised once they are exhausted.
        """
        ...

    async def translate_fields(
        self,
        system_prompt: str,
        values: Mapping[str, str],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ) -> Completion:
        """Request the translation of ``values``, keyed by field name."""
        return await self.complete(
            field_messages(system_prompt, values),
            temperature=temperature,
            max_tokens=max_tokens,
        )
