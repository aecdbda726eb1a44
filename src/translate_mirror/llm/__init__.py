"""LLM providers used by the translation executor."""

from translate_mirror.llm.base import Completion, LLMProvider, field_messages
from translate_mirror.llm.openrouter import OpenRouterProvider

__all__ = ["Completion", "LLMProvider", "OpenRouterProvider", "field_messages"]
