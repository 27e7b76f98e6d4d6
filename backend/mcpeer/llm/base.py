"""LLM completion capability shared by every provider family."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000


class LLMProviderError(Exception):
    """Raised when a provider cannot produce a completion."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        details: Mapping[str, Any] | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.details = dict(details or {})


@dataclass(frozen=True)
class CompletionOptions:
    """Sampling overrides for a single call; ``None`` keeps the configured value."""

    temperature: float | None = None
    max_tokens: int | None = None


class LLMProvider(ABC):
    """Turns one prompt into one block of text."""

    name: str = "llm"

    def __init__(
        self,
        *,
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        self.model = model
        self.temperature = DEFAULT_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or DEFAULT_MAX_TOKENS

    def sampling(self, options: CompletionOptions | None) -> tuple[float, int]:
        options = options or CompletionOptions()
        temperature = self.temperature if options.temperature is None else options.temperature
        max_tokens = options.max_tokens or self.max_tokens
        return temperature, max_tokens

    @abstractmethod
    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        """Return the completion text or raise ``LLMProviderError``."""

    def describe(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "model": self.model,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
        }


__all__ = [
    "CompletionOptions",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_TEMPERATURE",
    "LLMProvider",
    "LLMProviderError",
]
