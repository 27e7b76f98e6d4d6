"""LLM provider adapters."""

from .base import CompletionOptions, LLMProvider, LLMProviderError
from .factory import build_provider, snowflake_endpoint_for

__all__ = [
    "CompletionOptions",
    "LLMProvider",
    "LLMProviderError",
    "build_provider",
    "snowflake_endpoint_for",
]
