"""Pick the provider implementation for an LLM configuration, once."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

import httpx

from ..schemas import LLMConfig
from .base import LLMProvider, LLMProviderError
from .providers import (
    AnthropicMessagesProvider,
    CustomEndpointProvider,
    OpenAIChatProvider,
    OpenAICompatibleProvider,
    SNOWFLAKE_INFERENCE_PATH,
    SnowflakeCortexProvider,
)


def snowflake_endpoint_for(server_url: str | None) -> str | None:
    """Derive the Cortex inference URL from the origin of an MCP server URL."""
    if not server_url:
        return None
    parts = urlsplit(server_url)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}{SNOWFLAKE_INFERENCE_PATH}"


def build_provider(
    llm_config: LLMConfig,
    http_client: httpx.AsyncClient,
    *,
    server_url: str | None = None,
    server_bearer_token: str | None = None,
    timeout: float = 60.0,
) -> LLMProvider:
    """Return the provider for ``llm_config``.

    ``server_url`` seeds the Snowflake endpoint when none is configured and
    ``server_bearer_token`` stands in for a missing Snowflake API key. Raises
    ``LLMProviderError`` when the configuration cannot produce a provider.
    """

    config = llm_config.config
    provider = llm_config.provider
    common: dict[str, Any] = {
        "model": config.model,
        "temperature": config.temperature,
        "max_tokens": config.max_tokens,
        "timeout": timeout,
    }

    if provider == "openai":
        return OpenAIChatProvider(
            api_key=config.api_key,
            endpoint=config.endpoint,
            http_client=http_client,
            **common,
        )
    if provider == "anthropic":
        return AnthropicMessagesProvider(
            api_key=config.api_key,
            endpoint=config.endpoint,
            http_client=http_client,
            headers=config.headers,
            **common,
        )
    if provider == "snowflake":
        endpoint = config.endpoint or snowflake_endpoint_for(server_url)
        if not endpoint:
            raise LLMProviderError("Snowflake provider requires an endpoint", provider=provider)
        return SnowflakeCortexProvider(
            api_key=config.api_key or server_bearer_token,
            endpoint=endpoint,
            http_client=http_client,
            headers=config.headers,
            **common,
        )
    if not config.endpoint:
        raise LLMProviderError(f"{provider} provider requires an endpoint", provider=provider)
    if provider == "other":
        return OpenAICompatibleProvider(
            api_key=config.api_key,
            endpoint=config.endpoint,
            http_client=http_client,
            headers=config.headers,
            **{**common, "model": config.model or ""},
        )
    return CustomEndpointProvider(
        endpoint=config.endpoint,
        http_client=http_client,
        headers=config.headers,
        **{**common, "model": config.model or ""},
    )


__all__ = ["build_provider", "snowflake_endpoint_for"]
