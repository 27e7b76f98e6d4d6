"""Shared Pydantic schemas for server, auth and LLM configuration and API bodies."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AuthMethod = Literal["bearer", "oauth", "api-key", "basic", "custom"]
ProviderName = Literal["snowflake", "openai", "anthropic", "other", "custom"]


class CamelModel(BaseModel):
    """Accepts camelCase JSON from the UI while exposing snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ServerAuthConfig(CamelModel):
    """Credentials for one MCP server; which fields matter depends on ``method``."""

    method: str = "bearer"
    bearer_token: str | None = None
    oauth_client_id: str | None = None
    oauth_client_secret: str | None = None
    oauth_token_url: str | None = None
    oauth_scope: str | None = None
    api_key: str | None = None
    api_key_header: str | None = None
    username: str | None = None
    password: str | None = None
    custom_headers: dict[str, str] | None = None


class ServerConfig(CamelModel):
    """An MCP server as configured by the user."""

    id: str
    name: str = ""
    url: str
    auth: ServerAuthConfig | None = None
    enabled: bool = True


class LLMProviderSettings(CamelModel):
    endpoint: str | None = None
    api_key: str | None = None
    model: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    max_tokens: int | None = None
    temperature: float | None = None


class LLMConfig(CamelModel):
    """A configured LLM provider."""

    id: str = "default"
    name: str = ""
    provider: ProviderName = "openai"
    enabled: bool = True
    config: LLMProviderSettings = Field(default_factory=LLMProviderSettings)


class OrchestratedChatRequest(CamelModel):
    """Request body for POST /api/orchestrated-chat."""

    message: str = Field(..., min_length=1)
    servers: list[ServerConfig] = Field(default_factory=list)
    llm_config: LLMConfig | None = None


class ChatRequest(CamelModel):
    """Request body for POST /api/chat."""

    message: str = Field(..., min_length=1)
    server: ServerConfig | None = None
    llm_config: LLMConfig | None = None


class ServerProbeRequest(CamelModel):
    server: ServerConfig | None = None


class ClearContextRequest(CamelModel):
    server_id: str | None = None


def iso_timestamp() -> str:
    """Return an ISO-8601 timestamp string (UTC)."""
    return datetime.now(timezone.utc).isoformat()
