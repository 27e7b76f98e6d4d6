"""Application-wide settings resolved from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip()
    return normalized or default


@dataclass(frozen=True)
class OrchestrationSettings:
    """Retry bound and decision-call sampling for the orchestration loop."""

    max_retries: int = 3
    retry_success_threshold: float = 0.5
    decision_temperature: float = 0.3
    decision_max_tokens: int = 1000

    @classmethod
    def from_env(cls) -> "OrchestrationSettings":
        return cls(
            max_retries=max(1, _env_int("MCPEER_MAX_RETRIES", 3)),
            retry_success_threshold=_env_float("MCPEER_RETRY_SUCCESS_THRESHOLD", 0.5),
            decision_temperature=_env_float("MCPEER_DECISION_TEMPERATURE", 0.3),
            decision_max_tokens=max(1, _env_int("MCPEER_DECISION_MAX_TOKENS", 1000)),
        )


@dataclass(frozen=True)
class TimeoutSettings:
    """Per-call network timeouts in seconds."""

    tools_list_seconds: float = 10.0
    tools_call_seconds: float = 30.0
    llm_seconds: float = 60.0
    test_server_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "TimeoutSettings":
        return cls(
            tools_list_seconds=_env_float("MCPEER_TOOLS_LIST_TIMEOUT_SECONDS", 10.0),
            tools_call_seconds=_env_float("MCPEER_TOOLS_CALL_TIMEOUT_SECONDS", 30.0),
            llm_seconds=_env_float("MCPEER_LLM_TIMEOUT_SECONDS", 60.0),
            test_server_seconds=_env_float("MCPEER_TEST_SERVER_TIMEOUT_SECONDS", 5.0),
        )


@dataclass(frozen=True)
class ServerSettings:
    """HTTP bind address and chat context window."""

    host: str = "127.0.0.1"
    port: int = 3001
    context_max_messages: int = 20

    @classmethod
    def from_env(cls) -> "ServerSettings":
        return cls(
            host=_env_str("MCPEER_HOST", "127.0.0.1") or "127.0.0.1",
            port=_env_int("MCPEER_PORT", 3001),
            context_max_messages=max(2, _env_int("MCPEER_CONTEXT_MAX_MESSAGES", 20)),
        )


class Settings:
    """Container for application settings."""

    def __init__(
        self,
        *,
        orchestration: OrchestrationSettings | None = None,
        timeouts: TimeoutSettings | None = None,
        server: ServerSettings | None = None,
    ) -> None:
        self.orchestration = orchestration or OrchestrationSettings()
        self.timeouts = timeouts or TimeoutSettings()
        self.server = server or ServerSettings()

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            orchestration=OrchestrationSettings.from_env(),
            timeouts=TimeoutSettings.from_env(),
            server=ServerSettings.from_env(),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Return a cached Settings instance built from the current environment."""

    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS


def reset_settings() -> None:
    """Drop the cached settings so the next lookup re-reads the environment."""

    global _SETTINGS
    _SETTINGS = None
