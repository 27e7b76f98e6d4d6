"""Orchestration exception types shared across modules."""

from __future__ import annotations


class OrchestrationError(Exception):
    """Base class for request-level orchestration failures."""


class ToolCatalogUnavailable(OrchestrationError):
    """Raised when no enabled server returned a tool listing."""

    def __init__(self, servers_attempted: int = 0):
        self.servers_attempted = servers_attempted
        super().__init__("No tools available from any server")


class DecisionParseFailure(OrchestrationError):
    """Raised when the decision LLM call fails or returns an unusable decision."""

    def __init__(self, reason: str, *, raw_text: str | None = None):
        self.reason = reason
        self.raw_text = raw_text
        super().__init__(f"Orchestration decision failed: {reason}")


class OrchestrationExhausted(OrchestrationError):
    """Raised when every attempt finished without a single successful tool call."""

    def __init__(self, attempts: int, tool_results: int):
        self.attempts = attempts
        self.tool_results = tool_results
        super().__init__("Failed to generate response after maximum retries")
