"""Orchestration data model: decisions, attempts and outcomes."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..mcp.schema import ToolCallResult
from ..schemas import CamelModel


class ToolCallDecision(CamelModel):
    """One tool call the decision maker asked for."""

    server_id: str
    server_name: str = ""
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    @field_validator("server_id", "server_name", "tool_name", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if value is None:
            return ""
        return value

    @field_validator("arguments", mode="before")
    @classmethod
    def _default_arguments(cls, value: Any) -> Any:
        return {} if value is None else value


class OrchestrationDecision(CamelModel):
    reasoning: str = ""
    tool_calls: list[ToolCallDecision]
    needs_more_info: bool = False

    @field_validator("reasoning", mode="before")
    @classmethod
    def _default_reasoning(cls, value: Any) -> Any:
        return "" if value is None else value


class AttemptRecord(BaseModel):
    """A failed or insufficient attempt, shown to the decision maker on retry."""

    model_config = ConfigDict(frozen=True)

    tool_calls: list[ToolCallDecision] = Field(default_factory=list)
    results: list[ToolCallResult] = Field(default_factory=list)


class LoopState(str, Enum):
    DECIDING = "deciding"
    EXECUTING = "executing"
    EVALUATING = "evaluating"
    RETRYING = "retrying"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


class AggregationResult(BaseModel):
    """Synthesized answer; ``degraded`` marks the raw-concatenation fallback."""

    response: str
    aggregation_time_ms: float = 0.0
    degraded: bool = False
    error: str | None = None


class OrchestrationOutcome(BaseModel):
    """What a completed orchestration request returns to its caller."""

    response: str
    attempts: int
    tool_results: list[ToolCallResult] = Field(default_factory=list)
    partial: bool = False
    degraded: bool = False
    reasoning: str = ""
    total_time_ms: float = 0.0
    aggregation_error: str | None = None

    @property
    def servers_used(self) -> list[str]:
        seen: dict[str, None] = {}
        for result in self.tool_results:
            seen.setdefault(result.server_name, None)
        return list(seen)

    @property
    def average_tool_time_ms(self) -> float:
        if not self.tool_results:
            return 0.0
        total = sum(result.execution_time_ms for result in self.tool_results)
        return total / len(self.tool_results)

    def metadata(self) -> dict[str, Any]:
        """Response metadata in the shape the chat UI renders."""
        orchestration: dict[str, Any] = {
            "attempts": self.attempts,
            "totalToolCalls": len(self.tool_results),
            "serversUsed": self.servers_used,
        }
        if self.partial:
            orchestration["partial"] = True
            orchestration["warning"] = "Response generated from partial results"
        if self.degraded:
            orchestration["aggregationError"] = self.aggregation_error
        return {
            "orchestration": orchestration,
            "toolResults": [
                {
                    "server": result.server_name,
                    "tool": result.tool_name,
                    "executionTime": round(result.execution_time_ms, 2),
                    "success": result.success,
                    "response": result.response_text[:500],
                }
                for result in self.tool_results
            ],
            "timings": {
                "totalTime": round(self.total_time_ms, 2),
                "averageToolTime": round(self.average_tool_time_ms, 2),
            },
        }
