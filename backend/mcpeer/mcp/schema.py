"""Shared MCP schema models."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from ..schemas import CamelModel


class ToolDescriptor(CamelModel):
    """Structured metadata describing a tool exposed by an MCP server."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] | None = None
    primary_argument_name: str = "query"


class ServerToolCatalog(CamelModel):
    """The tools one enabled server exposed for the current request."""

    server_id: str
    server_name: str
    server_url: str
    tools: list[ToolDescriptor] = Field(default_factory=list)

    def find_tool(self, name: str) -> ToolDescriptor | None:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None


class ToolCallResult(CamelModel):
    """Outcome of one tool invocation; failures are data, not exceptions."""

    server_id: str
    server_name: str
    tool_name: str
    response_text: str
    execution_time_ms: float = 0.0
    success: bool
    error: str | None = None
    raw_response: Any = None

    @property
    def display_text(self) -> str:
        if self.success:
            return self.response_text
        return f"Error: {self.error}"
