"""Ask an LLM which tools to call for a question."""

from __future__ import annotations

import json
import re
from typing import Sequence

from pydantic import ValidationError

from ..llm import CompletionOptions, LLMProvider, LLMProviderError
from ..mcp.schema import ServerToolCatalog
from ..run_logging import SYSTEM_RUN_ID, log_run, warn_run
from .errors import DecisionParseFailure
from .models import AttemptRecord, OrchestrationDecision

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```\s*$", re.DOTALL | re.IGNORECASE)

DECISION_PROMPT = """You are an intelligent orchestrator for MCP (Model Context Protocol) servers. Your task is to analyze the user's question and decide which tools to call to answer it effectively.

Available MCP Servers and Tools:
{tools}{previous_attempts}

User's Question: {question}

Analyze the question and decide which tool(s) to call. You can call multiple tools from different servers if needed.

Respond ONLY with a valid JSON object in this exact format:
{{
  "reasoning": "Brief explanation of why you chose these tools",
  "toolCalls": [
    {{
      "serverId": "server_id_here",
      "serverName": "server_name_here",
      "toolName": "tool_name_here",
      "arguments": {{
        "<primary_argument_name>": "the search query or parameters"
      }}
    }}
  ],
  "needsMoreInfo": false
}}

IMPORTANT:
- If you need to call multiple tools, include them all in the toolCalls array
- Always use the exact serverId and toolName from the available tools
- Use the PRIMARY ARGUMENT NAME shown in brackets for each tool
- Set needsMoreInfo to false unless you truly cannot answer without additional tool calls"""


def render_catalogs(catalogs: Sequence[ServerToolCatalog]) -> str:
    sections: list[str] = []
    for catalog in catalogs:
        lines = [
            f"  - {tool.name}: {tool.description or 'No description'} "
            f'[primary argument: "{tool.primary_argument_name}"]'
            for tool in catalog.tools
        ]
        sections.append(
            f"Server: {catalog.server_name} (ID: {catalog.server_id})\nTools:\n" + "\n".join(lines)
        )
    return "\n\n".join(sections)


def render_attempts(history: Sequence[AttemptRecord]) -> str:
    if not history:
        return ""
    lines = [
        f"Attempt {idx}: Used tools [{', '.join(call.tool_name for call in attempt.tool_calls)}]"
        " - Result was insufficient"
        for idx, attempt in enumerate(history, start=1)
    ]
    return "\n\nPrevious attempts:\n" + "\n".join(lines)


def build_decision_prompt(
    question: str,
    catalogs: Sequence[ServerToolCatalog],
    history: Sequence[AttemptRecord] = (),
) -> str:
    return DECISION_PROMPT.format(
        tools=render_catalogs(catalogs),
        previous_attempts=render_attempts(history),
        question=question,
    )


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence, with or without a language tag."""
    stripped = text.strip()
    match = _FENCE_PATTERN.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def parse_decision(text: str) -> OrchestrationDecision:
    """Parse raw LLM text into a decision or raise ``DecisionParseFailure``."""
    body = strip_code_fence(text)
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise DecisionParseFailure(f"invalid JSON: {exc}", raw_text=text) from exc
    if not isinstance(payload, dict):
        raise DecisionParseFailure("decision is not a JSON object", raw_text=text)
    if not isinstance(payload.get("toolCalls", payload.get("tool_calls")), list):
        raise DecisionParseFailure("toolCalls must be a list", raw_text=text)
    try:
        return OrchestrationDecision.model_validate(payload)
    except ValidationError as exc:
        raise DecisionParseFailure(
            f"malformed decision: {exc.error_count()} validation error(s)", raw_text=text
        ) from exc


class OrchestrationDecisionMaker:
    """Sends the catalog and attempt history to the LLM at a fixed low temperature."""

    def __init__(self, *, temperature: float = 0.3, max_tokens: int = 1000):
        self.options = CompletionOptions(temperature=temperature, max_tokens=max_tokens)

    async def decide(
        self,
        question: str,
        catalogs: Sequence[ServerToolCatalog],
        llm: LLMProvider,
        attempt_history: Sequence[AttemptRecord] = (),
        *,
        run_id: str = SYSTEM_RUN_ID,
    ) -> OrchestrationDecision:
        prompt = build_decision_prompt(question, catalogs, attempt_history)
        try:
            text = await llm.complete(prompt, self.options)
        except LLMProviderError as exc:
            warn_run(run_id, "decision call failed provider=%s error=%s", llm.name, exc)
            raise DecisionParseFailure(str(exc)) from exc
        decision = parse_decision(text)
        log_run(
            run_id,
            "decision received tool_calls=%s needs_more_info=%s reasoning=%s",
            [call.tool_name for call in decision.tool_calls],
            decision.needs_more_info,
            decision.reasoning[:200],
        )
        return decision


__all__ = [
    "OrchestrationDecisionMaker",
    "build_decision_prompt",
    "parse_decision",
    "strip_code_fence",
]
