"""Synthesize one answer out of several tool results."""

from __future__ import annotations

import time
from typing import Sequence

from ..llm import LLMProvider
from ..mcp.schema import ToolCallResult
from ..run_logging import SYSTEM_RUN_ID, log_run, warn_run
from .models import AggregationResult

RESULT_SEPARATOR = "\n\n---\n\n"

AGGREGATION_PROMPT = """You are an intelligent assistant that synthesizes information from multiple sources to provide comprehensive answers.

User's Question: {question}

I've gathered information from multiple MCP servers and tools:

{results}

Your task:
1. Analyze all the information provided
2. Synthesize it into a clear, comprehensive, and well-structured response
3. Address the user's question directly
4. If there are errors or missing information, acknowledge them appropriately
5. Present the information in a natural, conversational way

Provide a helpful response that best answers the user's question using all available information."""


def render_results(results: Sequence[ToolCallResult]) -> str:
    """One labeled block per result, failures rendered as their error text."""
    return RESULT_SEPARATOR.join(
        f"### Response from {result.server_name} - {result.tool_name}\n{result.display_text}"
        for result in results
    )


def concatenate_successes(results: Sequence[ToolCallResult]) -> str:
    """Raw fallback used when no synthesis is available."""
    return RESULT_SEPARATOR.join(
        f"### {result.server_name} - {result.tool_name}\n\n{result.response_text}"
        for result in results
        if result.success
    )


class ResponseAggregator:
    """Calls the LLM at its configured temperature; ``aggregate`` never raises."""

    async def aggregate(
        self,
        question: str,
        results: Sequence[ToolCallResult],
        llm: LLMProvider,
        *,
        run_id: str = SYSTEM_RUN_ID,
    ) -> AggregationResult:
        results_text = render_results(results)
        prompt = AGGREGATION_PROMPT.format(question=question, results=results_text)
        started = time.perf_counter()
        try:
            response = await llm.complete(prompt)
        except Exception as exc:
            warn_run(run_id, "aggregation failed provider=%s error=%s", llm.name, exc)
            return AggregationResult(
                response=results_text,
                degraded=True,
                error=f"Failed to aggregate with LLM, returning raw results: {exc}",
            )
        if not response.strip():
            warn_run(run_id, "aggregation returned empty text provider=%s", llm.name)
            return AggregationResult(
                response=results_text,
                degraded=True,
                error="Aggregation returned no text, returning raw results",
            )
        elapsed_ms = (time.perf_counter() - started) * 1000
        log_run(run_id, "aggregation completed results=%s duration_ms=%.1f", len(results), elapsed_ms)
        return AggregationResult(response=response, aggregation_time_ms=elapsed_ms)


__all__ = ["ResponseAggregator", "concatenate_successes", "render_results"]
