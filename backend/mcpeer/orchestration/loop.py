"""Decide, fan out, evaluate and retry until an answer can be aggregated.

The loop is an explicit state machine over ``LoopState``::

    DECIDING -> EXECUTING -> EVALUATING -> RETRYING -> DECIDING
                                        -> AGGREGATING -> DONE
                                        -> FAILED

``FAILED`` only means no attempt reached aggregation. The request still
succeeds with a partial answer when any tool call in any attempt succeeded;
it raises ``OrchestrationExhausted`` otherwise.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Sequence

from ..llm import LLMProvider
from ..mcp.catalog import ToolCatalogFetcher
from ..mcp.invoker import ToolInvoker
from ..mcp.schema import ServerToolCatalog, ToolCallResult
from ..run_logging import SYSTEM_RUN_ID, log_run, warn_run
from ..schemas import LLMConfig, ServerConfig
from .aggregator import ResponseAggregator, concatenate_successes
from .decision import OrchestrationDecisionMaker
from .errors import DecisionParseFailure, OrchestrationExhausted, ToolCatalogUnavailable
from .models import (
    AggregationResult,
    AttemptRecord,
    LoopState,
    OrchestrationDecision,
    OrchestrationOutcome,
    ToolCallDecision,
)

MAX_RETRIES = 3
RETRY_SUCCESS_THRESHOLD = 0.5
SERVER_NOT_FOUND = "Server not found"

ProviderFactory = Callable[[LLMConfig, str | None], LLMProvider]


@dataclass
class _RunAccumulator:
    attempts: int = 0
    history: list[AttemptRecord] = field(default_factory=list)
    all_results: list[ToolCallResult] = field(default_factory=list)
    decision: OrchestrationDecision | None = None
    attempt_results: list[ToolCallResult] = field(default_factory=list)
    aggregation: AggregationResult | None = None


class OrchestrationLoop:
    """Runs one orchestrated request end to end."""

    def __init__(
        self,
        *,
        fetcher: ToolCatalogFetcher,
        invoker: ToolInvoker,
        decision_maker: OrchestrationDecisionMaker,
        aggregator: ResponseAggregator,
        provider_factory: ProviderFactory,
        max_retries: int = MAX_RETRIES,
        retry_success_threshold: float = RETRY_SUCCESS_THRESHOLD,
    ):
        self.fetcher = fetcher
        self.invoker = invoker
        self.decision_maker = decision_maker
        self.aggregator = aggregator
        self.provider_factory = provider_factory
        self.max_retries = max(1, max_retries)
        self.retry_success_threshold = retry_success_threshold

    async def run(
        self,
        question: str,
        servers: Sequence[ServerConfig],
        llm_config: LLMConfig,
        *,
        run_id: str = SYSTEM_RUN_ID,
    ) -> OrchestrationOutcome:
        started = time.perf_counter()
        catalogs = await self.fetcher.fetch_all(servers, run_id=run_id)
        if not catalogs:
            raise ToolCatalogUnavailable(sum(1 for server in servers if server.enabled))
        llm = self.provider_factory(llm_config, catalogs[0].server_url)
        servers_by_id = {server.id: server for server in servers}

        acc = _RunAccumulator()
        state = LoopState.DECIDING
        while state not in (LoopState.DONE, LoopState.FAILED):
            if state is LoopState.DECIDING:
                state = await self._decide(question, catalogs, llm, acc, run_id)
            elif state is LoopState.RETRYING:
                tool_calls = acc.decision.tool_calls if acc.decision else []
                acc.history.append(
                    AttemptRecord(tool_calls=tool_calls, results=acc.attempt_results)
                )
                log_run(run_id, "retrying attempt=%s of %s", acc.attempts + 1, self.max_retries)
                state = LoopState.DECIDING
            elif state is LoopState.AGGREGATING:
                acc.aggregation = await self._aggregate(question, acc.attempt_results, llm, run_id)
                state = LoopState.DONE
            elif acc.decision is None:
                # executing and evaluating need a parsed decision
                state = LoopState.FAILED
            elif state is LoopState.EXECUTING:
                acc.attempt_results = await self.execute(
                    acc.decision.tool_calls, catalogs, servers_by_id, run_id=run_id
                )
                acc.all_results.extend(acc.attempt_results)
                state = LoopState.EVALUATING
            elif state is LoopState.EVALUATING:
                state = self.evaluate(acc.decision, acc.attempt_results, acc.attempts)

        elapsed_ms = (time.perf_counter() - started) * 1000
        reasoning = acc.decision.reasoning if acc.decision else ""
        if acc.aggregation is not None:
            return OrchestrationOutcome(
                response=acc.aggregation.response,
                attempts=acc.attempts,
                tool_results=acc.all_results,
                degraded=acc.aggregation.degraded,
                aggregation_error=acc.aggregation.error,
                reasoning=reasoning,
                total_time_ms=elapsed_ms,
            )

        partial = concatenate_successes(acc.all_results)
        if partial:
            warn_run(
                run_id,
                "returning partial response attempts=%s tool_calls=%s",
                acc.attempts,
                len(acc.all_results),
            )
            return OrchestrationOutcome(
                response=partial,
                attempts=acc.attempts,
                tool_results=acc.all_results,
                partial=True,
                reasoning=reasoning,
                total_time_ms=elapsed_ms,
            )
        raise OrchestrationExhausted(acc.attempts, len(acc.all_results))

    async def _decide(
        self,
        question: str,
        catalogs: Sequence[ServerToolCatalog],
        llm: LLMProvider,
        acc: _RunAccumulator,
        run_id: str,
    ) -> LoopState:
        if acc.attempts >= self.max_retries:
            return LoopState.FAILED
        acc.attempts += 1
        acc.attempt_results = []
        try:
            acc.decision = await self.decision_maker.decide(
                question, catalogs, llm, acc.history, run_id=run_id
            )
        except DecisionParseFailure as exc:
            warn_run(run_id, "attempt=%s decision unusable: %s", acc.attempts, exc.reason)
            acc.decision = None
            if acc.attempts < self.max_retries:
                return LoopState.RETRYING
            return LoopState.FAILED
        if not acc.decision.tool_calls:
            log_run(run_id, "attempt=%s decision requested no tools", acc.attempts)
            return LoopState.FAILED
        return LoopState.EXECUTING

    def evaluate(
        self,
        decision: OrchestrationDecision,
        results: Sequence[ToolCallResult],
        attempt: int,
    ) -> LoopState:
        """Choose between retrying, aggregating, and giving up on this attempt."""
        successes = sum(1 for result in results if result.success)
        attempts_remain = attempt < self.max_retries
        if successes == 0:
            return LoopState.RETRYING if attempts_remain else LoopState.FAILED
        success_rate = successes / len(results)
        if (
            decision.needs_more_info
            and attempts_remain
            and success_rate < self.retry_success_threshold
        ):
            return LoopState.RETRYING
        return LoopState.AGGREGATING

    async def execute(
        self,
        tool_calls: Sequence[ToolCallDecision],
        catalogs: Sequence[ServerToolCatalog],
        servers_by_id: dict[str, ServerConfig],
        *,
        run_id: str = SYSTEM_RUN_ID,
    ) -> list[ToolCallResult]:
        """Dispatch every call at once and wait for all of them to settle."""
        catalogs_by_id = {catalog.server_id: catalog for catalog in catalogs}
        tasks = []
        for call in tool_calls:
            catalog = catalogs_by_id.get(call.server_id)
            if catalog is None:
                tasks.append(self._unknown_server(call))
                continue
            server = servers_by_id.get(call.server_id)
            tasks.append(
                self.invoker.invoke(
                    call.server_id,
                    call.server_name or catalog.server_name,
                    catalog.server_url,
                    call.tool_name,
                    call.arguments,
                    server.auth if server else None,
                    catalog.find_tool(call.tool_name),
                    run_id=run_id,
                )
            )
        results = await asyncio.gather(*tasks)
        log_run(
            run_id,
            "attempt executed calls=%s succeeded=%s",
            len(results),
            sum(1 for result in results if result.success),
        )
        return list(results)

    async def _unknown_server(self, call: ToolCallDecision) -> ToolCallResult:
        return ToolCallResult(
            server_id=call.server_id,
            server_name=call.server_name,
            tool_name=call.tool_name,
            response_text=f"Error: {SERVER_NOT_FOUND}",
            success=False,
            error=SERVER_NOT_FOUND,
        )

    async def _aggregate(
        self,
        question: str,
        results: Sequence[ToolCallResult],
        llm: LLMProvider,
        run_id: str,
    ) -> AggregationResult:
        try:
            return await self.aggregator.aggregate(question, results, llm, run_id=run_id)
        except Exception as exc:
            warn_run(run_id, "aggregator raised, concatenating results: %s", exc)
            return AggregationResult(
                response=concatenate_successes(results),
                degraded=True,
                error=str(exc),
            )


__all__ = ["MAX_RETRIES", "OrchestrationLoop", "RETRY_SUCCESS_THRESHOLD"]
