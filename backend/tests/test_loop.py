import asyncio
import time

import httpx
import pytest

from mcpeer.llm import LLMProviderError
from mcpeer.mcp.schema import ServerToolCatalog, ToolCallResult, ToolDescriptor
from mcpeer.orchestration import (
    LoopState,
    OrchestrationDecision,
    OrchestrationExhausted,
    ToolCallDecision,
    ToolCatalogUnavailable,
)

from helpers import (
    LLM_CONFIG,
    FakeMCPServer,
    ScriptedLLM,
    build_loop,
    decision_json,
    mcp_transport,
    server_config,
)

TOOLS = [{"name": "a"}, {"name": "b"}, {"name": "c"}, {"name": "d"}]


def _run(fakes, servers, llm, **kwargs):
    async def _go():
        async with httpx.AsyncClient(transport=mcp_transport(fakes)) as http_client:
            orchestration = build_loop(http_client, llm, **kwargs)
            return await orchestration.run("what?", servers, LLM_CONFIG)

    return asyncio.run(_go())


def _result(success):
    return ToolCallResult(
        server_id="s", server_name="S", tool_name="t", response_text="x", success=success
    )


def test_fan_out_waits_for_every_call():
    fakes = {
        "alpha": FakeMCPServer(TOOLS, delays={"a": 0.05, "b": 0.01}),
        "beta": FakeMCPServer(TOOLS, responses={"a": httpx.ConnectError}),
    }
    servers = [server_config("alpha"), server_config("beta")]
    catalogs = [
        ServerToolCatalog(
            server_id=server.id,
            server_name=server.name,
            server_url=server.url,
            tools=[ToolDescriptor(name=tool["name"]) for tool in TOOLS],
        )
        for server in servers
    ]
    calls = [
        ToolCallDecision(server_id="alpha", tool_name="a", arguments={"query": "slow"}),
        ToolCallDecision(server_id="alpha", tool_name="b", arguments={"query": "fast"}),
        ToolCallDecision(server_id="beta", tool_name="a", arguments={"query": "fails"}),
    ]

    async def _go():
        async with httpx.AsyncClient(transport=mcp_transport(fakes)) as http_client:
            orchestration = build_loop(http_client, ScriptedLLM())
            started = time.perf_counter()
            results = await orchestration.execute(
                calls, catalogs, {server.id: server for server in servers}
            )
            return results, time.perf_counter() - started

    results, elapsed = asyncio.run(_go())

    assert len(results) == 3
    assert [result.success for result in results] == [True, True, False]
    assert [result.server_id for result in results] == ["alpha", "alpha", "beta"]
    assert elapsed >= 0.05


def test_unknown_server_yields_failed_result():
    async def _go():
        async with httpx.AsyncClient(transport=mcp_transport({})) as http_client:
            orchestration = build_loop(http_client, ScriptedLLM())
            return await orchestration.execute(
                [ToolCallDecision(server_id="ghost", tool_name="a")], [], {}
            )

    (result,) = asyncio.run(_go())

    assert result.success is False
    assert result.error == "Server not found"


def test_retry_bound_caps_decision_calls():
    fakes = {"alpha": FakeMCPServer(TOOLS, responses={"a": 500})}
    replies = [decision_json(("alpha", "a", {"query": "x"}), needs_more_info=True)] * 5
    llm = ScriptedLLM(replies)

    with pytest.raises(OrchestrationExhausted) as excinfo:
        _run(fakes, [server_config("alpha")], llm)

    assert excinfo.value.attempts == 3
    assert len(llm.prompts) == 3
    assert len(fakes["alpha"].calls) == 3


def test_half_success_with_more_info_requested_aggregates():
    fakes = {"alpha": FakeMCPServer(TOOLS, responses={"c": 500, "d": 500})}
    llm = ScriptedLLM(
        [
            decision_json(
                ("alpha", "a", {}), ("alpha", "b", {}), ("alpha", "c", {}), ("alpha", "d", {}),
                needs_more_info=True,
            ),
            "combined answer",
        ]
    )

    outcome = _run(fakes, [server_config("alpha")], llm)

    assert outcome.attempts == 1
    assert outcome.response == "combined answer"
    assert len(outcome.tool_results) == 4


def test_low_success_rate_with_more_info_requested_retries():
    fakes = {"alpha": FakeMCPServer(TOOLS, responses={"b": 500, "c": 500})}
    llm = ScriptedLLM(
        [
            decision_json(("alpha", "a", {}), ("alpha", "b", {}), ("alpha", "c", {}), needs_more_info=True),
            decision_json(("alpha", "d", {})),
            "second try answer",
        ]
    )

    outcome = _run(fakes, [server_config("alpha")], llm)

    assert outcome.attempts == 2
    assert outcome.response == "second try answer"
    assert "Attempt 1: Used tools [a, b, c] - Result was insufficient" in llm.prompts[1]
    assert len(outcome.tool_results) == 4


def test_every_call_failing_exhausts_all_attempts():
    fakes = {
        "alpha": FakeMCPServer(TOOLS, responses={"a": httpx.ConnectError}),
        "beta": FakeMCPServer(TOOLS, responses={"a": 503}),
    }
    llm = ScriptedLLM([decision_json(("alpha", "a", {}), ("beta", "a", {}))] * 3)

    with pytest.raises(OrchestrationExhausted) as excinfo:
        _run(fakes, [server_config("alpha"), server_config("beta")], llm)

    assert excinfo.value.attempts == 3
    assert excinfo.value.tool_results == 6
    assert len(llm.prompts) == 3


def test_partial_success_goes_straight_to_aggregation():
    fakes = {
        "alpha": FakeMCPServer(TOOLS),
        "beta": FakeMCPServer(TOOLS, responses={"b": 500}),
    }
    llm = ScriptedLLM([decision_json(("alpha", "a", {}), ("beta", "b", {})), "answer"])

    outcome = _run(fakes, [server_config("alpha"), server_config("beta")], llm)

    assert outcome.attempts == 1
    assert outcome.partial is False
    assert len(llm.prompts) == 2
    metadata = outcome.metadata()
    assert metadata["orchestration"]["totalToolCalls"] == 2
    assert metadata["orchestration"]["serversUsed"] == ["Alpha", "Beta"]
    assert [entry["success"] for entry in metadata["toolResults"]] == [True, False]


def test_exhausting_attempts_after_earlier_success_returns_partial_answer():
    fakes = {"alpha": FakeMCPServer(TOOLS, responses={"b": 500, "c": 500, "d": 500})}
    llm = ScriptedLLM(
        [
            decision_json(("alpha", "a", {}), ("alpha", "b", {}), ("alpha", "c", {}), needs_more_info=True),
            decision_json(("alpha", "d", {})),
        ]
    )

    outcome = _run(fakes, [server_config("alpha")], llm, max_retries=2)

    assert outcome.partial is True
    assert outcome.attempts == 2
    assert outcome.response == "### Alpha - a\n\na ok"
    assert outcome.metadata()["orchestration"]["warning"] == "Response generated from partial results"


def test_unparseable_decision_consumes_an_attempt():
    fakes = {"alpha": FakeMCPServer(TOOLS)}
    llm = ScriptedLLM(["not json at all", decision_json(("alpha", "a", {})), "answer"])

    outcome = _run(fakes, [server_config("alpha")], llm)

    assert outcome.attempts == 2
    assert "Attempt 1: Used tools [] - Result was insufficient" in llm.prompts[1]


def test_decision_with_no_tools_and_no_results_is_exhausted():
    llm = ScriptedLLM([decision_json()])

    with pytest.raises(OrchestrationExhausted) as excinfo:
        _run({"alpha": FakeMCPServer(TOOLS)}, [server_config("alpha")], llm)

    assert excinfo.value.attempts == 1


def test_failed_aggregation_returns_raw_blocks():
    fakes = {"alpha": FakeMCPServer(TOOLS)}
    llm = ScriptedLLM([decision_json(("alpha", "a", {})), LLMProviderError("quota")])

    outcome = _run(fakes, [server_config("alpha")], llm)

    assert outcome.degraded is True
    assert outcome.response == "### Response from Alpha - a\na ok"
    assert "aggregationError" in outcome.metadata()["orchestration"]


def test_no_reachable_server_raises_catalog_unavailable():
    with pytest.raises(ToolCatalogUnavailable, match="No tools available from any server"):
        _run({}, [server_config("alpha"), server_config("off", enabled=False)], ScriptedLLM())


def test_evaluate_transitions():
    async def _go():
        async with httpx.AsyncClient(transport=mcp_transport({})) as http_client:
            return build_loop(http_client, ScriptedLLM())

    orchestration = asyncio.run(_go())
    more = OrchestrationDecision(tool_calls=[], needs_more_info=True)
    done = OrchestrationDecision(tool_calls=[])

    assert orchestration.evaluate(done, [_result(False)], 1) is LoopState.RETRYING
    assert orchestration.evaluate(done, [_result(False)], 3) is LoopState.FAILED
    assert orchestration.evaluate(more, [_result(True), _result(False), _result(False)], 1) is LoopState.RETRYING
    assert orchestration.evaluate(more, [_result(True), _result(False), _result(False)], 3) is LoopState.AGGREGATING
    assert orchestration.evaluate(more, [_result(True), _result(False)], 1) is LoopState.AGGREGATING
    assert orchestration.evaluate(done, [_result(True), _result(False), _result(False)], 1) is LoopState.AGGREGATING
