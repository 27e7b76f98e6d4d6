"""Fakes shared by the test suite: MCP servers behind a MockTransport and scripted LLMs."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx

from mcpeer.llm import CompletionOptions, LLMProvider, LLMProviderError
from mcpeer.mcp.catalog import ToolCatalogFetcher
from mcpeer.mcp.client import MCPClient
from mcpeer.mcp.invoker import ToolInvoker
from mcpeer.auth import OAuthTokenStore
from mcpeer.orchestration import OrchestrationDecisionMaker, OrchestrationLoop, ResponseAggregator
from mcpeer.schemas import LLMConfig, ServerConfig


class FakeMCPServer:
    """Answers ``tools/list`` and ``tools/call`` for one host.

    ``responses`` maps a tool name to a ``result`` payload, a full envelope
    (a dict with ``result`` or ``error``), an ``httpx`` exception class to
    raise, or an int status code. ``delays`` maps tool names to seconds.
    """

    def __init__(
        self,
        tools: list[dict[str, Any]] | None = None,
        *,
        responses: dict[str, Any] | None = None,
        delays: dict[str, float] | None = None,
        list_delay: float = 0.0,
        list_status: int = 200,
        list_timeout: bool = False,
    ):
        self.tools = tools if tools is not None else [{"name": "search", "description": "Search"}]
        self.responses = responses or {}
        self.delays = delays or {}
        self.list_delay = list_delay
        self.list_status = list_status
        self.list_timeout = list_timeout
        self.list_calls = 0
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.headers: list[httpx.Headers] = []

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.headers.append(request.headers)
        body = json.loads(request.content)
        method = body["method"]
        if method == "tools/list":
            self.list_calls += 1
            if self.list_delay:
                await asyncio.sleep(self.list_delay)
            if self.list_timeout:
                raise httpx.ReadTimeout("timed out", request=request)
            if self.list_status >= 400:
                return httpx.Response(self.list_status, json={"error": "down"})
            return _rpc(body, {"result": {"tools": self.tools}})
        if method == "tools/call":
            name = body["params"]["name"]
            arguments = body["params"]["arguments"]
            self.calls.append((name, arguments))
            if name in self.delays:
                await asyncio.sleep(self.delays[name])
            outcome = self.responses.get(name, {"content": [{"type": "text", "text": f"{name} ok"}]})
            if isinstance(outcome, type) and issubclass(outcome, httpx.HTTPError):
                raise outcome("boom", request=request)
            if isinstance(outcome, int):
                return httpx.Response(outcome, json={"error": "failed"})
            if isinstance(outcome, dict) and ("result" in outcome or "error" in outcome):
                return _rpc(body, outcome)
            return _rpc(body, {"result": outcome})
        return _rpc(body, {"error": {"code": -32601, "message": f"unknown method {method}"}})


def _rpc(request_body: dict[str, Any], payload: dict[str, Any]) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": request_body.get("id"), **payload})


def mcp_transport(
    servers: dict[str, FakeMCPServer],
    fallback: Callable[[httpx.Request], Any] | None = None,
) -> httpx.MockTransport:
    """Route requests to the fake keyed by the first label of the host name."""

    async def handler(request: httpx.Request) -> httpx.Response:
        server = servers.get(request.url.host.split(".", 1)[0])
        if server is not None:
            return await server.handle(request)
        if fallback is not None:
            result = fallback(request)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


def server_config(server_id: str, *, name: str | None = None, **kwargs: Any) -> ServerConfig:
    return ServerConfig(
        id=server_id,
        name=name or server_id.title(),
        url=f"http://{server_id}.test/mcp",
        **kwargs,
    )


class ScriptedLLM(LLMProvider):
    """Replays canned replies; an exception in the script is raised instead."""

    name = "scripted"

    def __init__(self, replies: list[Any] | None = None):
        super().__init__(model="scripted")
        self.replies = list(replies or [])
        self.prompts: list[str] = []
        self.options: list[CompletionOptions | None] = []

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        self.prompts.append(prompt)
        self.options.append(options)
        if not self.replies:
            raise LLMProviderError("no scripted reply left", provider=self.name)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def decision_json(*calls: tuple[str, str, dict[str, Any]], needs_more_info: bool = False) -> str:
    """Serialize a decision; each call is ``(server_id, tool_name, arguments)``."""
    return json.dumps(
        {
            "reasoning": "test",
            "toolCalls": [
                {
                    "serverId": server_id,
                    "serverName": server_id.title(),
                    "toolName": tool_name,
                    "arguments": arguments,
                }
                for server_id, tool_name, arguments in calls
            ],
            "needsMoreInfo": needs_more_info,
        }
    )


def build_loop(
    http_client: httpx.AsyncClient,
    llm: LLMProvider,
    *,
    max_retries: int = 3,
) -> OrchestrationLoop:
    client = MCPClient(http_client)
    token_store = OAuthTokenStore()
    return OrchestrationLoop(
        fetcher=ToolCatalogFetcher(client, token_store),
        invoker=ToolInvoker(client, token_store),
        decision_maker=OrchestrationDecisionMaker(),
        aggregator=ResponseAggregator(),
        provider_factory=lambda llm_config, server_url: llm,
        max_retries=max_retries,
    )


LLM_CONFIG = LLMConfig(provider="openai", config={"apiKey": "sk-test", "model": "gpt-4"})
