"""Single-server chat: one tool call per message, optionally LLM-enhanced."""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping, Sequence

from .auth import OAuthTokenStore, build_auth_headers
from .llm import LLMProvider, LLMProviderError
from .mcp.arguments import resolve_primary_argument
from .mcp.client import MCPClient, MCPServerError, build_rpc_request
from .mcp.results import normalize_envelope
from .run_logging import SYSTEM_RUN_ID, log_run, warn_run
from .schemas import LLMConfig, ServerConfig

SEARCH_TOOL_MARKERS = ("search", "query", "manuales")
RESOURCE_PREVIEW_LIMIT = 5

ENHANCE_PROMPT = """You are an intelligent assistant that helps users understand information from MCP (Model Context Protocol) servers.

Your task is to:
1. Analyze the raw data provided from the MCP server
2. Extract the most relevant information
3. Present it in a clear, human-friendly, and conversational way
4. Provide reasoning and context when appropriate
5. If the data contains technical information, explain it in accessible terms

User's question: {question}

Raw MCP Server Response:
{response}

Provide a helpful, well-structured response that addresses the user's question using the information from the MCP server."""

ProviderBuilder = Callable[[LLMConfig, ServerConfig], LLMProvider]


class ConversationStore:
    """Recent messages per server id, trimmed to a fixed window."""

    def __init__(self, max_messages: int = 20):
        self.max_messages = max_messages
        self._contexts: dict[str, list[dict[str, str]]] = {}

    def append(self, server_id: str, role: str, content: str) -> None:
        messages = self._contexts.setdefault(server_id, [])
        messages.append({"role": role, "content": content})
        if len(messages) > self.max_messages:
            del messages[: len(messages) - self.max_messages]

    def get(self, server_id: str) -> list[dict[str, str]]:
        return list(self._contexts.get(server_id, []))

    def clear(self, server_id: str | None = None) -> None:
        if server_id:
            self._contexts.pop(server_id, None)
        else:
            self._contexts.clear()


def select_tool(tools: Sequence[Mapping[str, Any]]) -> Mapping[str, Any]:
    """Prefer a search-like tool; otherwise take the first one."""
    for tool in tools:
        lowered = str(tool.get("name", "")).lower()
        if any(marker in lowered for marker in SEARCH_TOOL_MARKERS):
            return tool
    return tools[0]


def summarize_resources(resources: Sequence[Mapping[str, Any]]) -> str:
    lines = [f"Found {len(resources)} resources:", ""]
    for idx, resource in enumerate(resources[:RESOURCE_PREVIEW_LIMIT], start=1):
        lines.append(f"{idx}. {resource.get('name') or resource.get('uri')}")
        if resource.get("description"):
            lines.append(f"   {resource['description']}")
    return "\n".join(lines) + "\n"


class ChatService:
    """Answers one message against one server."""

    def __init__(
        self,
        client: MCPClient,
        token_store: OAuthTokenStore,
        conversations: ConversationStore,
        provider_builder: ProviderBuilder,
        *,
        list_timeout_seconds: float = 10.0,
        call_timeout_seconds: float = 30.0,
    ):
        self.client = client
        self.token_store = token_store
        self.conversations = conversations
        self.provider_builder = provider_builder
        self.list_timeout_seconds = list_timeout_seconds
        self.call_timeout_seconds = call_timeout_seconds

    async def chat(
        self,
        message: str,
        server: ServerConfig,
        llm_config: LLMConfig | None = None,
        *,
        run_id: str = SYSTEM_RUN_ID,
    ) -> dict[str, Any]:
        """Return the response body for ``POST /api/chat``.

        Falls back to ``resources/list`` when the tool path fails and re-raises
        the original ``MCPServerError`` when that fails too. ``AuthError``
        propagates unchanged.
        """

        started = time.perf_counter()
        self.conversations.append(server.id, "user", message)
        headers = await build_auth_headers(server, self.token_store, self.client.http_client)
        log_run(run_id, "chat message server=%s length=%s", server.name or server.id, len(message))

        try:
            mcp_started = time.perf_counter()
            response_text, mcp_request, mcp_response = await self._call_tool_path(
                server, message, headers
            )
        except MCPServerError as exc:
            warn_run(run_id, "tool path failed server=%s error=%s", server.name or server.id, exc)
            try:
                mcp_started = time.perf_counter()
                response_text, mcp_request, mcp_response = await self._resource_path(
                    server, message, headers
                )
            except MCPServerError:
                raise exc
        mcp_time_ms = (time.perf_counter() - mcp_started) * 1000

        enhanced = bool(llm_config and llm_config.enabled)
        final_response = response_text
        llm_time_ms: float | None = None
        provider: LLMProvider | None = None
        if enhanced:
            llm_started = time.perf_counter()
            final_response, provider = await self._enhance(
                response_text, message, llm_config, server, run_id
            )
            llm_time_ms = (time.perf_counter() - llm_started) * 1000

        self.conversations.append(server.id, "assistant", final_response)

        mcp_response = {
            "rawResponse": response_text,
            "length": len(response_text),
            "enhanced": enhanced,
            **mcp_response,
        }
        timings = {
            "mcpTime": round(mcp_time_ms, 2),
            "llmTime": round(llm_time_ms, 2) if llm_time_ms is not None else None,
            "totalTime": round((time.perf_counter() - started) * 1000, 2),
        }
        metadata: dict[str, Any] = {
            "timings": timings,
            "mcpRequest": mcp_request,
            "mcpResponse": mcp_response,
        }
        if enhanced and llm_config is not None:
            llm_request = {
                "provider": llm_config.provider,
                "model": llm_config.config.model,
                "endpoint": llm_config.config.endpoint,
                "temperature": llm_config.config.temperature,
                "maxTokens": llm_config.config.max_tokens,
            }
            if provider is not None:
                llm_request["resolved"] = provider.describe()
            metadata["llmRequest"] = llm_request
            metadata["llmResponse"] = {
                "enhancedResponse": final_response,
                "length": len(final_response),
            }
        return {
            "response": final_response,
            "metadata": metadata,
            "timings": timings,
            "mcpRequest": mcp_request,
            "mcpResponse": mcp_response,
        }

    async def _call_tool_path(
        self, server: ServerConfig, message: str, headers: Mapping[str, str]
    ) -> tuple[str, dict[str, Any], dict[str, Any]]:
        tools = await self.client.list_tools(
            server.url, headers=headers, timeout=self.list_timeout_seconds
        )
        if not tools:
            raise MCPServerError("No tools available")
        tool = select_tool(tools)
        argument_name = resolve_primary_argument(tool.get("inputSchema"))
        request = build_rpc_request(
            "tools/call", {"name": tool["name"], "arguments": {argument_name: message}}
        )
        envelope = await self.client.request(
            server.url, request, headers=headers, timeout=self.call_timeout_seconds
        )
        mcp_request = {
            "method": request["method"],
            "params": request["params"],
            "tool": tool["name"],
            "query": message,
            "fullRequest": request,
        }
        return normalize_envelope(envelope), mcp_request, {"toolResponse": envelope}

    async def _resource_path(
        self, server: ServerConfig, message: str, headers: Mapping[str, str]
    ) -> tuple[str, dict[str, Any], dict[str, Any]]:
        request = build_rpc_request("resources/list")
        envelope = await self.client.request(
            server.url, request, headers=headers, timeout=self.list_timeout_seconds
        )
        result = envelope.get("result")
        resources = result.get("resources") if isinstance(result, Mapping) else None
        if not isinstance(resources, list):
            raise MCPServerError("No resources available")
        entries = [entry for entry in resources if isinstance(entry, Mapping)]
        mcp_request = {"method": "resources/list", "query": message, "fullRequest": request}
        return summarize_resources(entries), mcp_request, {"resourcesResponse": envelope}

    async def _enhance(
        self,
        response_text: str,
        message: str,
        llm_config: LLMConfig,
        server: ServerConfig,
        run_id: str,
    ) -> tuple[str, LLMProvider | None]:
        try:
            provider = self.provider_builder(llm_config, server)
        except LLMProviderError as exc:
            warn_run(run_id, "llm enhancement unavailable: %s", exc)
            return response_text, None
        prompt = ENHANCE_PROMPT.format(question=message, response=response_text)
        try:
            enhanced = await provider.complete(prompt)
        except LLMProviderError as exc:
            warn_run(run_id, "llm enhancement failed provider=%s error=%s", provider.name, exc)
            return response_text, provider
        return enhanced or response_text, provider


__all__ = ["ChatService", "ConversationStore", "select_tool", "summarize_resources"]
