import asyncio
import json

import httpx
import pytest

from mcpeer.auth import OAuthTokenStore
from mcpeer.chat import ChatService, ConversationStore, select_tool, summarize_resources
from mcpeer.llm import LLMProviderError
from mcpeer.mcp.client import MCPClient, MCPServerError
from mcpeer.schemas import LLMConfig

from helpers import FakeMCPServer, ScriptedLLM, mcp_transport, server_config

SEARCH_TOOLS = [
    {"name": "list_items"},
    {"name": "doc_search", "inputSchema": {"properties": {"text": {"type": "string"}}}},
]


def _chat(transport, message, llm_config=None, llm=None, conversations=None):
    async def _go():
        async with httpx.AsyncClient(transport=transport) as http_client:
            service = ChatService(
                MCPClient(http_client),
                OAuthTokenStore(),
                conversations or ConversationStore(),
                lambda config, server: llm,
            )
            return await service.chat(message, server_config("alpha"), llm_config)

    return asyncio.run(_go())


def test_select_tool_prefers_search_like_names():
    assert select_tool(SEARCH_TOOLS)["name"] == "doc_search"
    assert select_tool([{"name": "Manuales_lookup"}, {"name": "x"}])["name"] == "Manuales_lookup"
    assert select_tool([{"name": "first"}, {"name": "second"}])["name"] == "first"


def test_summarize_resources_shows_first_five():
    resources = [{"name": f"r{idx}", "description": "d"} for idx in range(7)]

    text = summarize_resources(resources)

    assert text.startswith("Found 7 resources:")
    assert "5. r4" in text
    assert "r5" not in text


def test_conversation_store_keeps_a_window():
    store = ConversationStore(max_messages=3)
    for idx in range(5):
        store.append("s1", "user", str(idx))
    store.append("s2", "user", "other")

    assert [message["content"] for message in store.get("s1")] == ["2", "3", "4"]
    store.clear("s1")
    assert store.get("s1") == []
    assert store.get("s2")
    store.clear()
    assert store.get("s2") == []


def test_chat_calls_selected_tool_with_primary_argument():
    fake = FakeMCPServer(SEARCH_TOOLS, responses={"doc_search": "found"})

    body = _chat(mcp_transport({"alpha": fake}), "hello")

    assert fake.calls == [("doc_search", {"text": "hello"})]
    assert body["response"] == "found"
    assert body["mcpRequest"]["tool"] == "doc_search"
    assert body["mcpResponse"]["enhanced"] is False
    assert "llmRequest" not in body["metadata"]


def test_chat_enhances_with_llm_and_records_conversation():
    fake = FakeMCPServer(SEARCH_TOOLS, responses={"doc_search": "raw data"})
    llm = ScriptedLLM(["friendly answer"])
    conversations = ConversationStore()

    body = _chat(
        mcp_transport({"alpha": fake}),
        "hello",
        LLMConfig(provider="custom", config={"endpoint": "http://llm.test", "model": "m"}),
        llm,
        conversations,
    )

    assert body["response"] == "friendly answer"
    assert body["metadata"]["llmRequest"]["provider"] == "custom"
    assert body["metadata"]["llmResponse"]["enhancedResponse"] == "friendly answer"
    assert "raw data" in llm.prompts[0]
    assert [message["role"] for message in conversations.get("alpha")] == ["user", "assistant"]


def test_chat_keeps_raw_text_when_llm_fails():
    fake = FakeMCPServer(SEARCH_TOOLS, responses={"doc_search": "raw data"})

    body = _chat(
        mcp_transport({"alpha": fake}),
        "hello",
        LLMConfig(provider="custom", config={"endpoint": "http://llm.test"}),
        ScriptedLLM([LLMProviderError("down")]),
    )

    assert body["response"] == "raw data"
    assert body["mcpResponse"]["enhanced"] is True


def test_chat_falls_back_to_resources_list():
    def handler(request):
        payload = json.loads(request.content)
        if payload["method"] == "resources/list":
            resources = [{"name": "handbook", "description": "Employee handbook"}]
            return httpx.Response(200, json={"id": payload["id"], "result": {"resources": resources}})
        return httpx.Response(500)

    body = _chat(httpx.MockTransport(handler), "hello")

    assert body["response"].startswith("Found 1 resources:")
    assert "handbook" in body["response"]
    assert body["mcpRequest"]["method"] == "resources/list"


def test_chat_reraises_tool_error_when_fallback_fails():
    with pytest.raises(MCPServerError, match="status code 500"):
        _chat(httpx.MockTransport(lambda request: httpx.Response(500)), "hello")
