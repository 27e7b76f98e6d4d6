"""Explicit dependency container for the backend runtime.

This module is side-effect free on import. ``build_container`` wires the keyed
stores and services a request handler needs; ``shutdown`` releases the shared
HTTP connection pool.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from .auth import OAuthTokenStore
from .chat import ChatService, ConversationStore
from .llm import LLMProvider, build_provider
from .mcp.catalog import ToolCatalogFetcher
from .mcp.client import MCPClient
from .mcp.invoker import ToolInvoker
from .orchestration import OrchestrationDecisionMaker, OrchestrationLoop, ResponseAggregator
from .schemas import LLMConfig, ServerConfig
from .settings import Settings, get_settings


@dataclass
class BackendContainer:
    """Holds the constructed runtime dependencies for the backend."""

    settings: Settings
    http_client: httpx.AsyncClient
    token_store: OAuthTokenStore
    conversations: ConversationStore
    mcp_client: MCPClient
    orchestration_loop: OrchestrationLoop
    chat_service: ChatService


def build_container(
    *,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> BackendContainer:
    """Construct the dependency graph; pass ``http_client`` to swap transports."""

    settings = settings or get_settings()
    http_client = http_client or httpx.AsyncClient()
    token_store = OAuthTokenStore()
    conversations = ConversationStore(settings.server.context_max_messages)
    mcp_client = MCPClient(http_client)

    def _provider(llm_config: LLMConfig, server_url: str | None) -> LLMProvider:
        return build_provider(
            llm_config,
            http_client,
            server_url=server_url,
            timeout=settings.timeouts.llm_seconds,
        )

    def _chat_provider(llm_config: LLMConfig, server: ServerConfig) -> LLMProvider:
        return build_provider(
            llm_config,
            http_client,
            server_url=server.url,
            server_bearer_token=server.auth.bearer_token if server.auth else None,
            timeout=settings.timeouts.llm_seconds,
        )

    orchestration = settings.orchestration
    loop = OrchestrationLoop(
        fetcher=ToolCatalogFetcher(
            mcp_client, token_store, timeout_seconds=settings.timeouts.tools_list_seconds
        ),
        invoker=ToolInvoker(
            mcp_client, token_store, timeout_seconds=settings.timeouts.tools_call_seconds
        ),
        decision_maker=OrchestrationDecisionMaker(
            temperature=orchestration.decision_temperature,
            max_tokens=orchestration.decision_max_tokens,
        ),
        aggregator=ResponseAggregator(),
        provider_factory=_provider,
        max_retries=orchestration.max_retries,
        retry_success_threshold=orchestration.retry_success_threshold,
    )
    chat_service = ChatService(
        mcp_client,
        token_store,
        conversations,
        _chat_provider,
        list_timeout_seconds=settings.timeouts.tools_list_seconds,
        call_timeout_seconds=settings.timeouts.tools_call_seconds,
    )
    return BackendContainer(
        settings=settings,
        http_client=http_client,
        token_store=token_store,
        conversations=conversations,
        mcp_client=mcp_client,
        orchestration_loop=loop,
        chat_service=chat_service,
    )


async def shutdown(container: BackendContainer) -> None:
    await container.http_client.aclose()
    container.token_store.clear()
    container.conversations.clear()
