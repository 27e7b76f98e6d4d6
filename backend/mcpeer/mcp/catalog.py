"""Fetch tool catalogs from every enabled MCP server."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Sequence

from ..auth import AuthError, OAuthTokenStore, build_auth_headers
from ..run_logging import SYSTEM_RUN_ID, log_run, warn_run
from ..schemas import ServerConfig
from .arguments import resolve_primary_argument
from .client import MCPClient, MCPServerError
from .schema import ServerToolCatalog, ToolDescriptor


def build_descriptor(raw_tool: Mapping[str, Any]) -> ToolDescriptor:
    input_schema = raw_tool.get("inputSchema")
    if not isinstance(input_schema, Mapping):
        input_schema = None
    return ToolDescriptor(
        name=str(raw_tool["name"]),
        description=str(raw_tool.get("description") or ""),
        input_schema=dict(input_schema) if input_schema is not None else None,
        primary_argument_name=resolve_primary_argument(input_schema),
    )


class ToolCatalogFetcher:
    """Queries enabled servers for their tools, tolerating per-server failure."""

    def __init__(
        self,
        client: MCPClient,
        token_store: OAuthTokenStore,
        *,
        timeout_seconds: float = 10.0,
    ):
        self.client = client
        self.token_store = token_store
        self.timeout_seconds = timeout_seconds

    async def fetch_all(
        self, servers: Sequence[ServerConfig], *, run_id: str = SYSTEM_RUN_ID
    ) -> list[ServerToolCatalog]:
        """Return one catalog per reachable enabled server, in input order."""
        enabled = [server for server in servers if server.enabled]
        fetched = await asyncio.gather(
            *(self._fetch_one(server, run_id) for server in enabled)
        )
        catalogs = [catalog for catalog in fetched if catalog is not None]
        log_run(
            run_id,
            "tool catalogs fetched servers=%s reachable=%s tools=%s",
            len(enabled),
            len(catalogs),
            sum(len(catalog.tools) for catalog in catalogs),
        )
        return catalogs

    async def _fetch_one(self, server: ServerConfig, run_id: str) -> ServerToolCatalog | None:
        try:
            headers = await build_auth_headers(
                server, self.token_store, self.client.http_client
            )
            raw_tools = await self.client.list_tools(
                server.url, headers=headers, timeout=self.timeout_seconds
            )
            tools = [build_descriptor(raw_tool) for raw_tool in raw_tools]
        except (AuthError, MCPServerError) as exc:
            warn_run(run_id, "failed to get tools server=%s error=%s", server.name or server.id, exc)
            return None
        except Exception as exc:
            warn_run(
                run_id,
                "unexpected error getting tools server=%s error=%r",
                server.name or server.id,
                exc,
            )
            return None
        return ServerToolCatalog(
            server_id=server.id,
            server_name=server.name,
            server_url=server.url,
            tools=tools,
        )


__all__ = ["ToolCatalogFetcher", "build_descriptor"]
