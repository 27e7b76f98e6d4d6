"""JSON-RPC client for MCP servers reachable over HTTP POST."""

from __future__ import annotations

import itertools
from typing import Any, Mapping

import httpx

_REQUEST_IDS = itertools.count(1)


class MCPServerError(Exception):
    """Raised when an MCP server cannot fulfill a request."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None):
        super().__init__(message)
        self.details = dict(details or {})


def build_rpc_request(method: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "method": method,
        "params": dict(params or {}),
        "id": next(_REQUEST_IDS),
    }


class MCPClient:
    """Sends JSON-RPC requests such as ``tools/list`` and ``tools/call``."""

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    async def request(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str],
        timeout: float | None,
    ) -> dict[str, Any]:
        """POST one JSON-RPC envelope and return the decoded response body.

        Transport errors, timeouts, non-2xx statuses and non-object bodies all
        raise ``MCPServerError``.
        """

        try:
            response = await self.http_client.post(
                url, json=dict(payload), headers=dict(headers), timeout=timeout
            )
        except httpx.TimeoutException as exc:
            raise MCPServerError(
                f"timeout of {timeout}s exceeded", details={"url": url}
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise MCPServerError(str(exc) or type(exc).__name__, details={"url": url}) from exc
        if response.status_code >= 400:
            raise MCPServerError(
                f"Request failed with status code {response.status_code}",
                details={"status": response.status_code, "body": response.text[:200]},
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise MCPServerError(
                "invalid JSON response", details={"body": response.text[:200]}
            ) from exc
        if not isinstance(body, dict):
            raise MCPServerError("unexpected response shape", details={"body": body})
        return body

    async def list_tools(
        self, url: str, *, headers: Mapping[str, str], timeout: float | None
    ) -> list[dict[str, Any]]:
        body = await self.request(
            url, build_rpc_request("tools/list"), headers=headers, timeout=timeout
        )
        result = body.get("result")
        tools = result.get("tools") if isinstance(result, Mapping) else None
        if not isinstance(tools, list):
            error = body.get("error")
            raise MCPServerError(
                "tools/list returned no tools",
                details={"error": error} if error is not None else None,
            )
        return [tool for tool in tools if isinstance(tool, Mapping) and tool.get("name")]

    async def call_tool(
        self,
        url: str,
        tool_name: str,
        arguments: Mapping[str, Any],
        *,
        headers: Mapping[str, str],
        timeout: float | None,
    ) -> dict[str, Any]:
        """Return the raw ``tools/call`` envelope; JSON-RPC errors are not raised."""
        payload = build_rpc_request("tools/call", {"name": tool_name, "arguments": dict(arguments)})
        return await self.request(url, payload, headers=headers, timeout=timeout)


__all__ = ["MCPClient", "MCPServerError", "build_rpc_request"]
