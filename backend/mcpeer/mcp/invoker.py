"""Execute a single MCP tool call and fold every failure into the result."""

from __future__ import annotations

import time
from typing import Any, Mapping

from ..auth import AuthError, OAuthTokenStore, build_auth_headers
from ..run_logging import SYSTEM_RUN_ID, log_run, warn_run
from ..schemas import ServerAuthConfig, ServerConfig
from .arguments import remap_arguments, resolve_primary_argument
from .client import MCPClient, MCPServerError
from .results import normalize_envelope
from .schema import ToolCallResult, ToolDescriptor


def prepare_arguments(
    arguments: Mapping[str, Any] | None, descriptor: ToolDescriptor | None
) -> dict[str, Any]:
    """Rename a mismatched canonical argument to the tool's primary argument."""
    if descriptor is None or not descriptor.input_schema:
        return dict(arguments or {})
    primary = resolve_primary_argument(descriptor.input_schema)
    return remap_arguments(arguments, primary)


class ToolInvoker:
    """Calls ``tools/call`` on one server; ``invoke`` never raises."""

    def __init__(
        self,
        client: MCPClient,
        token_store: OAuthTokenStore,
        *,
        timeout_seconds: float = 30.0,
    ):
        self.client = client
        self.token_store = token_store
        self.timeout_seconds = timeout_seconds

    async def invoke(
        self,
        server_id: str,
        server_name: str,
        server_url: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None,
        server_auth: ServerAuthConfig | None = None,
        descriptor: ToolDescriptor | None = None,
        *,
        run_id: str = SYSTEM_RUN_ID,
    ) -> ToolCallResult:
        started = time.perf_counter()
        try:
            server = ServerConfig(id=server_id, name=server_name, url=server_url, auth=server_auth)
            adjusted = prepare_arguments(arguments, descriptor)
            headers = await build_auth_headers(server, self.token_store, self.client.http_client)
            started = time.perf_counter()
            envelope = await self.client.call_tool(
                server_url,
                tool_name,
                adjusted,
                headers=headers,
                timeout=self.timeout_seconds,
            )
            response_text = normalize_envelope(envelope)
        except (AuthError, MCPServerError) as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            message = str(exc)
            warn_run(
                run_id,
                "tool failed server=%s tool=%s error=%s",
                server_name or server_id,
                tool_name,
                message,
            )
            return ToolCallResult(
                server_id=server_id,
                server_name=server_name,
                tool_name=tool_name,
                response_text=f"Error: {message}",
                execution_time_ms=elapsed_ms,
                success=False,
                error=message,
            )
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            message = str(exc) or type(exc).__name__
            warn_run(
                run_id,
                "unexpected tool error server=%s tool=%s error=%r",
                server_name or server_id,
                tool_name,
                exc,
            )
            return ToolCallResult(
                server_id=server_id,
                server_name=server_name,
                tool_name=tool_name,
                response_text=f"Error: {message}",
                execution_time_ms=elapsed_ms,
                success=False,
                error=message,
            )
        elapsed_ms = (time.perf_counter() - started) * 1000
        remote_error = envelope.get("result") is None and envelope.get("error") is not None
        if remote_error:
            warn_run(
                run_id,
                "tool returned error server=%s tool=%s error=%s",
                server_name or server_id,
                tool_name,
                response_text,
            )
        else:
            log_run(
                run_id,
                "tool completed server=%s tool=%s duration_ms=%.1f",
                server_name or server_id,
                tool_name,
                elapsed_ms,
            )
        return ToolCallResult(
            server_id=server_id,
            server_name=server_name,
            tool_name=tool_name,
            response_text=response_text,
            execution_time_ms=elapsed_ms,
            success=not remote_error,
            error=response_text.removeprefix("Error: ") if remote_error else None,
            raw_response=envelope,
        )


__all__ = ["ToolInvoker", "prepare_arguments"]
