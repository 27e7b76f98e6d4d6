"""API router for the chat backend.

This module is safe to import: routes receive their dependencies from the
container passed to ``get_router``.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING

import httpx
from fastapi import APIRouter, Header, status
from fastapi.responses import JSONResponse

from .auth import AuthError, build_auth_headers
from .llm import LLMProviderError
from .mcp.client import MCPServerError
from .orchestration import OrchestrationError, OrchestrationExhausted, ToolCatalogUnavailable
from .schemas import (
    ChatRequest,
    ClearContextRequest,
    OrchestratedChatRequest,
    ServerProbeRequest,
    iso_timestamp,
)

if TYPE_CHECKING:
    from .container import BackendContainer

logger = logging.getLogger(__name__)


def _log(message: str, run_id: str, *args: object) -> None:
    logger.info(message, *args, extra={"run_id": run_id})


def _error(status_code: int, error: str, **extra: object) -> JSONResponse:
    return JSONResponse({"error": error, **extra}, status_code=status_code)


def get_router(container: "BackendContainer") -> APIRouter:
    """Build API routes using the provided dependency container."""

    router = APIRouter(prefix="/api")

    @router.post("/orchestrated-chat")
    async def orchestrated_chat(
        payload: OrchestratedChatRequest,
        x_run_id: str | None = Header(default=None),
    ) -> JSONResponse:
        """Answer a question using every enabled server's tools."""
        run_id = x_run_id or str(uuid.uuid4())
        if not payload.servers:
            return _error(status.HTTP_400_BAD_REQUEST, "At least one server is required")
        if payload.llm_config is None or not payload.llm_config.enabled:
            return _error(
                status.HTTP_400_BAD_REQUEST, "LLM configuration is required for orchestration"
            )
        _log(
            "orchestrated request servers=%s provider=%s message_length=%s",
            run_id,
            len(payload.servers),
            payload.llm_config.provider,
            len(payload.message),
        )
        try:
            outcome = await container.orchestration_loop.run(
                payload.message, payload.servers, payload.llm_config, run_id=run_id
            )
        except ToolCatalogUnavailable as exc:
            return _error(status.HTTP_400_BAD_REQUEST, str(exc))
        except LLMProviderError as exc:
            return _error(status.HTTP_400_BAD_REQUEST, str(exc), details=exc.details or None)
        except OrchestrationExhausted as exc:
            logger.warning(
                "orchestration exhausted attempts=%s tool_results=%s",
                exc.attempts,
                exc.tool_results,
                extra={"run_id": run_id},
            )
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                str(exc),
                attempts=exc.attempts,
                toolResults=exc.tool_results,
                details="No successful tool results to return",
            )
        except OrchestrationError as exc:
            logger.error("orchestration failed: %s", exc, extra={"run_id": run_id})
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Orchestration failed")
        return JSONResponse(
            {
                "response": outcome.response,
                "metadata": outcome.metadata(),
                "orchestrated": True,
            },
            headers={"X-Run-Id": run_id},
        )

    @router.post("/chat")
    async def chat(
        payload: ChatRequest,
        x_run_id: str | None = Header(default=None),
    ) -> JSONResponse:
        """Send one message to one server's best-matching tool."""
        run_id = x_run_id or str(uuid.uuid4())
        if payload.server is None or not payload.server.url:
            return _error(status.HTTP_400_BAD_REQUEST, "Server configuration is required")
        try:
            body = await container.chat_service.chat(
                payload.message, payload.server, payload.llm_config, run_id=run_id
            )
        except (AuthError, MCPServerError) as exc:
            logger.error("chat failed: %s", exc, extra={"run_id": run_id})
            details = getattr(exc, "details", None) or str(exc)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), details=details)
        return JSONResponse(body, headers={"X-Run-Id": run_id})

    @router.post("/test-server")
    async def test_server(payload: ServerProbeRequest) -> JSONResponse:
        """Check that a server URL answers a plain GET with the configured auth."""
        server = payload.server
        if server is None or not server.url:
            return _error(status.HTTP_400_BAD_REQUEST, "Server configuration is required")
        started = time.perf_counter()
        try:
            headers = await build_auth_headers(
                server, container.token_store, container.http_client
            )
            response = await container.http_client.get(
                server.url,
                headers=headers,
                timeout=container.settings.timeouts.test_server_seconds,
            )
            response.raise_for_status()
        except (AuthError, httpx.HTTPError) as exc:
            return JSONResponse(
                {"success": False, "error": str(exc) or type(exc).__name__},
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        try:
            data: object = response.json()
        except ValueError:
            data = response.text
        return JSONResponse(
            {
                "success": True,
                "message": "Server is accessible",
                "data": data,
                "latencyMs": round((time.perf_counter() - started) * 1000, 2),
            }
        )

    @router.post("/clear-context")
    async def clear_context(payload: ClearContextRequest) -> dict[str, bool]:
        container.conversations.clear(payload.server_id)
        return {"success": True}

    @router.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": iso_timestamp()}

    return router
