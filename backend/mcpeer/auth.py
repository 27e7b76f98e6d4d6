"""Authentication headers for MCP server requests."""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from .schemas import ServerAuthConfig, ServerConfig

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 3600


class AuthError(Exception):
    """Raised when credentials for a server cannot be obtained."""

    def __init__(self, message: str, *, server_id: str | None = None):
        super().__init__(message)
        self.server_id = server_id


@dataclass(frozen=True)
class OAuthToken:
    access_token: str
    expires_at_epoch_ms: float

    def expired(self, now_ms: float | None = None) -> bool:
        current = now_ms if now_ms is not None else time.time() * 1000
        return current >= self.expires_at_epoch_ms


class OAuthTokenStore:
    """Process-lifetime cache of client-credential tokens keyed by server id.

    Unlocked; concurrent refreshes for the same server overwrite each other.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, OAuthToken] = {}

    def get(self, server_id: str) -> OAuthToken | None:
        token = self._tokens.get(server_id)
        if token is None or token.expired():
            return None
        return token

    def put(self, server_id: str, token: OAuthToken) -> None:
        self._tokens[server_id] = token

    def clear(self) -> None:
        self._tokens.clear()

    def __len__(self) -> int:
        return len(self._tokens)


def _expires_in_seconds(payload: Mapping[str, Any]) -> float:
    """Token lifetime from ``expires_in``; unusable values get the default TTL."""
    raw = payload.get("expires_in")
    try:
        seconds = float(raw) if raw is not None else DEFAULT_TOKEN_TTL_SECONDS
    except (TypeError, ValueError):
        return DEFAULT_TOKEN_TTL_SECONDS
    return seconds if seconds > 0 else DEFAULT_TOKEN_TTL_SECONDS


async def _fetch_oauth_token(
    server_id: str, auth: ServerAuthConfig, http_client: httpx.AsyncClient
) -> OAuthToken:
    if not auth.oauth_token_url:
        raise AuthError("Failed to obtain OAuth token: missing token url", server_id=server_id)
    form = {
        "grant_type": "client_credentials",
        "client_id": auth.oauth_client_id or "",
        "client_secret": auth.oauth_client_secret or "",
    }
    if auth.oauth_scope:
        form["scope"] = auth.oauth_scope
    try:
        response = await http_client.post(auth.oauth_token_url, data=form)
        response.raise_for_status()
        payload = response.json()
        access_token = payload["access_token"]
        expires_in = _expires_in_seconds(payload)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError, KeyError, TypeError, AttributeError) as exc:
        logger.error(
            "oauth token fetch failed server=%s error=%s",
            server_id,
            exc,
            extra={"run_id": "system"},
        )
        raise AuthError("Failed to obtain OAuth token", server_id=server_id) from exc
    return OAuthToken(
        access_token=str(access_token),
        expires_at_epoch_ms=time.time() * 1000 + expires_in * 1000,
    )


async def build_auth_headers(
    server: ServerConfig,
    token_store: OAuthTokenStore,
    http_client: httpx.AsyncClient,
) -> dict[str, str]:
    """Return request headers for ``server``.

    Missing credential fields simply produce fewer headers; only an OAuth
    token exchange failure raises ``AuthError``.
    """

    headers = {"Content-Type": "application/json"}
    auth = server.auth
    if auth is None:
        return headers

    method = auth.method
    if method == "bearer":
        if auth.bearer_token:
            headers["Authorization"] = f"Bearer {auth.bearer_token}"
    elif method == "oauth":
        token = token_store.get(server.id)
        if token is None:
            token = await _fetch_oauth_token(server.id, auth, http_client)
            token_store.put(server.id, token)
        headers["Authorization"] = f"Bearer {token.access_token}"
    elif method == "api-key":
        if auth.api_key and auth.api_key_header:
            headers[auth.api_key_header] = auth.api_key
    elif method == "basic":
        if auth.username and auth.password:
            raw = f"{auth.username}:{auth.password}".encode("utf-8")
            headers["Authorization"] = f"Basic {base64.b64encode(raw).decode('ascii')}"
    elif method == "custom":
        if auth.custom_headers:
            headers.update(auth.custom_headers)
    else:
        logger.warning(
            "unknown auth method=%s server=%s", method, server.id, extra={"run_id": "system"}
        )
    return headers


__all__ = ["AuthError", "OAuthToken", "OAuthTokenStore", "build_auth_headers"]
