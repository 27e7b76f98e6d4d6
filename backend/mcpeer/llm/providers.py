"""Concrete LLM providers, one per API family."""

from __future__ import annotations

import json
import os
from typing import Any, Mapping

import httpx
from openai import AsyncOpenAI, OpenAIError

from .base import CompletionOptions, LLMProvider, LLMProviderError


ANTHROPIC_DEFAULT_ENDPOINT = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
SNOWFLAKE_INFERENCE_PATH = "/api/v2/cortex/inference:complete"
SSE_DATA_PREFIX = "data: "


def _openai_base_url(endpoint: str | None) -> str | None:
    if not endpoint:
        return None
    suffix = "/chat/completions"
    if endpoint.endswith(suffix):
        return endpoint[: -len(suffix)]
    return endpoint


def _describe_http_error(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"Request failed with status code {exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return "request timed out"
    return str(exc) or type(exc).__name__


def extract_sse_fragment(line: str) -> str | None:
    """Return the ``choices[0].delta.content`` fragment of one SSE line, if any."""
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    try:
        data = json.loads(line[len(SSE_DATA_PREFIX):])
        content = data["choices"][0]["delta"].get("content")
    except (ValueError, KeyError, IndexError, TypeError, AttributeError):
        return None
    return content if isinstance(content, str) and content else None


class OpenAIChatProvider(LLMProvider):
    """OpenAI chat completions through the official SDK."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None,
        endpoint: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(model=model or "gpt-4", temperature=temperature, max_tokens=max_tokens)
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.base_url = _openai_base_url(endpoint) or os.getenv("OPENAI_BASE_URL")
        self.timeout = timeout
        self._http_client = http_client
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if not self.api_key:
            raise LLMProviderError("OPENAI_API_KEY missing", provider=self.name)
        if self._client is None:
            client_kwargs: dict[str, Any] = {
                "api_key": self.api_key,
                "timeout": self.timeout,
                "max_retries": 0,
            }
            if self.base_url:
                client_kwargs["base_url"] = self.base_url
            if self._http_client is not None:
                client_kwargs["http_client"] = self._http_client
            self._client = AsyncOpenAI(**client_kwargs)
        return self._client

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        temperature, max_tokens = self.sampling(options)
        client = self._get_client()
        try:
            completion = await client.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            raise LLMProviderError(str(exc), provider=self.name) from exc
        if not completion.choices:
            raise LLMProviderError("completion returned no choices", provider=self.name)
        content = completion.choices[0].message.content
        if not content:
            raise LLMProviderError("completion returned empty content", provider=self.name)
        return content


class _HttpProvider(LLMProvider):
    """Shared plumbing for providers spoken to with raw httpx requests."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        endpoint: str,
        model: str,
        headers: Mapping[str, str] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float = 60.0,
    ):
        super().__init__(model=model, temperature=temperature, max_tokens=max_tokens)
        self.http_client = http_client
        self.endpoint = endpoint
        self.headers = {"Content-Type": "application/json", **dict(headers or {})}
        self.timeout = timeout

    async def _post_json(self, body: Mapping[str, Any]) -> Any:
        try:
            response = await self.http_client.post(
                self.endpoint, json=dict(body), headers=self.headers, timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            raise LLMProviderError(
                _describe_http_error(exc), provider=self.name, details={"endpoint": self.endpoint}
            ) from exc
        except ValueError as exc:
            raise LLMProviderError("invalid JSON response", provider=self.name) from exc

    def describe(self) -> dict[str, Any]:
        description = super().describe()
        description["endpoint"] = self.endpoint
        return description


class AnthropicMessagesProvider(_HttpProvider):
    name = "anthropic"

    def __init__(self, *, api_key: str | None, **kwargs: Any):
        headers = {
            **dict(kwargs.pop("headers", None) or {}),
            "x-api-key": api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        kwargs["endpoint"] = kwargs.get("endpoint") or ANTHROPIC_DEFAULT_ENDPOINT
        kwargs["model"] = kwargs.get("model") or "claude-3-opus-20240229"
        super().__init__(headers=headers, **kwargs)

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        temperature, max_tokens = self.sampling(options)
        payload = await self._post_json(
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        try:
            return str(payload["content"][0]["text"])
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMProviderError("unexpected messages response", provider=self.name) from exc


class SnowflakeCortexProvider(_HttpProvider):
    """Snowflake Cortex inference, answered as a Server-Sent-Events stream."""

    name = "snowflake"

    def __init__(self, *, api_key: str | None, **kwargs: Any):
        headers = dict(kwargs.pop("headers", None) or {})
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        kwargs["model"] = kwargs.get("model") or "llama3-70b"
        super().__init__(headers=headers, **kwargs)

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        temperature, max_tokens = self.sampling(options)
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "options": {"temperature": temperature, "max_tokens": max_tokens},
        }
        fragments: list[str] = []
        raw_lines: list[str] = []
        try:
            async with self.http_client.stream(
                "POST", self.endpoint, json=body, headers=self.headers, timeout=self.timeout
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    raw_lines.append(line)
                    fragment = extract_sse_fragment(line)
                    if fragment:
                        fragments.append(fragment)
        except httpx.HTTPError as exc:
            raise LLMProviderError(
                _describe_http_error(exc), provider=self.name, details={"endpoint": self.endpoint}
            ) from exc
        if fragments:
            return "".join(fragments)
        raw = "\n".join(raw_lines).strip()
        if not raw:
            raise LLMProviderError("empty stream", provider=self.name)
        return raw


class OpenAICompatibleProvider(_HttpProvider):
    """Any endpoint that speaks a chat-completions-like JSON dialect."""

    name = "other"

    def __init__(self, *, api_key: str | None, **kwargs: Any):
        headers = dict(kwargs.pop("headers", None) or {})
        if api_key and "Authorization" not in headers:
            headers["Authorization"] = f"Bearer {api_key}"
        super().__init__(headers=headers, **kwargs)

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        temperature, max_tokens = self.sampling(options)
        payload = await self._post_json(
            {
                "model": self.model,
                "messages": [{"role": "system", "content": prompt}],
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        return _first_text(
            payload,
            (("choices", 0, "message", "content"), ("message", "content"), ("content",), ("response",)),
        )


class CustomEndpointProvider(_HttpProvider):
    """A bare ``{prompt, model}`` completion endpoint."""

    name = "custom"

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        temperature, max_tokens = self.sampling(options)
        payload = await self._post_json(
            {
                "prompt": prompt,
                "model": self.model,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        return _first_text(payload, (("response",), ("text",)))


def _first_text(payload: Any, paths: tuple[tuple[str | int, ...], ...]) -> str:
    for path in paths:
        node = payload
        try:
            for key in path:
                node = node[key]
        except (KeyError, IndexError, TypeError):
            continue
        if isinstance(node, str) and node:
            return node
    return json.dumps(payload, default=str)


__all__ = [
    "AnthropicMessagesProvider",
    "CustomEndpointProvider",
    "OpenAIChatProvider",
    "OpenAICompatibleProvider",
    "SNOWFLAKE_INFERENCE_PATH",
    "SnowflakeCortexProvider",
    "extract_sse_fragment",
]
