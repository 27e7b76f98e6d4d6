"""Normalize the result shapes MCP servers return into plain text."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Callable, Mapping

BLOCK_SEPARATOR = "\n\n"
NO_RESPONSE_TEXT = "No response from tool"


class ResultShape(str, Enum):
    """Known ``result`` payload layouts of a ``tools/call`` response."""

    TEXT = "text"
    CONTENT_LIST = "content_list"
    CONTENT_TEXT = "content_text"
    CONTENT_OBJECT = "content_object"
    RESULTS_LIST = "results_list"
    OPAQUE = "opaque"


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def classify_result(result: Any) -> ResultShape:
    if isinstance(result, str):
        return ResultShape.TEXT
    if isinstance(result, Mapping):
        content = result.get("content")
        if isinstance(content, list):
            return ResultShape.CONTENT_LIST
        if isinstance(content, str):
            return ResultShape.CONTENT_TEXT
        if content:
            return ResultShape.CONTENT_OBJECT
        if isinstance(result.get("results"), list):
            return ResultShape.RESULTS_LIST
    return ResultShape.OPAQUE


def _content_item_text(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, Mapping) and item.get("type") == "text":
        return str(item.get("text") or "")
    return _pretty(item)


def _from_text(result: Any) -> str:
    return result


def _from_content_list(result: Mapping[str, Any]) -> str:
    return BLOCK_SEPARATOR.join(_content_item_text(item) for item in result["content"])


def _from_content_text(result: Mapping[str, Any]) -> str:
    return result["content"]


def _from_content_object(result: Mapping[str, Any]) -> str:
    return _pretty(result["content"])


def _from_results_list(result: Mapping[str, Any]) -> str:
    blocks: list[str] = []
    for idx, entry in enumerate(result["results"], start=1):
        if isinstance(entry, str):
            blocks.append(entry)
        else:
            blocks.append(f"Result {idx}:\n{_pretty(entry)}")
    return BLOCK_SEPARATOR.join(blocks)


def _from_opaque(result: Any) -> str:
    return _pretty(result)


_NORMALIZERS: dict[ResultShape, Callable[[Any], str]] = {
    ResultShape.TEXT: _from_text,
    ResultShape.CONTENT_LIST: _from_content_list,
    ResultShape.CONTENT_TEXT: _from_content_text,
    ResultShape.CONTENT_OBJECT: _from_content_object,
    ResultShape.RESULTS_LIST: _from_results_list,
    ResultShape.OPAQUE: _from_opaque,
}


def normalize_result(result: Any) -> str:
    """Render a ``tools/call`` result payload as text."""
    return _NORMALIZERS[classify_result(result)](result)


def format_rpc_error(error: Any) -> str:
    if isinstance(error, Mapping) and error.get("message"):
        return f"Error: {error['message']}"
    return f"Error: {json.dumps(error, default=str)}"


def normalize_envelope(envelope: Any) -> str:
    """Render a full JSON-RPC response body (``result`` or ``error``) as text."""

    if isinstance(envelope, Mapping):
        if envelope.get("result") is not None:
            return normalize_result(envelope["result"])
        if envelope.get("error") is not None:
            return format_rpc_error(envelope["error"])
    return NO_RESPONSE_TEXT


__all__ = [
    "NO_RESPONSE_TEXT",
    "ResultShape",
    "classify_result",
    "format_rpc_error",
    "normalize_envelope",
    "normalize_result",
]
