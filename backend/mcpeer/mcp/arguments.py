"""Infer which input field of a tool carries the user's free-text query."""

from __future__ import annotations

from typing import Any, Mapping

DEFAULT_ARGUMENT_NAME = "query"

# Order matters: earlier names win when several are present.
CANONICAL_ARGUMENT_NAMES: tuple[str, ...] = (
    "text",
    "query",
    "message",
    "input",
    "prompt",
    "question",
)


def _declared_type(properties: Mapping[str, Any], name: str) -> Any:
    entry = properties.get(name)
    if isinstance(entry, Mapping):
        return entry.get("type")
    return None


def resolve_primary_argument(input_schema: Any) -> str:
    """Return the primary argument name for a JSON-Schema-like descriptor.

    Required fields beat the canonical-name heuristic, and exact-case matches
    beat case-insensitive ones. Falls back to ``"query"`` for anything it
    cannot interpret, including a missing schema.
    """

    if not isinstance(input_schema, Mapping) or not input_schema:
        return DEFAULT_ARGUMENT_NAME

    properties = input_schema.get("properties")
    if not isinstance(properties, Mapping):
        properties = input_schema

    required = input_schema.get("required")
    if isinstance(required, (list, tuple)):
        for field_name in required:
            if not isinstance(field_name, str) or not field_name:
                continue
            if field_name.lower() in CANONICAL_ARGUMENT_NAMES:
                return field_name
            if _declared_type(properties, field_name) == "string":
                return field_name

    property_names = [name for name in properties if isinstance(name, str) and name]
    for canonical in CANONICAL_ARGUMENT_NAMES:
        if canonical in properties:
            return canonical
        for name in property_names:
            if name.lower() == canonical:
                return name

    for name in property_names:
        if _declared_type(properties, name) == "string":
            return name

    return DEFAULT_ARGUMENT_NAME


def remap_arguments(arguments: Mapping[str, Any] | None, primary: str) -> dict[str, Any]:
    """Move a canonical-named argument under the tool's primary key.

    Only fires when ``primary`` is absent; the first canonical key present is
    renamed. Keys outside the canonical set pass through untouched.
    """

    adjusted = dict(arguments or {})
    if primary in adjusted:
        return adjusted
    for name in CANONICAL_ARGUMENT_NAMES:
        if name != primary and name in adjusted:
            adjusted[primary] = adjusted.pop(name)
            break
    return adjusted


__all__ = [
    "CANONICAL_ARGUMENT_NAMES",
    "DEFAULT_ARGUMENT_NAME",
    "remap_arguments",
    "resolve_primary_argument",
]
