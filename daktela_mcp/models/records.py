"""Record shapes handed from the API gateway to the tool layer."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field


class ListPage(BaseModel):
    """One page of a listing: plain records plus the provider-side total."""

    records: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0


class Identifier(BaseModel):
    """A related entity given only by its identifier."""

    value: str


class Embedded(BaseModel):
    """A related entity embedded as an object."""

    name: str
    title: str | None = None


Reference = Identifier | Embedded


def to_native(value: Any) -> Any:
    """Recursively convert mappings and sequences into plain dicts and lists."""
    if isinstance(value, Mapping):
        return {str(key): to_native(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_native(item) for item in value]
    return value


def parse_reference(raw: Any) -> Reference | None:
    """Build a :data:`Reference` from either wire shape.

    Related entities arrive as a bare identifier (``"john.doe"``) or as an
    embedded object (``{"name": "john.doe", "title": "John Doe", ...}``).
    """
    if raw is None:
        return None
    if isinstance(raw, (Identifier, Embedded)):
        return raw
    if isinstance(raw, Mapping):
        name = raw.get("name")
        title = raw.get("title")
        if name in (None, "") and title in (None, ""):
            return None
        return Embedded(
            name="" if name is None else str(name),
            title=None if title in (None, "") else str(title),
        )
    if isinstance(raw, (str, int)) and not isinstance(raw, bool):
        text = str(raw)
        return Identifier(value=text) if text else None
    return None


def reference_id(raw: Any) -> str:
    """Return the identifier of a related entity ('' when absent)."""
    ref = parse_reference(raw)
    if isinstance(ref, Identifier):
        return ref.value
    if isinstance(ref, Embedded):
        return ref.name
    return ""


def reference_label(raw: Any) -> str:
    """Return the display string of a related entity ('' when absent)."""
    ref = parse_reference(raw)
    if isinstance(ref, Identifier):
        return ref.value
    if isinstance(ref, Embedded):
        return ref.title or ref.name
    return ""


def is_embedded_reference(raw: Any) -> bool:
    return isinstance(raw, Mapping) and isinstance(parse_reference(raw), Embedded)
