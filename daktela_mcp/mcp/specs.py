"""Tool specifications and the generic list/count/get execution behind them.

A :class:`ToolSpec` describes one read-only MCP tool: the endpoint it reads,
which arguments become field filters, whether it takes a date range and how
it pages. Tools that need more than one API call carry a ``runner``; see
:mod:`daktela_mcp.mcp.composite`.
"""

from __future__ import annotations

import json
import re
from collections.abc import Awaitable, Callable, Sequence
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from daktela_mcp.core.gateway import ApiGateway, FieldFilter
from daktela_mcp.core.users import resolve_user
from daktela_mcp.models.records import is_embedded_reference, reference_id, reference_label

MAX_TAKE = 250
DEFAULT_TAKE = 100

_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")
_DATETIME = re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}")

_TRUE_VALUES = frozenset({"true", "1", "yes"})
_FALSE_VALUES = frozenset({"false", "0", "no"})


class ToolKind(StrEnum):
    LIST = "list"
    COUNT = "count"
    GET = "get"


class FilterArg(BaseModel):
    """A tool argument that becomes a field filter."""

    field: str
    operator: str = "eq"
    description: str
    enum: list[str] | None = None
    boolean: bool = False
    resolve_user: bool = False


class ToolSpec(BaseModel):
    """Declarative description of one read-only tool."""

    name: str
    endpoint: str
    kind: ToolKind
    description: str
    filters: dict[str, FilterArg] = Field(default_factory=dict)
    searchable: bool = False
    # Search as a ``like`` filter on this field instead of full-text ``q``.
    search_field: str | None = None
    date_field: str | None = None
    hides_merged: bool = False
    default_sort: str | None = None
    sort_fields: list[str] = Field(default_factory=list)
    fields: list[str] = Field(default_factory=list)
    paged: bool = True
    default_take: int = DEFAULT_TAKE
    max_take: int = MAX_TAKE
    id_argument: str = "name"
    strips_ticket_prefix: bool = False
    extra_properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    entity: str = "record"
    runner: Callable[..., Awaitable[dict[str, Any]]] | None = Field(default=None, exclude=True)

    def input_schema(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        required: list[str] = []

        if self.kind == ToolKind.GET:
            properties[self.id_argument] = {
                "type": "string",
                "description": f"Internal {self.entity} ID (the `name` field).",
            }
            required.append(self.id_argument)

        properties.update(self.extra_properties)
        required.extend(self.required)

        if self.kind != ToolKind.GET:
            for arg_name, arg in self.filters.items():
                prop: dict[str, Any] = {
                    "type": "boolean" if arg.boolean else "string",
                    "description": arg.description,
                }
                if arg.enum:
                    prop["enum"] = list(arg.enum)
                properties[arg_name] = prop
            if self.searchable:
                properties["search"] = {
                    "type": "string",
                    "description": "Search term (partial match).",
                }
            if self.date_field:
                properties["date_from"] = {
                    "type": "string",
                    "description": "On or after this date (YYYY-MM-DD or 'YYYY-MM-DD HH:MM:SS').",
                }
                properties["date_to"] = {
                    "type": "string",
                    "description": "On or before this date; a bare date includes the whole day.",
                }
            if self.hides_merged:
                properties["include_merged"] = {
                    "type": "boolean",
                    "default": False,
                    "description": "Include tickets merged into other tickets.",
                }

        if self.kind == ToolKind.LIST and self.paged:
            properties["skip"] = {
                "type": "integer",
                "minimum": 0,
                "default": 0,
                "description": "Number of records to skip (pagination).",
            }
            properties["take"] = {
                "type": "integer",
                "minimum": 1,
                "maximum": self.max_take,
                "default": self.default_take,
                "description": f"Page size (max {self.max_take}).",
            }
            if self.sort_fields:
                properties["sort"] = {
                    "type": "string",
                    "enum": list(self.sort_fields),
                    "description": "Field to sort by.",
                }
                properties["sort_dir"] = {
                    "type": "string",
                    "enum": ["asc", "desc"],
                    "default": "desc",
                    "description": "Sort direction.",
                }

        schema: dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        return schema

    def pick_sort(self, requested: Any) -> str | None:
        if isinstance(requested, str) and requested in self.sort_fields:
            return requested
        return self.default_sort


def normalize_date(arg_name: str, value: Any) -> str | None:
    """Validate a ``YYYY-MM-DD`` or ``YYYY-MM-DD HH:MM:SS`` argument."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if _DATE.fullmatch(text) or _DATETIME.fullmatch(text):
        return text.replace("T", " ")
    raise ValueError(
        f"Invalid date format '{value}' for {arg_name}. "
        "Expected YYYY-MM-DD or 'YYYY-MM-DD HH:MM:SS'."
    )


def date_range_filters(
    field: str, date_from: str | None, date_to: str | None
) -> list[FieldFilter]:
    """Build ``gte``/``lte`` filters; a bare ``date_to`` covers the whole day."""
    filters: list[FieldFilter] = []
    if date_from:
        filters.append((field, "gte", date_from))
    if date_to:
        if len(date_to) == 10:
            date_to = f"{date_to} 23:59:59"
        filters.append((field, "lte", date_to))
    return filters


def as_bool(arg_name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid {arg_name} '{value}'. Expected true or false.")


def choose(arg_name: str, value: str, allowed: Sequence[str]) -> str:
    """Match *value* against *allowed* case-insensitively."""
    for option in allowed:
        if option.lower() == value.lower():
            return option
    raise ValueError(f"Invalid {arg_name} '{value}'. Valid values: {', '.join(allowed)}")


def clean_ticket_id(name: str) -> str:
    """``TK00787979`` -> ``787979``; plain IDs pass through."""
    return name.lstrip("TKtk").lstrip("0") or name


def int_arg(arguments: dict[str, Any], key: str, default: int) -> int:
    try:
        return int(arguments.get(key, default))
    except (TypeError, ValueError):
        return default


def page_args(spec: ToolSpec, arguments: dict[str, Any]) -> tuple[int, int]:
    skip = max(int_arg(arguments, "skip", 0), 0)
    take = min(max(int_arg(arguments, "take", spec.default_take), 1), spec.max_take)
    return skip, take


def sort_direction(arguments: dict[str, Any]) -> str:
    return "asc" if arguments.get("sort_dir") == "asc" else "desc"


def collapse_references(record: dict[str, Any]) -> dict[str, Any]:
    """Replace embedded related objects with ``"Title (name)"`` strings."""
    collapsed: dict[str, Any] = {}
    for key, value in record.items():
        if is_embedded_reference(value):
            ident = reference_id(value)
            label = reference_label(value)
            collapsed[key] = f"{label} ({ident})" if label != ident and ident else label
        else:
            collapsed[key] = value
    return collapsed


async def build_filters(
    spec: ToolSpec,
    gateway: ApiGateway,
    arguments: dict[str, Any],
) -> tuple[list[FieldFilter], dict[str, Any]]:
    """Turn tool arguments into field filters plus the applied-filter summary.

    Raises ``ValueError`` for enum, boolean or date arguments that do not
    validate.
    """
    filters: list[FieldFilter] = []
    applied: dict[str, Any] = {}

    for arg_name, arg in spec.filters.items():
        value = arguments.get(arg_name)
        if value is None or value == "":
            continue
        if arg.boolean:
            flag = as_bool(arg_name, value)
            filters.append((arg.field, arg.operator, "1" if flag else "0"))
            applied[arg_name] = flag
            continue

        text = str(value).strip()
        if arg.enum:
            text = choose(arg_name, text, arg.enum)
        if arg.resolve_user:
            text, display = await resolve_user(gateway, text)
            if display:
                applied[f"{arg_name}_display"] = display
        filters.append((arg.field, arg.operator, text))
        applied[arg_name] = text

    if spec.searchable and spec.search_field:
        search = str(arguments.get("search") or "").strip()
        if search:
            filters.append((spec.search_field, "like", search))
            applied["search"] = search

    if spec.hides_merged and not as_bool("include_merged", arguments.get("include_merged", False)):
        filters.append(("id_merge", "isnull", "true"))

    if spec.date_field:
        date_from = normalize_date("date_from", arguments.get("date_from"))
        date_to = normalize_date("date_to", arguments.get("date_to"))
        filters.extend(date_range_filters(spec.date_field, date_from, date_to))
        if date_from:
            applied["date_from"] = date_from
        if date_to:
            applied["date_to"] = date_to

    return filters, applied


def _full_text(spec: ToolSpec, arguments: dict[str, Any]) -> str | None:
    if not spec.searchable or spec.search_field:
        return None
    search = arguments.get("search")
    return str(search) if search else None


def not_found(endpoint: str, message: str) -> dict[str, Any]:
    return {"status": "not_found", "endpoint": endpoint, "message": message}


async def run_list(
    spec: ToolSpec,
    gateway: ApiGateway,
    arguments: dict[str, Any],
    *,
    endpoint: str | None = None,
    extra_filters: Sequence[FieldFilter] = (),
) -> dict[str, Any]:
    endpoint = endpoint or spec.endpoint
    filters, applied = await build_filters(spec, gateway, arguments)
    filters.extend(extra_filters)
    skip, take = page_args(spec, arguments)

    page = await gateway.list(
        endpoint,
        field_filters=filters or None,
        skip=skip,
        take=take,
        sort=spec.pick_sort(arguments.get("sort")),
        sort_dir=sort_direction(arguments),
        fields=spec.fields or None,
        search=_full_text(spec, arguments),
    )
    return {
        "endpoint": endpoint,
        "total": page.total,
        "skip": skip,
        "take": take,
        "count": len(page.records),
        "filters": applied,
        "records": [collapse_references(record) for record in page.records],
    }


async def run_count(
    spec: ToolSpec,
    gateway: ApiGateway,
    arguments: dict[str, Any],
    *,
    endpoint: str | None = None,
) -> dict[str, Any]:
    endpoint = endpoint or spec.endpoint
    filters, applied = await build_filters(spec, gateway, arguments)
    page = await gateway.list(
        endpoint,
        field_filters=filters or None,
        skip=0,
        take=1,
        fields=["name"],
        search=_full_text(spec, arguments),
    )
    return {"endpoint": endpoint, "total": page.total, "filters": applied}


def require_id(spec: ToolSpec, arguments: dict[str, Any]) -> str:
    value = str(arguments.get(spec.id_argument) or "").strip()
    if not value:
        raise ValueError(f"Parameter '{spec.id_argument}' is required")
    return value


async def run_get(
    spec: ToolSpec,
    gateway: ApiGateway,
    arguments: dict[str, Any],
    *,
    endpoint: str | None = None,
) -> dict[str, Any]:
    endpoint = endpoint or spec.endpoint
    name = require_id(spec, arguments)
    if spec.strips_ticket_prefix:
        name = clean_ticket_id(name)
    record = await gateway.get(endpoint, name)
    if record is None:
        return not_found(endpoint, f"{spec.entity.capitalize()} '{name}' not found.")
    return {"endpoint": endpoint, "record": collapse_references(record)}


def render_payload(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)
