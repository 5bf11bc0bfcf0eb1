"""Tools that combine several API reads into one answer.

Each runner has the signature ``(spec, gateway, arguments) -> payload`` and
is attached to its :class:`ToolSpec` in the catalog.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from daktela_mcp.core.gateway import ApiError, ApiGateway, FieldFilter
from daktela_mcp.mcp.specs import (
    MAX_TAKE,
    ToolSpec,
    build_filters,
    choose,
    clean_ticket_id,
    collapse_references,
    int_arg,
    not_found,
    page_args,
    require_id,
    run_list,
    sort_direction,
)
from daktela_mcp.models.records import reference_id, reference_label

logger = logging.getLogger(__name__)

CHAT_CHANNELS = {
    "webchat": "activitiesWeb",
    "sms": "activitiesSms",
    "messenger": "activitiesFbm",
    "instagram": "activitiesIgdm",
    "whatsapp": "activitiesWap",
    "viber": "activitiesVbr",
}

TICKET_STAGES = ["OPEN", "WAIT", "CLOSE", "ARCHIVE"]

MAX_TICKET_ACTIVITIES = 100
ACCOUNT_CONTACT_BATCH = 50
ACCOUNT_MAX_BATCHES = 10
TRANSCRIPT_SEGMENT_LIMIT = 200

Runner = Callable[[ToolSpec, ApiGateway, dict[str, Any]], Awaitable[dict[str, Any]]]


def _channel(arguments: dict[str, Any]) -> tuple[str, str]:
    channel = str(arguments.get("channel") or "").strip().lower()
    endpoint = CHAT_CHANNELS.get(channel)
    if endpoint is None:
        raise ValueError(
            f"Unknown channel '{arguments.get('channel')}'. "
            f"Valid channels: {', '.join(CHAT_CHANNELS)}."
        )
    return channel, endpoint


def on_channel(run: Callable[..., Awaitable[dict[str, Any]]]) -> Runner:
    """Route a generic runner to the endpoint of the requested chat channel."""

    async def _run(spec: ToolSpec, gateway: ApiGateway, arguments: dict[str, Any]) -> dict[str, Any]:
        channel, endpoint = _channel(arguments)
        if channel == "webchat":
            # Web chats have no direction.
            arguments = {key: value for key, value in arguments.items() if key != "direction"}
        payload = await run(spec, gateway, arguments, endpoint=endpoint)
        return {"channel": channel, **payload}

    return _run


async def ticket_detail(
    spec: ToolSpec, gateway: ApiGateway, arguments: dict[str, Any]
) -> dict[str, Any]:
    """A ticket plus its activities in chronological order."""
    name = clean_ticket_id(require_id(spec, arguments))
    ticket = await gateway.get("tickets", name)
    if ticket is None:
        return not_found("tickets", f"Ticket '{name}' not found.")

    take = min(max(int_arg(arguments, "take", MAX_TICKET_ACTIVITIES), 1), MAX_TICKET_ACTIVITIES)
    page = await gateway.list(
        "activities",
        field_filters=[("ticket", "eq", name)],
        skip=0,
        take=take,
        sort="time",
        sort_dir="asc",
    )

    payload: dict[str, Any] = {
        "endpoint": "tickets",
        "record": collapse_references(ticket),
        "activity_total": page.total,
        "activities": [collapse_references(record) for record in page.records],
    }
    if page.total > take:
        payload["more_activities"] = (
            f"Showing the first {take} of {page.total} activities. "
            f"Use list_activities(ticket='{name}', skip={take}) for more."
        )
    return payload


async def _find_account(gateway: ApiGateway, wanted: str) -> dict[str, Any] | None:
    account = await gateway.get("accounts", wanted)
    if account is not None:
        return account
    page = await gateway.list("accounts", field_filters=[("title", "like", wanted)], take=1)
    return page.records[0] if page.records else None


async def account_tickets(
    spec: ToolSpec, gateway: ApiGateway, arguments: dict[str, Any]
) -> dict[str, Any]:
    """Tickets of every contact that belongs to one account.

    The account is looked up by ID first, then by partial title match.
    Contacts are queried in batches; accounts with more contacts than
    ``ACCOUNT_CONTACT_BATCH * ACCOUNT_MAX_BATCHES`` get a warning.
    """
    wanted = require_id(spec, arguments)
    account = await _find_account(gateway, wanted)
    if account is None:
        return not_found("accounts", f"No account found matching '{wanted}'.")

    account_id = reference_id(account)
    summary = {"name": account_id, "title": reference_label(account)}

    filters, applied = await build_filters(spec, gateway, arguments)
    stage = str(arguments.get("stage") or "OPEN").strip()
    if stage.upper() != "ALL":
        stage = choose("stage", stage, TICKET_STAGES)
        filters.append(("stage", "eq", stage))
    applied["stage"] = stage

    contacts = await gateway.list(
        "contacts",
        field_filters=[("account", "eq", account_id)],
        take=MAX_TAKE,
        fields=["name"],
    )
    contact_ids = [reference_id(record.get("name")) for record in contacts.records]
    contact_ids = [ident for ident in contact_ids if ident]

    skip, take = page_args(spec, arguments)
    if not contact_ids:
        return {
            "endpoint": "tickets",
            "account": summary,
            "total": 0,
            "skip": skip,
            "take": take,
            "count": 0,
            "filters": applied,
            "records": [],
            "message": "No contacts found for this account, so no tickets can be retrieved.",
        }

    batches = [
        contact_ids[start : start + ACCOUNT_CONTACT_BATCH]
        for start in range(0, len(contact_ids), ACCOUNT_CONTACT_BATCH)
    ]
    tickets: dict[str, dict[str, Any]] = {}
    for batch in batches[:ACCOUNT_MAX_BATCHES]:
        batch_filters: list[FieldFilter] = [*filters, ("contact", "in", batch)]
        page = await gateway.list(
            "tickets",
            field_filters=batch_filters,
            skip=0,
            take=MAX_TAKE,
            sort=spec.pick_sort(arguments.get("sort")),
            sort_dir=sort_direction(arguments),
        )
        for record in page.records:
            tickets.setdefault(reference_id(record.get("name")), record)

    window = list(tickets.values())[skip : skip + take]
    payload: dict[str, Any] = {
        "endpoint": "tickets",
        "account": summary,
        "total": len(tickets),
        "skip": skip,
        "take": take,
        "count": len(window),
        "filters": applied,
        "records": [collapse_references(record) for record in window],
    }
    if len(batches) > ACCOUNT_MAX_BATCHES:
        limit = ACCOUNT_CONTACT_BATCH * ACCOUNT_MAX_BATCHES
        payload["warning"] = (
            f"Results may be incomplete: the account has more than {limit} contacts "
            f"and only tickets of the first {limit} are included."
        )
    return payload


async def _transcript_segments(gateway: ApiGateway, activity: str) -> list[dict[str, Any]]:
    page = await gateway.list(
        "activitiesCallTranscripts",
        field_filters=[("activity", "eq", activity)],
        skip=0,
        take=TRANSCRIPT_SEGMENT_LIMIT,
        sort="start",
        sort_dir="asc",
        fields=["text", "type", "start", "end"],
    )
    segments = []
    for segment in page.records:
        try:
            start = float(segment.get("start") or 0)
        except (TypeError, ValueError):
            start = 0.0
        speaker = "Customer" if str(segment.get("type") or "").lower() == "customer" else "Operator"
        segments.append(
            {
                "start": start,
                "offset": f"{int(start) // 60}:{int(start) % 60:02d}",
                "speaker": speaker,
                "text": str(segment.get("text") or "").strip(),
            }
        )
    segments.sort(key=lambda item: item["start"])
    return segments


async def call_transcript(
    spec: ToolSpec, gateway: ApiGateway, arguments: dict[str, Any]
) -> dict[str, Any]:
    activity = require_id(spec, arguments)
    segments = await _transcript_segments(gateway, activity)
    if not segments:
        return not_found(spec.endpoint, f"No transcript found for activity '{activity}'.")
    return {"endpoint": spec.endpoint, "activity": activity, "segments": segments}


def _first_activity(raw: Any) -> str | None:
    if not isinstance(raw, list):
        return None
    for item in raw:
        ident = reference_id(item)
        if ident:
            return ident
    return None


async def call_transcripts(
    spec: ToolSpec, gateway: ApiGateway, arguments: dict[str, Any]
) -> dict[str, Any]:
    """Answered calls, newest first, each with its transcript inline.

    A transcript that fails to load is reported on its call; the other calls
    are still returned.
    """
    filters, applied = await build_filters(spec, gateway, arguments)
    skip, take = page_args(spec, arguments)
    page = await gateway.list(
        "activitiesCall",
        field_filters=[("answered", "eq", "1"), *filters],
        skip=skip,
        take=take,
        sort="call_time",
        sort_dir="desc",
    )

    records = []
    for call in page.records:
        entry = collapse_references(call)
        activity = _first_activity(call.get("activities"))
        entry["transcript"] = None
        if activity is not None:
            try:
                entry["transcript"] = await _transcript_segments(gateway, activity)
            except ApiError as exc:
                logger.warning("Transcript for %s failed: %s", activity, exc.render())
                entry["transcript_error"] = exc.message
        records.append(entry)

    return {
        "endpoint": "activitiesCall",
        "total": page.total,
        "skip": skip,
        "take": take,
        "count": len(records),
        "filters": applied,
        "records": records,
    }


async def _resolve_named(gateway: ApiGateway, endpoint: str, wanted: str) -> str | None:
    """Exact ``name`` lookup first, then the first partial ``title`` match."""
    record = await gateway.get(endpoint, wanted)
    if record is not None:
        return reference_id(record.get("name")) or wanted
    page = await gateway.list(endpoint, field_filters=[("title", "like", wanted)], take=1)
    if not page.records:
        return None
    return reference_id(page.records[0].get("name")) or None


async def list_articles(
    spec: ToolSpec, gateway: ApiGateway, arguments: dict[str, Any]
) -> dict[str, Any]:
    extra: list[FieldFilter] = []
    resolved: dict[str, str] = {}
    for arg_name, endpoint, field in (
        ("folder", "articlesFolders", "folder"),
        ("tag", "articlesTags", "tags"),
    ):
        wanted = str(arguments.get(arg_name) or "").strip()
        if not wanted:
            continue
        ident = await _resolve_named(gateway, endpoint, wanted)
        if ident is None:
            return not_found(endpoint, f"{arg_name.capitalize()} '{wanted}' not found.")
        extra.append((field, "eq", ident))
        resolved[arg_name] = ident

    payload = await run_list(spec, gateway, arguments, extra_filters=extra)
    payload["filters"].update(resolved)
    return payload


async def article_folders(
    spec: ToolSpec, gateway: ApiGateway, arguments: dict[str, Any]
) -> dict[str, Any]:
    """All knowledge base folders as a tree built from ``parent`` links."""
    page = await gateway.list(spec.endpoint, take=MAX_TAKE)

    nodes: dict[str, dict[str, Any]] = {}
    parents: dict[str, str] = {}
    for folder in page.records:
        ident = reference_id(folder.get("name"))
        if not ident:
            continue
        nodes[ident] = {"name": ident, "title": reference_label(folder), "children": []}
        parents[ident] = reference_id(folder.get("parent"))

    roots = []
    for ident, node in nodes.items():
        parent = nodes.get(parents[ident])
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent["children"].append(node)

    return {"endpoint": spec.endpoint, "total": len(nodes), "folders": roots}
