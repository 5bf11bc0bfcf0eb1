"""Read-only tool catalog.

Each :class:`ToolSpec` maps one MCP tool onto a Daktela endpoint. The server
derives each tool's input schema from its ToolSpec and executes it against
an :class:`ApiGateway`; nothing here writes to the remote API.
"""

from __future__ import annotations

from typing import Any

from daktela_mcp.core.gateway import ApiGateway
from daktela_mcp.mcp import composite
from daktela_mcp.mcp.specs import (
    DEFAULT_TAKE,
    MAX_TAKE,
    FilterArg,
    ToolKind,
    ToolSpec,
    collapse_references,
    render_payload,
    run_count,
    run_get,
    run_list,
)

__all__ = [
    "CATALOG",
    "DEFAULT_TAKE",
    "MAX_TAKE",
    "TOOLS_BY_NAME",
    "FilterArg",
    "ToolKind",
    "ToolSpec",
    "collapse_references",
    "execute_tool",
    "render_payload",
]


def _reference_listing(name: str, endpoint: str, entity: str, description: str) -> ToolSpec:
    return ToolSpec(
        name=name,
        endpoint=endpoint,
        kind=ToolKind.LIST,
        description=description,
        entity=entity,
    )


def _count_of(listing: ToolSpec, name: str, description: str) -> ToolSpec:
    return listing.model_copy(
        update={"name": name, "kind": ToolKind.COUNT, "description": description}
    )


def _get_of(listing: ToolSpec, name: str, description: str) -> ToolSpec:
    return ToolSpec(
        name=name,
        endpoint=listing.endpoint,
        kind=ToolKind.GET,
        description=description,
        entity=listing.entity,
    )


_USER_FILTER = FilterArg(
    field="user",
    description="Agent login name or display name (display names are resolved).",
    resolve_user=True,
)
_AGENT_FILTER = _USER_FILTER.model_copy(update={"field": "id_agent"})
_QUEUE_FILTER = FilterArg(field="queue", description="Queue `name` from list_queues.")
_CONTACT_FILTER = FilterArg(
    field="contact",
    description="Contact `name` ID (not a person's name; find it with list_contacts).",
)
_ACCOUNT_FILTER = FilterArg(field="account", description="Account `name` ID from list_accounts.")
_DIRECTION_FILTER = FilterArg(
    field="direction",
    description="Direction.",
    enum=["in", "out", "internal"],
)

_TICKET_FILTERS = {
    "stage": FilterArg(
        field="stage",
        description=(
            "Ticket stage: OPEN = being worked on, WAIT = awaiting the customer, "
            "CLOSE = resolved, ARCHIVE = resolved and archived."
        ),
        enum=composite.TICKET_STAGES,
    ),
    "priority": FilterArg(
        field="priority",
        description="Ticket priority.",
        enum=["LOW", "MEDIUM", "HIGH"],
    ),
    "category": FilterArg(
        field="category",
        description="Category `name` from list_ticket_categories.",
    ),
    "user": _USER_FILTER,
    "contact": _CONTACT_FILTER,
    "status": FilterArg(field="statuses", description="Workflow status `name` from list_statuses."),
}

_TICKET_SORT_FIELDS = [
    "name", "title", "created", "edited", "last_activity", "last_activity_operator",
    "last_activity_client", "sla_deadtime", "sla_close_deadline", "priority", "stage",
    "first_answer", "closed",
]

_LIST_TICKETS = ToolSpec(
    name="list_tickets",
    endpoint="tickets",
    kind=ToolKind.LIST,
    description=(
        "List tickets, most recently edited first, filtered by stage, priority, "
        "category, agent, contact, status or creation date."
    ),
    filters=_TICKET_FILTERS,
    searchable=True,
    search_field="title",
    date_field="created",
    hides_merged=True,
    default_sort="edited",
    sort_fields=_TICKET_SORT_FIELDS,
    entity="ticket",
)

_ACTIVITY_TYPES = ["CALL", "EMAIL", "CHAT", "SMS", "FBM", "IGDM", "WAP", "VBR", "CUSTOM"]

_LIST_ACTIVITIES = ToolSpec(
    name="list_activities",
    endpoint="activities",
    kind=ToolKind.LIST,
    description="List activities (calls, emails, chats, ...) across all channels.",
    filters={
        "type": FilterArg(field="type", description="Activity type.", enum=_ACTIVITY_TYPES),
        "action": FilterArg(
            field="action",
            description="Activity state.",
            enum=["OPEN", "WAIT", "POSTPONE", "CLOSE"],
        ),
        "queue": _QUEUE_FILTER,
        "ticket": FilterArg(field="ticket", description="Ticket ID (numeric)."),
        "user": _USER_FILTER,
    },
    date_field="time",
    default_sort="time",
    sort_fields=["time", "time_close", "duration", "ringing_time"],
    entity="activity",
)

_CALL_LIST_FIELDS = [
    "name", "id_call", "call_time", "direction", "answered", "id_queue", "id_agent",
    "clid", "prefix_clid_name", "did", "waiting_time", "ringing_time", "hold_time",
    "duration", "disposition_cause", "disconnection_cause", "pressed_key",
    "missed_call", "missed_call_time", "missed_callback", "attempts", "activities",
]

_LIST_CALLS = ToolSpec(
    name="list_calls",
    endpoint="activitiesCall",
    kind=ToolKind.LIST,
    description="List calls.",
    filters={
        "queue": _QUEUE_FILTER.model_copy(update={"field": "id_queue"}),
        "user": _AGENT_FILTER,
        "contact": _CONTACT_FILTER,
        "direction": _DIRECTION_FILTER.model_copy(update={"description": "Call direction."}),
        "answered": FilterArg(
            field="answered",
            description="Only answered (true) or unanswered (false) calls.",
            boolean=True,
        ),
    },
    date_field="call_time",
    default_sort="call_time",
    sort_fields=["call_time", "duration", "waiting_time", "ringing_time"],
    fields=_CALL_LIST_FIELDS,
    entity="call",
)

_EMAIL_LIST_FIELDS = [
    "name", "queue", "user", "title", "address", "direction",
    "wait_time", "duration", "answered", "text", "time", "state",
]

_LIST_EMAILS = ToolSpec(
    name="list_emails",
    endpoint="activitiesEmail",
    kind=ToolKind.LIST,
    description="List emails.",
    filters={
        "queue": _QUEUE_FILTER,
        "user": _USER_FILTER,
        "contact": _CONTACT_FILTER,
        "direction": _DIRECTION_FILTER.model_copy(
            update={"description": "Email direction.", "enum": ["in", "out"]}
        ),
    },
    date_field="time",
    default_sort="time",
    sort_fields=["time", "duration", "wait_time"],
    fields=_EMAIL_LIST_FIELDS,
    entity="email",
)

_CHANNEL_PROPERTY = {
    "channel": {
        "type": "string",
        "enum": list(composite.CHAT_CHANNELS),
        "description": "Messaging channel.",
    }
}

_LIST_CHATS = ToolSpec(
    name="list_chats",
    endpoint="activitiesWeb",
    kind=ToolKind.LIST,
    description="List chats of one messaging channel (web chat, SMS, Messenger, ...).",
    filters={
        "queue": _QUEUE_FILTER,
        "user": _USER_FILTER,
        "contact": _CONTACT_FILTER,
        "direction": _DIRECTION_FILTER.model_copy(
            update={"description": "Direction; ignored for webchat.", "enum": ["in", "out"]}
        ),
    },
    date_field="time",
    default_sort="time",
    sort_fields=["time", "duration", "wait_time"],
    extra_properties=_CHANNEL_PROPERTY,
    required=["channel"],
    entity="chat",
    runner=composite.on_channel(run_list),
)

_LIST_CONTACTS = ToolSpec(
    name="list_contacts",
    endpoint="contacts",
    kind=ToolKind.LIST,
    description="List contacts (people), searchable by name, email or phone.",
    filters={
        "user": _USER_FILTER.model_copy(
            update={"description": "Owner login name or display name (display names are resolved)."}
        ),
        "account": _ACCOUNT_FILTER,
    },
    searchable=True,
    date_field="created",
    default_sort="created",
    sort_fields=["created", "edited", "title", "lastname"],
    entity="contact",
)

_LIST_ACCOUNTS = ToolSpec(
    name="list_accounts",
    endpoint="accounts",
    kind=ToolKind.LIST,
    description="List accounts (companies).",
    searchable=True,
    default_sort="created",
    sort_fields=["created", "edited", "title"],
    entity="account",
)

_LIST_CRM_RECORDS = ToolSpec(
    name="list_crm_records",
    endpoint="crmRecords",
    kind=ToolKind.LIST,
    description="List CRM records (deals, cases and other custom record types).",
    filters={
        "type": FilterArg(field="type", description="CRM record type `name`."),
        "user": _USER_FILTER,
        "contact": _CONTACT_FILTER,
        "account": _ACCOUNT_FILTER,
    },
    date_field="created",
    default_sort="created",
    sort_fields=["created", "edited", "title", "stage"],
    entity="CRM record",
)

_LIST_CAMPAIGN_RECORDS = ToolSpec(
    name="list_campaign_records",
    endpoint="campaignsRecords",
    kind=ToolKind.LIST,
    description="List campaign records (outbound campaign contacts and their state).",
    filters={
        "type": FilterArg(field="record_type", description="Campaign record type `name`."),
        "user": _USER_FILTER,
        "action": FilterArg(field="action", description="Campaign record action/status."),
    },
    date_field="created",
    default_sort="created",
    sort_fields=["created", "edited", "nextcall"],
    entity="campaign record",
)

_LIST_ARTICLES = ToolSpec(
    name="list_articles",
    endpoint="articles",
    kind=ToolKind.LIST,
    description="List knowledge base articles, optionally by folder or tag (names or titles).",
    searchable=True,
    extra_properties={
        "folder": {"type": "string", "description": "Folder name or title."},
        "tag": {"type": "string", "description": "Tag name or title."},
    },
    entity="article",
    runner=composite.list_articles,
)

CATALOG: list[ToolSpec] = [
    # Reference data
    _reference_listing("list_users", "users", "user", "List users (agents) with login names and display names."),
    _reference_listing("list_queues", "queues", "queue", "List queues."),
    _reference_listing("list_groups", "groups", "group", "List user groups."),
    _reference_listing("list_statuses", "statuses", "status", "List workflow statuses."),
    _reference_listing("list_pauses", "pauses", "pause", "List agent pause reasons."),
    _reference_listing("list_templates", "templates", "template", "List message templates."),
    _reference_listing(
        "list_ticket_categories", "ticketsCategories", "category", "List ticket categories."
    ),
    _reference_listing(
        "list_campaign_types", "campaignsTypes", "campaign type", "List campaign types."
    ),
    _reference_listing(
        "list_realtime_sessions",
        "realtimeSessions",
        "realtime session",
        "List current agent sessions with their state, queue and direction.",
    ),
    # Tickets
    _LIST_TICKETS,
    _count_of(_LIST_TICKETS, "count_tickets", "Count tickets matching the given filters."),
    ToolSpec(
        name="get_ticket",
        endpoint="tickets",
        kind=ToolKind.GET,
        description="Get a single ticket by its ID (a TK00 prefix is stripped).",
        strips_ticket_prefix=True,
        entity="ticket",
    ),
    ToolSpec(
        name="get_ticket_detail",
        endpoint="tickets",
        kind=ToolKind.GET,
        description="Get a ticket together with its activities, oldest first, in one call.",
        extra_properties={
            "take": {
                "type": "integer",
                "minimum": 1,
                "maximum": composite.MAX_TICKET_ACTIVITIES,
                "default": composite.MAX_TICKET_ACTIVITIES,
                "description": "Maximum number of activities to include.",
            }
        },
        entity="ticket",
        runner=composite.ticket_detail,
    ),
    ToolSpec(
        name="list_account_tickets",
        endpoint="tickets",
        kind=ToolKind.LIST,
        description=(
            "List tickets of all contacts of one account. The account is given by "
            "ID or company name (partial match)."
        ),
        filters={
            key: _TICKET_FILTERS[key] for key in ("priority", "category", "user")
        },
        date_field="created",
        hides_merged=True,
        default_sort="edited",
        sort_fields=_TICKET_SORT_FIELDS,
        max_take=100,
        id_argument="account",
        extra_properties={
            "account": {"type": "string", "description": "Account ID or company name."},
            "stage": {
                "type": "string",
                "enum": [*composite.TICKET_STAGES, "ALL"],
                "default": "OPEN",
                "description": "Ticket stage, or ALL for any stage.",
            },
        },
        required=["account"],
        entity="ticket",
        runner=composite.account_tickets,
    ),
    # Activities
    _LIST_ACTIVITIES,
    _count_of(_LIST_ACTIVITIES, "count_activities", "Count activities matching the given filters."),
    _get_of(_LIST_ACTIVITIES, "get_activity", "Get a single activity by its ID."),
    # Calls
    _LIST_CALLS,
    _count_of(_LIST_CALLS, "count_calls", "Count calls matching the given filters."),
    _get_of(_LIST_CALLS, "get_call", "Get a single call by its ID."),
    ToolSpec(
        name="get_call_transcript",
        endpoint="activitiesCallTranscripts",
        kind=ToolKind.GET,
        description="Get the transcript of a call as timed segments with speaker.",
        id_argument="activity",
        entity="activity",
        runner=composite.call_transcript,
    ),
    ToolSpec(
        name="list_call_transcripts",
        endpoint="activitiesCall",
        kind=ToolKind.LIST,
        description="List answered calls, newest first, each with its transcript inline.",
        filters={"user": _AGENT_FILTER, "queue": _QUEUE_FILTER.model_copy(update={"field": "id_queue"})},
        date_field="call_time",
        default_take=10,
        max_take=50,
        entity="call",
        runner=composite.call_transcripts,
    ),
    # Emails
    _LIST_EMAILS,
    _count_of(_LIST_EMAILS, "count_emails", "Count emails matching the given filters."),
    _get_of(_LIST_EMAILS, "get_email", "Get a single email by its ID."),
    # Chats
    _LIST_CHATS,
    _count_of(_LIST_CHATS, "count_chats", "Count chats of one messaging channel.").model_copy(
        update={"runner": composite.on_channel(run_count)}
    ),
    ToolSpec(
        name="get_chat",
        endpoint="activitiesWeb",
        kind=ToolKind.GET,
        description="Get a single chat of one messaging channel by its ID.",
        extra_properties=_CHANNEL_PROPERTY,
        required=["channel"],
        entity="chat",
        runner=composite.on_channel(run_get),
    ),
    # Contacts and accounts
    _LIST_CONTACTS,
    _count_of(_LIST_CONTACTS, "count_contacts", "Count contacts matching the given filters."),
    _get_of(_LIST_CONTACTS, "get_contact", "Get a single contact by its ID."),
    _LIST_ACCOUNTS,
    _count_of(_LIST_ACCOUNTS, "count_accounts", "Count accounts matching the search."),
    _get_of(_LIST_ACCOUNTS, "get_account", "Get a single account by its ID."),
    # CRM and campaigns
    _LIST_CRM_RECORDS,
    _count_of(_LIST_CRM_RECORDS, "count_crm_records", "Count CRM records matching the given filters."),
    _get_of(_LIST_CRM_RECORDS, "get_crm_record", "Get a single CRM record by its ID."),
    _LIST_CAMPAIGN_RECORDS,
    _count_of(
        _LIST_CAMPAIGN_RECORDS,
        "count_campaign_records",
        "Count campaign records matching the given filters.",
    ),
    _get_of(_LIST_CAMPAIGN_RECORDS, "get_campaign_record", "Get a single campaign record by its ID."),
    # Knowledge base
    _LIST_ARTICLES,
    _get_of(_LIST_ARTICLES, "get_article", "Get a single knowledge base article by its ID."),
    ToolSpec(
        name="list_article_folders",
        endpoint="articlesFolders",
        kind=ToolKind.LIST,
        description="List knowledge base folders as a tree.",
        paged=False,
        entity="folder",
        runner=composite.article_folders,
    ),
]

TOOLS_BY_NAME: dict[str, ToolSpec] = {spec.name: spec for spec in CATALOG}


async def execute_tool(
    spec: ToolSpec,
    gateway: ApiGateway,
    arguments: dict[str, Any],
) -> dict[str, Any]:
    """Run *spec* and return a JSON-serializable payload.

    ``ApiError`` propagates to the caller; invalid arguments raise
    ``ValueError``.
    """
    if spec.runner is not None:
        return await spec.runner(spec, gateway, arguments)
    if spec.kind == ToolKind.GET:
        return await run_get(spec, gateway, arguments)
    if spec.kind == ToolKind.COUNT:
        return await run_count(spec, gateway, arguments)
    return await run_list(spec, gateway, arguments)
