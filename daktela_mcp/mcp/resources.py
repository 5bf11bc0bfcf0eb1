"""Static MCP resources and prompt templates.

Resources describe the connected instance and the entity fields the tools
expose. Prompts are canned analysis workflows built on the read-only tools.
"""

from __future__ import annotations

import json
from typing import Any

import mcp.types as types
from pydantic import BaseModel, Field

from daktela_mcp.mcp.specs import MAX_TAKE

INSTANCE_URI = "daktela://instance"
SCHEMA_URI = "daktela://schema"

RESOURCES = [
    types.Resource(
        uri=INSTANCE_URI,
        name="instance_info",
        description="Connected Daktela instance URL and API version.",
        mimeType="application/json",
    ),
    types.Resource(
        uri=SCHEMA_URI,
        name="field_schema",
        description=(
            "Field definitions, entity relationships and valid filter values "
            "for the Daktela entities."
        ),
        mimeType="application/json",
    ),
]

FIELD_SCHEMA: dict[str, Any] = {
    "entities": {
        "ticket": {
            "key_fields": [
                "name (ID)", "title (display name)", "stage", "priority",
                "category", "user", "contact", "description",
            ],
            "stages": ["OPEN", "WAIT", "CLOSE", "ARCHIVE"],
            "priorities": ["LOW", "MEDIUM", "HIGH"],
            "date_fields": ["created", "edited", "last_activity", "sla_deadtime", "sla_close_deadline"],
            "relationships": ["contact (belongs to)", "user (assigned agent)", "category", "statuses"],
        },
        "activity": {
            "key_fields": ["name (ID)", "type", "action", "queue", "user", "ticket", "time"],
            "types": ["CALL", "EMAIL", "CHAT", "SMS", "FBM", "IGDM", "WAP", "VBR", "CUSTOM"],
            "actions": ["OPEN", "WAIT", "POSTPONE", "CLOSE"],
            "relationships": ["ticket (parent)", "user (agent)", "queue"],
        },
        "call": {
            "key_fields": ["id_call", "call_time", "direction", "answered", "id_queue", "id_agent", "duration"],
            "directions": ["in", "out", "internal"],
            "date_fields": ["call_time"],
        },
        "email": {
            "key_fields": ["name", "queue", "user", "title", "address", "direction", "time"],
            "directions": ["in", "out"],
            "date_fields": ["time"],
        },
        "chat": {
            "channels": ["webchat", "sms", "messenger", "instagram", "whatsapp", "viber"],
            "date_fields": ["time"],
        },
        "contact": {
            "key_fields": ["name (ID)", "title", "firstname", "lastname", "email", "phone", "account", "user"],
            "relationships": ["account (company)", "user (owner)"],
        },
        "account": {
            "key_fields": ["name (ID)", "title (company name)"],
            "relationships": ["contacts (has many)"],
        },
        "crm_record": {
            "key_fields": ["name", "title", "type", "user", "contact", "account", "stage"],
            "relationships": ["contact", "account", "user (owner)"],
        },
        "campaign_record": {
            "key_fields": ["name", "record_type", "user", "action", "nextcall"],
        },
        "article": {
            "key_fields": ["name", "title", "folder", "tags"],
            "relationships": ["folder (parent folder)", "tags"],
        },
    },
    "conventions": {
        "name_field": "Internal unique ID, used for API filters",
        "title_field": "Human-readable display name",
        "date_format": "YYYY-MM-DD or YYYY-MM-DD HH:MM:SS",
        "pagination": f"skip (offset) + take (limit), max take={MAX_TAKE}",
    },
}


def instance_info(base_url: str | None) -> dict[str, Any]:
    return {"url": base_url, "api_version": "v6", "access": "read-only"}


def render_resource(uri: str, base_url: str | None) -> str:
    """Return the JSON text of a resource; unknown URIs raise ``ValueError``."""
    uri = uri.rstrip("/")
    if uri == INSTANCE_URI:
        return json.dumps(instance_info(base_url), indent=2)
    if uri == SCHEMA_URI:
        return json.dumps(FIELD_SCHEMA, indent=2)
    raise ValueError(f"Unknown resource: {uri}")


class PromptTemplate(BaseModel):
    """A prompt whose ``{placeholders}`` are filled from its arguments."""

    name: str
    description: str
    template: str
    defaults: dict[str, str] = Field(default_factory=dict)
    optional: dict[str, str] = Field(default_factory=dict)
    argument_help: dict[str, str] = Field(default_factory=dict)

    def as_prompt(self) -> types.Prompt:
        arguments = [
            types.PromptArgument(name=name, description=help_text, required=False)
            for name, help_text in self.argument_help.items()
        ]
        return types.Prompt(name=self.name, description=self.description, arguments=arguments)

    def render(self, arguments: dict[str, str], instance_url: str = "") -> str:
        values = dict(self.defaults)
        values.update({key: value for key, value in arguments.items() if key in self.defaults and value})
        # Optional arguments expand into a clause, or into nothing.
        for key, clause in self.optional.items():
            value = arguments.get(key)
            values[f"{key}_clause"] = clause.format(value=value) if value else ""
        values["instance_url"] = instance_url.rstrip("/")
        return self.template.format(**values)


_EMAIL_QUALITY_AUDIT = """\
Audit the quality of customer emails from the {period}{queue_clause}.

1. Call list_emails with date_from/date_to covering the period (and the queue
   filter if one was given). Page with skip/take until every email is read.
2. For each thread flag:
   - negative customer sentiment or repeated complaints;
   - unprofessional, curt or incorrect replies from agents;
   - questions left unanswered or answered late (compare wait_time);
   - signs of a lost deal or a customer threatening to leave.
3. Use get_ticket_detail on the ticket of every flagged email for context.

Report a table of flagged emails (email ID, agent, queue, issue, severity),
then a short summary per agent and concrete follow-up actions.
"""

_SALES_PIPELINE_REVIEW = """\
Review the sales pipeline for tickets in these stages or statuses: {stages}.

1. For each value, call list_tickets with stage (or status, for workflow
   statuses from list_statuses) and sort=last_activity.
2. For every ticket, read get_ticket_detail and judge deal health:
   time since the last customer contact, open questions, agreed next steps
   and the owner's responsiveness.
3. Look up the customer's company with get_contact and list_account_tickets
   to spot accounts with several stalled tickets.

Report deals grouped as healthy / at risk / stalled, each with ticket ID,
owner, last activity and a recommended next action.
"""

_CALL_QUALITY_REVIEW = """\
Review call quality for the {period}{user_clause}.

1. Call list_call_transcripts with date_from/date_to for the period (and the
   user filter if an agent was given). Page until all answered calls are read.
2. For each transcript identify escalations, knowledge gaps (wrong or missing
   answers), missed upsell or retention chances and good practice worth
   sharing.
3. When an agent lacked knowledge, search list_articles for a matching
   knowledge base article and cite it.

Report per agent: calls reviewed, strengths, coaching points with the call
ID and transcript offset, and the articles to study.
"""

_DAILY_CALL_ANALYSIS = """\
Analyse all calls of {date}{queue_clause} for a management review.
Interpret the date in the Europe/Prague timezone.

1. count_calls and list_calls for the day (answered and unanswered) to get
   volumes, missed calls and waiting times per queue.
2. list_call_transcripts for the day; score each answered call from 1 to 5
   for resolution, customer sentiment and agent handling.
3. Flag churn risk, dissatisfaction with the product, systemic failures
   (the same problem reported by several callers) and poor handling.

Report the headline numbers, the flagged calls with their score and a link
({instance_url}/activities/update/<activity name>), recurring themes and
recommended actions for management.
"""

PROMPTS: dict[str, PromptTemplate] = {
    prompt.name: prompt
    for prompt in (
        PromptTemplate(
            name="email_quality_audit",
            description=(
                "Audit email quality: flags negative sentiment, unprofessional tone "
                "and lost deals in recent emails."
            ),
            template=_EMAIL_QUALITY_AUDIT,
            defaults={"period": "last 72 hours"},
            optional={"queue": " in the '{value}' queue"},
            argument_help={
                "period": "Time period, e.g. 'last 72 hours', 'last week', '2026-02-01 to 2026-02-25'.",
                "queue": "Queue name to focus on.",
            },
        ),
        PromptTemplate(
            name="sales_pipeline_review",
            description=(
                "Review open sales tickets, assess deal health and recommend actions "
                "for at-risk opportunities."
            ),
            template=_SALES_PIPELINE_REVIEW,
            defaults={"stages": "OPEN,WAIT"},
            argument_help={
                "stages": "Comma-separated ticket stages or statuses, e.g. 'OPEN,WAIT'.",
            },
        ),
        PromptTemplate(
            name="call_quality_review",
            description=(
                "Review call transcripts to identify escalations, knowledge gaps "
                "and coaching opportunities."
            ),
            template=_CALL_QUALITY_REVIEW,
            defaults={"period": "last week"},
            optional={"user": " for agent '{value}'"},
            argument_help={
                "period": "Time period, e.g. 'last week', 'last 3 days'.",
                "user": "Agent name to focus on.",
            },
        ),
        PromptTemplate(
            name="daily_call_analysis",
            description=(
                "Scored daily call analysis for management: churn risk, product issues, "
                "systemic failures and handling quality."
            ),
            template=_DAILY_CALL_ANALYSIS,
            defaults={"date": "yesterday"},
            optional={"queue": " in the '{value}' queue"},
            argument_help={
                "date": "Date to analyse, e.g. 'yesterday' or '2026-02-25'.",
                "queue": "Queue name to focus on.",
            },
        ),
    )
}


def list_prompts() -> list[types.Prompt]:
    return [prompt.as_prompt() for prompt in PROMPTS.values()]


def get_prompt(
    name: str, arguments: dict[str, str] | None, instance_url: str = ""
) -> types.GetPromptResult:
    prompt = PROMPTS.get(name)
    if prompt is None:
        raise ValueError(f"Unknown prompt: {name}")
    text = prompt.render(arguments or {}, instance_url)
    return types.GetPromptResult(
        description=prompt.description,
        messages=[
            types.PromptMessage(role="user", content=types.TextContent(type="text", text=text)),
        ],
    )
