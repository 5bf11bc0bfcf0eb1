"""Test helpers: an in-memory Daktela REST API behind httpx.MockTransport."""

from __future__ import annotations

import json
import socket
from collections import Counter
from collections.abc import Callable
from typing import Any

import httpx

BASE_URL = "https://acme.daktela.com"

USERS = [
    {"name": "john.doe", "title": "John Doe", "email": "john@acme.test"},
    {"name": "jane.roe", "title": "Jane Roe", "email": "jane@acme.test"},
]

QUEUES = [
    {"name": "support", "title": "Support"},
    {"name": "sales", "title": "Sales"},
]

TICKETS = [
    {
        "name": "1001",
        "title": "Printer on fire",
        "stage": "OPEN",
        "priority": "HIGH",
        "user": {"name": "john.doe", "title": "John Doe"},
        "category": {"name": "hardware", "title": "Hardware"},
        "contact": "c-42",
        "created": "2026-01-05 10:00:00",
        "id_merge": None,
    },
    {
        "name": "1002",
        "title": "Password reset",
        "stage": "CLOSE",
        "priority": "LOW",
        "user": {"name": "jane.roe", "title": "Jane Roe"},
        "category": {"name": "accounts", "title": "Accounts"},
        "contact": None,
        "created": "2026-01-20 09:00:00",
        "id_merge": None,
    },
]

ACCOUNTS = [
    {"name": "acme", "title": "Acme Corporation"},
    {"name": "globex", "title": "Globex"},
]

CONTACTS = [
    {"name": "c-42", "title": "Alice Buyer", "account": {"name": "acme", "title": "Acme Corporation"}},
    {"name": "c-43", "title": "Bob Buyer", "account": {"name": "acme", "title": "Acme Corporation"}},
]

ACTIVITIES = [
    {"name": "act-2", "ticket": {"name": "1001", "title": "Printer on fire"}, "type": "EMAIL", "time": "2026-01-05 11:00:00"},
    {"name": "act-1", "ticket": {"name": "1001", "title": "Printer on fire"}, "type": "CALL", "time": "2026-01-05 10:05:00"},
]

CALLS = [
    {
        "name": "call-1",
        "call_time": "2026-01-06 08:00:00",
        "answered": "1",
        "id_agent": {"name": "john.doe", "title": "John Doe"},
        "activities": [{"name": "act-1", "title": "Call"}],
    },
    {
        "name": "call-2",
        "call_time": "2026-01-06 09:00:00",
        "answered": "0",
        "id_agent": {"name": "jane.roe", "title": "Jane Roe"},
        "activities": [],
    },
]

TRANSCRIPTS = [
    {"name": "tr-2", "activity": "act-1", "type": "operator", "start": "65.5", "text": " How can I help? "},
    {"name": "tr-1", "activity": "act-1", "type": "customer", "start": "2", "text": "Hello"},
]

WEB_CHATS = [{"name": "web-1", "title": "Chat from website", "time": "2026-01-07 12:00:00"}]

SMS = [
    {"name": "sms-1", "direction": "in", "time": "2026-01-07 12:00:00"},
    {"name": "sms-2", "direction": "out", "time": "2026-01-07 13:00:00"},
]

ARTICLE_FOLDERS = [
    {"name": "f-root", "title": "Handbook", "parent": None},
    {"name": "f-billing", "title": "Billing", "parent": {"name": "f-root", "title": "Handbook"}},
    {"name": "f-refunds", "title": "Refunds", "parent": {"name": "f-billing", "title": "Billing"}},
]

ARTICLE_TAGS = [{"name": "t-faq", "title": "FAQ"}]

ARTICLES = [
    {"name": "art-1", "title": "How to refund", "folder": {"name": "f-refunds", "title": "Refunds"}, "tags": "t-faq"},
    {"name": "art-2", "title": "Office hours", "folder": {"name": "f-root", "title": "Handbook"}, "tags": None},
]


def fake_getaddrinfo(mapping: dict[str, list[str]]) -> Callable[..., list[tuple[Any, ...]]]:
    """Build a ``socket.getaddrinfo`` replacement answering from *mapping*."""

    def _fake(host: str, *_args: Any, **_kwargs: Any) -> list[tuple[Any, ...]]:
        if host not in mapping:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        results = []
        for addr in mapping[host]:
            family = socket.AF_INET6 if ":" in addr else socket.AF_INET
            results.append((family, socket.SOCK_STREAM, 6, "", (addr, 0)))
        return results

    return _fake


def allow_all(_url: str) -> None:
    """Destination validator that accepts everything (no DNS in tests)."""


def _envelope(result: Any) -> dict[str, Any]:
    return {"error": [], "result": result, "_time": "2026-01-01 00:00:00"}


class FakeDaktela:
    """Minimal Daktela v6 REST API.

    Records every request, counts calls per path and lets tests script
    login failures, refresh failures and transient errors.
    """

    def __init__(
        self,
        *,
        login_ok: bool = True,
        refresh_status: int = 200,
        access_token: str = "tok-1",
        refresh_token: str | None = "ref-1",
    ) -> None:
        self.login_ok = login_ok
        self.refresh_status = refresh_status
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.valid_tokens = {access_token}
        self.requests: list[httpx.Request] = []
        self.calls: Counter[str] = Counter()
        # path -> list of status codes to answer with before the real response
        self.failures: dict[str, list[int]] = {}
        self.records: dict[str, list[dict[str, Any]]] = {
            "users": USERS,
            "queues": QUEUES,
            "tickets": TICKETS,
            "accounts": ACCOUNTS,
            "contacts": CONTACTS,
            "activities": ACTIVITIES,
            "activitiesCall": CALLS,
            "activitiesCallTranscripts": TRANSCRIPTS,
            "activitiesWeb": WEB_CHATS,
            "activitiesSms": SMS,
            "articles": ARTICLES,
            "articlesFolders": ARTICLE_FOLDERS,
            "articlesTags": ARTICLE_TAGS,
        }

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def fail(self, path: str, *statuses: int) -> None:
        self.failures.setdefault(path, []).extend(statuses)

    def count(self, method: str, path: str) -> int:
        return self.calls[f"{method} {path}"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        self.calls[f"{request.method} {path}"] += 1

        pending = self.failures.get(path)
        if pending:
            return httpx.Response(pending.pop(0), json={"error": ["Temporarily unavailable"]})

        if path == "/api/v6/login.json":
            return self._login(request)

        token = request.headers.get("X-AUTH-TOKEN")
        if token not in self.valid_tokens:
            return httpx.Response(401, json={"error": ["Unauthorized"], "result": None})

        if path == "/api/v6/whoami.json":
            return httpx.Response(200, json=_envelope(USERS[0]))

        endpoint = path.removeprefix("/api/v6/").removesuffix(".json")
        if "/" in endpoint:
            collection, name = endpoint.split("/", 1)
            for record in self.records.get(collection, []):
                if record["name"] == name:
                    return httpx.Response(200, json=_envelope(record))
            return httpx.Response(404, json={"error": ["Record not found"], "result": None})

        if endpoint not in self.records:
            return httpx.Response(404, json={"error": ["Unknown endpoint"], "result": None})

        data, total = self._filtered(endpoint, request)
        return httpx.Response(200, json=_envelope({"data": data, "total": total}))

    def _login(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        if request.method == "PUT":
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"error": ["Invalid refresh token"]})
            self.access_token = f"{self.access_token}-r"
            self.valid_tokens.add(self.access_token)
            return httpx.Response(
                200,
                json=_envelope({"accessToken": self.access_token, "refreshToken": body.get("refreshToken")}),
            )

        if not self.login_ok:
            return httpx.Response(401, json={"error": ["Invalid credentials"], "result": None})
        return httpx.Response(
            200,
            json=_envelope({"accessToken": self.access_token, "refreshToken": self.refresh_token}),
        )

    def _filtered(
        self, endpoint: str, request: httpx.Request
    ) -> tuple[list[dict[str, Any]], int]:
        params = request.url.params
        records = list(self.records[endpoint])
        for field, operator, value in sent_filters(request):
            records = [r for r in records if _matches(r.get(field), operator, value)]

        skip = int(params.get("skip", "0"))
        take = int(params.get("take", "100"))
        return records[skip : skip + take], len(records)


def _matches(actual: Any, operator: str, value: str | list[str]) -> bool:
    if isinstance(actual, dict):
        actual = actual.get("name")
    if operator == "isnull":
        return actual is None
    text = "" if actual is None else str(actual)
    if operator == "in":
        return text in value
    if operator == "like":
        return value.strip("%").lower() in text.lower()
    if operator == "gte":
        return text >= value
    if operator == "lte":
        return text <= value
    return text == value


def sent_filters(request: httpx.Request) -> list[tuple[str, str, str | list[str]]]:
    """Decode the field filters of a list request back into triples."""
    params = request.url.params
    filters: list[tuple[str, str, str | list[str]]] = []
    index = 0
    while f"filter[filters][{index}][field]" in params:
        prefix = f"filter[filters][{index}]"
        operator = params[f"{prefix}[operator]"]
        if operator == "in":
            value: str | list[str] = params.get_list(f"{prefix}[value][]")
        else:
            value = params.get(f"{prefix}[value]", "")
        filters.append((params[f"{prefix}[field]"], operator, value))
        index += 1
    return filters
