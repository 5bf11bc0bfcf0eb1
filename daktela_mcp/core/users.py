"""Resolve agent display names to login names."""

from __future__ import annotations

from daktela_mcp.core.gateway import ApiGateway
from daktela_mcp.models.records import reference_id, reference_label


async def resolve_user(gateway: ApiGateway, user_input: str) -> tuple[str, str | None]:
    """Return ``(login_name, display_name)`` for a user given by title or login.

    Exact title match wins, then the first partial title match, then a
    login-name match. Unknown users come back unchanged with no display name.
    """
    wanted = user_input.strip()

    for field in ("title", "name"):
        page = await gateway.list(
            "users",
            field_filters=[(field, "like", wanted)],
            take=10,
            fields=["name", "title"],
        )
        if not page.records:
            continue

        for record in page.records:
            if str(record.get(field) or "").strip().lower() == wanted.lower():
                return reference_id(record), reference_label(record) if record.get("title") else None

        first = page.records[0]
        return reference_id(first), reference_label(first) if first.get("title") else None

    return user_input, None
