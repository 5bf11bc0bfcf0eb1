"""Tests for the read-only tool catalog."""

from __future__ import annotations

import json

import pytest

from daktela_mcp.core.cache import ReferenceDataCache
from daktela_mcp.core.users import resolve_user
from daktela_mcp.mcp.catalog import (
    CATALOG,
    MAX_TAKE,
    TOOLS_BY_NAME,
    ToolKind,
    collapse_references,
    execute_tool,
    render_payload,
)
from daktela_mcp.models.config import ConnectionConfig
from tests.conftest import make_gateway
from tests.helpers import TICKETS, FakeDaktela, sent_filters


class TestCatalogShape:
    def test_tool_names_are_unique(self) -> None:
        assert len(TOOLS_BY_NAME) == len(CATALOG)

    def test_every_tool_is_read_only(self) -> None:
        assert {spec.kind for spec in CATALOG} <= {ToolKind.LIST, ToolKind.COUNT, ToolKind.GET}

    def test_list_schema(self) -> None:
        schema = TOOLS_BY_NAME["list_tickets"].input_schema()
        props = schema["properties"]
        assert props["take"]["maximum"] == MAX_TAKE
        assert props["stage"]["enum"] == ["OPEN", "WAIT", "CLOSE", "ARCHIVE"]
        assert "edited" in props["sort"]["enum"]
        assert "search" in props
        assert "required" not in schema

    def test_get_schema_requires_name(self) -> None:
        schema = TOOLS_BY_NAME["get_ticket"].input_schema()
        assert schema["required"] == ["name"]
        assert "take" not in schema["properties"]

    def test_count_schema_has_no_paging(self) -> None:
        props = TOOLS_BY_NAME["count_tickets"].input_schema()["properties"]
        assert "skip" not in props
        assert "stage" in props

    def test_pick_sort_falls_back_to_default(self) -> None:
        spec = TOOLS_BY_NAME["list_tickets"]
        assert spec.pick_sort("created") == "created"
        assert spec.pick_sort("password") == "edited"
        assert spec.pick_sort(None) == "edited"


def test_collapse_references() -> None:
    record = {
        "name": "1001",
        "user": {"name": "john.doe", "title": "John Doe"},
        "queue": {"name": "support"},
        "contact": "c-42",
    }
    assert collapse_references(record) == {
        "name": "1001",
        "user": "John Doe (john.doe)",
        "queue": "support",
        "contact": "c-42",
    }


def test_render_payload_keeps_unicode() -> None:
    assert json.loads(render_payload({"title": "Příliš žluťoučký"})) == {"title": "Příliš žluťoučký"}
    assert "ž" in render_payload({"title": "ž"})


class TestResolveUser:
    @pytest.mark.asyncio
    async def test_display_name(self, daktela: FakeDaktela, token_config: ConnectionConfig) -> None:
        async with make_gateway(daktela, token_config) as gateway:
            assert await resolve_user(gateway, "John Doe") == ("john.doe", "John Doe")

    @pytest.mark.asyncio
    async def test_login_name(self, daktela: FakeDaktela, token_config: ConnectionConfig) -> None:
        async with make_gateway(daktela, token_config) as gateway:
            assert await resolve_user(gateway, "jane.roe") == ("jane.roe", "Jane Roe")

    @pytest.mark.asyncio
    async def test_unknown_user_passes_through(
        self, daktela: FakeDaktela, token_config: ConnectionConfig
    ) -> None:
        async with make_gateway(daktela, token_config) as gateway:
            assert await resolve_user(gateway, "ghost") == ("ghost", None)


class TestExecuteTool:
    @pytest.mark.asyncio
    async def test_list_clamps_and_collapses(
        self, daktela: FakeDaktela, password_config: ConnectionConfig
    ) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(
                TOOLS_BY_NAME["list_tickets"],
                gateway,
                {"take": 1000, "skip": -3, "sort": "bogus", "sort_dir": "asc"},
            )

        assert payload["take"] == MAX_TAKE
        assert payload["skip"] == 0
        assert payload["total"] == 2
        assert payload["count"] == 2
        assert payload["records"][0]["user"] == "John Doe (john.doe)"
        params = daktela.requests[-1].url.params
        assert params["take"] == "250"
        assert params["sort[0][field]"] == "edited"
        assert params["sort[0][dir]"] == "asc"

    @pytest.mark.asyncio
    async def test_list_resolves_user_display_name(
        self, daktela: FakeDaktela, password_config: ConnectionConfig
    ) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(
                TOOLS_BY_NAME["list_tickets"], gateway, {"user": "John Doe", "stage": "OPEN"}
            )

        assert payload["filters"] == {"stage": "OPEN", "user": "john.doe", "user_display": "John Doe"}
        assert [record["name"] for record in payload["records"]] == ["1001"]

    @pytest.mark.asyncio
    async def test_count(self, daktela: FakeDaktela, password_config: ConnectionConfig) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(TOOLS_BY_NAME["count_tickets"], gateway, {"stage": "CLOSE"})

        assert payload == {"endpoint": "tickets", "total": 1, "filters": {"stage": "CLOSE"}}
        params = daktela.requests[-1].url.params
        assert params["take"] == "1"
        assert params["fields[0]"] == "name"

    @pytest.mark.asyncio
    async def test_get_found(self, daktela: FakeDaktela, password_config: ConnectionConfig) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(TOOLS_BY_NAME["get_ticket"], gateway, {"name": "1002"})
        assert payload["record"]["category"] == "Accounts (accounts)"

    @pytest.mark.asyncio
    async def test_get_not_found(self, daktela: FakeDaktela, password_config: ConnectionConfig) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(TOOLS_BY_NAME["get_ticket"], gateway, {"name": "nope"})
        assert payload == {
            "status": "not_found",
            "endpoint": "tickets",
            "message": "Ticket 'nope' not found.",
        }

    @pytest.mark.asyncio
    async def test_get_requires_name(self, daktela: FakeDaktela, password_config: ConnectionConfig) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            with pytest.raises(ValueError, match="'name' is required"):
                await execute_tool(TOOLS_BY_NAME["get_ticket"], gateway, {})

    @pytest.mark.asyncio
    async def test_reference_listing_uses_cache(
        self,
        daktela: FakeDaktela,
        password_config: ConnectionConfig,
        cache: ReferenceDataCache,
    ) -> None:
        async with make_gateway(daktela, password_config, cache) as gateway:
            first = await execute_tool(TOOLS_BY_NAME["list_users"], gateway, {})
            second = await execute_tool(TOOLS_BY_NAME["list_users"], gateway, {})

        assert first == second
        assert daktela.count("GET", "/api/v6/users.json") == 1


class TestCatalogCoverage:
    @pytest.mark.parametrize(
        "name",
        [
            "count_activities", "count_calls", "count_accounts",
            "list_emails", "count_emails", "get_email",
            "list_chats", "count_chats", "get_chat",
            "list_crm_records", "count_crm_records", "get_crm_record",
            "list_campaign_records", "count_campaign_records", "get_campaign_record",
            "list_articles", "get_article", "list_article_folders",
            "list_realtime_sessions", "get_call_transcript", "list_call_transcripts",
            "get_ticket_detail", "list_account_tickets",
        ],
    )
    def test_tool_is_registered(self, name: str) -> None:
        assert name in TOOLS_BY_NAME

    def test_date_range_arguments(self) -> None:
        assert "date_from" in TOOLS_BY_NAME["list_tickets"].input_schema()["properties"]
        assert "date_to" in TOOLS_BY_NAME["count_calls"].input_schema()["properties"]
        assert "date_from" not in TOOLS_BY_NAME["list_users"].input_schema()["properties"]

    def test_boolean_filter_schema(self) -> None:
        props = TOOLS_BY_NAME["list_calls"].input_schema()["properties"]
        assert props["answered"]["type"] == "boolean"

    def test_chat_tools_require_channel(self) -> None:
        assert TOOLS_BY_NAME["list_chats"].input_schema()["required"] == ["channel"]
        assert TOOLS_BY_NAME["get_chat"].input_schema()["required"] == ["name", "channel"]

    def test_account_tickets_schema(self) -> None:
        schema = TOOLS_BY_NAME["list_account_tickets"].input_schema()
        assert schema["required"] == ["account"]
        assert schema["properties"]["stage"]["enum"][-1] == "ALL"
        assert schema["properties"]["take"]["maximum"] == 100

    def test_transcript_tool_takes_activity(self) -> None:
        schema = TOOLS_BY_NAME["get_call_transcript"].input_schema()
        assert schema["required"] == ["activity"]

    def test_folder_tree_is_not_paged(self) -> None:
        assert "take" not in TOOLS_BY_NAME["list_article_folders"].input_schema()["properties"]


class TestDateFilters:
    @pytest.mark.asyncio
    async def test_bare_date_to_covers_whole_day(
        self, daktela: FakeDaktela, password_config: ConnectionConfig
    ) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(
                TOOLS_BY_NAME["list_tickets"],
                gateway,
                {"date_from": "2026-01-10", "date_to": "2026-01-20"},
            )

        assert [record["name"] for record in payload["records"]] == ["1002"]
        assert payload["filters"] == {"date_from": "2026-01-10", "date_to": "2026-01-20"}
        filters = sent_filters(daktela.requests[-1])
        assert ("created", "gte", "2026-01-10") in filters
        assert ("created", "lte", "2026-01-20 23:59:59") in filters

    @pytest.mark.asyncio
    async def test_iso_timestamp_is_normalized(
        self, daktela: FakeDaktela, password_config: ConnectionConfig
    ) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            await execute_tool(
                TOOLS_BY_NAME["count_calls"], gateway, {"date_to": "2026-01-06T08:30:00"}
            )
        assert sent_filters(daktela.requests[-1]) == [("call_time", "lte", "2026-01-06 08:30:00")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["yesterday", "2026/01/01", "2026-01-01 8:00"])
    async def test_invalid_date_rejected(
        self, daktela: FakeDaktela, password_config: ConnectionConfig, value: str
    ) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            with pytest.raises(ValueError, match="Invalid date format"):
                await execute_tool(TOOLS_BY_NAME["list_tickets"], gateway, {"date_from": value})


class TestTicketFilters:
    @pytest.fixture
    def merged(self, daktela: FakeDaktela) -> FakeDaktela:
        daktela.records["tickets"] = [
            *TICKETS,
            {"name": "1003", "title": "Dup", "stage": "CLOSE", "contact": "c-42", "id_merge": "1001"},
        ]
        return daktela

    @pytest.mark.asyncio
    async def test_merged_tickets_hidden_by_default(
        self, merged: FakeDaktela, password_config: ConnectionConfig
    ) -> None:
        async with make_gateway(merged, password_config) as gateway:
            hidden = await execute_tool(TOOLS_BY_NAME["count_tickets"], gateway, {})
            shown = await execute_tool(
                TOOLS_BY_NAME["count_tickets"], gateway, {"include_merged": True}
            )
        assert hidden["total"] == 2
        assert shown["total"] == 3

    @pytest.mark.asyncio
    async def test_search_is_title_like(self, daktela: FakeDaktela, password_config: ConnectionConfig) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(TOOLS_BY_NAME["list_tickets"], gateway, {"search": "printer"})

        assert [record["name"] for record in payload["records"]] == ["1001"]
        params = daktela.requests[-1].url.params
        assert "q" not in params
        assert ("title", "like", "%printer%") in sent_filters(daktela.requests[-1])

    @pytest.mark.asyncio
    async def test_get_ticket_strips_prefix(self, daktela: FakeDaktela, password_config: ConnectionConfig) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(TOOLS_BY_NAME["get_ticket"], gateway, {"name": "TK001002"})
        assert payload["record"]["name"] == "1002"

    @pytest.mark.asyncio
    async def test_enum_is_case_insensitive(self, daktela: FakeDaktela, password_config: ConnectionConfig) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(TOOLS_BY_NAME["count_tickets"], gateway, {"stage": "open"})
            with pytest.raises(ValueError, match="Valid values: OPEN, WAIT, CLOSE, ARCHIVE"):
                await execute_tool(TOOLS_BY_NAME["count_tickets"], gateway, {"stage": "DONE"})
        assert payload["filters"] == {"stage": "OPEN"}


class TestCallFilters:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(("answered", "expected"), [(True, "call-1"), ("no", "call-2")])
    async def test_answered_flag(
        self,
        daktela: FakeDaktela,
        password_config: ConnectionConfig,
        answered: object,
        expected: str,
    ) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(TOOLS_BY_NAME["list_calls"], gateway, {"answered": answered})

        assert [record["name"] for record in payload["records"]] == [expected]
        assert daktela.requests[-1].url.params["fields[0]"] == "name"

    @pytest.mark.asyncio
    async def test_answered_rejects_garbage(
        self, daktela: FakeDaktela, password_config: ConnectionConfig
    ) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            with pytest.raises(ValueError, match="Expected true or false"):
                await execute_tool(TOOLS_BY_NAME["list_calls"], gateway, {"answered": "maybe"})

    @pytest.mark.asyncio
    async def test_agent_display_name_resolved(
        self, daktela: FakeDaktela, password_config: ConnectionConfig
    ) -> None:
        async with make_gateway(daktela, password_config) as gateway:
            payload = await execute_tool(TOOLS_BY_NAME["count_calls"], gateway, {"user": "Jane Roe"})

        assert payload["total"] == 1
        assert ("id_agent", "eq", "jane.roe") in sent_filters(daktela.requests[-1])
