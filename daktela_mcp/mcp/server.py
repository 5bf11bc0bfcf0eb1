"""MCP server exposing the read-only Daktela tool catalog."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import httpx
import mcp.server.stdio as mcp_stdio
import mcp.types as types
from mcp.server.lowlevel import NotificationOptions, Server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from daktela_mcp import __version__
from daktela_mcp.core.auth.resolver import MissingCredentials
from daktela_mcp.core.cache import ReferenceDataCache
from daktela_mcp.core.gateway import ApiError, ApiGateway, GatewayFactory
from daktela_mcp.core.network_safety import InvalidDestination
from daktela_mcp.mcp.catalog import CATALOG, TOOLS_BY_NAME, execute_tool, render_payload
from daktela_mcp.mcp.resources import RESOURCES, get_prompt, list_prompts, render_resource
from daktela_mcp.models.config import CachePolicy
from daktela_mcp.models.records import reference_label

logger = logging.getLogger(__name__)

SERVER_NAME = "daktela"

INSTRUCTIONS = """\
Read-only access to the Daktela contact center platform (REST API v6).

Naming conventions:
- Every record has a `name` field (internal unique ID) and a `title` field (display name).
- user/agent filters take the login name (`name` from list_users); display names
  such as 'John Doe' are resolved automatically.
- contact, account, category and queue filters take the `name` ID from the
  matching list_* tool.

Dates: date_from and date_to take YYYY-MM-DD or "YYYY-MM-DD HH:MM:SS"; a bare
date_to covers the whole day.
Tickets merged into other tickets are hidden unless include_merged=true.

Pagination: skip + take, default take=100, max take=250.
Use count_* tools instead of list_* when you only need a total.
The daktela://schema resource lists entity fields and valid filter values.
"""

CORS_ALLOW_HEADERS = [
    "Content-Type",
    "Mcp-Session-Id",
    "Mcp-Protocol-Version",
    "X-Daktela-Url",
    "X-Daktela-Username",
    "X-Daktela-Password",
    "X-Daktela-Access-Token",
]


class ToolCallError(Exception):
    """A tool call failed; the message is the JSON error payload."""

    def __init__(self, payload: dict[str, Any]) -> None:
        super().__init__(render_payload(payload))
        self.payload = payload


class DaktelaMCPServer:
    """MCP server that maps catalog tools onto per-request API gateways.

    On stdio one environment-configured gateway serves the whole process.
    Over HTTP every tool call builds its own gateway from the request's
    ``X-Daktela-*`` headers (falling back to the environment), so
    credentials never leak between callers. The reference data cache is
    shared by all gateways.
    """

    def __init__(
        self,
        factory: GatewayFactory | None = None,
        cache: ReferenceDataCache | None = None,
        *,
        per_request_sessions: bool = False,
    ) -> None:
        self.cache = cache or ReferenceDataCache(CachePolicy.from_env())
        self.factory = factory or GatewayFactory(cache=self.cache)
        if self.factory.cache is None:
            self.factory.cache = self.cache
        self.per_request_sessions = per_request_sessions

        self.server = Server(SERVER_NAME, version=__version__, instructions=INSTRUCTIONS)
        self._register_handlers()
        self._shared_gateway: ApiGateway | None = None
        self._shared_lock = asyncio.Lock()

        logger.info("Initialized Daktela MCP server with %s tools", len(CATALOG))

    def _register_handlers(self) -> None:
        @self.server.list_tools()  # type: ignore
        async def handle_list_tools() -> list[types.Tool]:
            return self.list_tools()

        @self.server.call_tool()  # type: ignore
        async def handle_call_tool(
            name: str,
            arguments: dict[str, Any] | None,
        ) -> list[types.TextContent]:
            payload = await self.call_tool(name, arguments or {})
            return [types.TextContent(type="text", text=render_payload(payload))]

        @self.server.list_resources()  # type: ignore
        async def handle_list_resources() -> list[types.Resource]:
            return list(RESOURCES)

        @self.server.read_resource()  # type: ignore
        async def handle_read_resource(uri: Any) -> str:
            return self.read_resource(str(uri))

        @self.server.list_prompts()  # type: ignore
        async def handle_list_prompts() -> list[types.Prompt]:
            return list_prompts()

        @self.server.get_prompt()  # type: ignore
        async def handle_get_prompt(
            name: str,
            arguments: dict[str, str] | None,
        ) -> types.GetPromptResult:
            return get_prompt(name, arguments, self._instance_url() or "")

    def _instance_url(self, headers: dict[str, str] | None = None) -> str | None:
        if headers is None:
            headers = self._request_headers()
        try:
            return self.factory.resolver.resolve(headers).base_url
        except MissingCredentials:
            return None

    def read_resource(self, uri: str, headers: dict[str, str] | None = None) -> str:
        """Return a resource as JSON text; unknown URIs raise ``ValueError``."""
        return render_resource(uri, self._instance_url(headers))

    def list_tools(self) -> list[types.Tool]:
        annotations = types.ToolAnnotations(readOnlyHint=True, openWorldHint=True)
        return [
            types.Tool(
                name=spec.name,
                description=spec.description,
                inputSchema=spec.input_schema(),
                annotations=annotations,
            )
            for spec in CATALOG
        ]

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Execute one catalog tool, raising :class:`ToolCallError` on failure."""
        spec = TOOLS_BY_NAME.get(name)
        if spec is None:
            raise ToolCallError({"status": "error", "error": f"Unknown tool: {name}"})

        if headers is None:
            headers = self._request_headers()

        try:
            async with self._gateway(headers) as gateway:
                return await execute_tool(spec, gateway, arguments)
        except ApiError as exc:
            logger.warning("API error in %s: %s", name, exc.render())
            raise ToolCallError(exc.to_dict()) from exc
        except MissingCredentials as exc:
            raise ToolCallError(
                {"status": "unauthorized", "error": exc.message}
            ) from exc
        except InvalidDestination as exc:
            raise ToolCallError(
                {"status": "invalid_destination", "error": exc.message}
            ) from exc
        except ValueError as exc:
            raise ToolCallError({"status": "invalid_parameter", "error": str(exc)}) from exc
        except httpx.HTTPError as exc:
            logger.warning("Connection error in %s: %s", name, exc)
            raise ToolCallError(
                {"status": "error", "error": f"Cannot reach Daktela instance: {exc}"}
            ) from exc
        except Exception as exc:
            logger.exception("Error executing %s", name)
            raise ToolCallError({"status": "error", "error": str(exc)}) from exc

    def _request_headers(self) -> dict[str, str] | None:
        try:
            ctx = self.server.request_context
        except LookupError:
            return None
        request = getattr(ctx, "request", None)
        request_headers = getattr(request, "headers", None)
        if not request_headers:
            return None
        return {str(key).lower(): str(value) for key, value in request_headers.items()}

    @contextlib.asynccontextmanager
    async def _gateway(self, headers: dict[str, str] | None) -> AsyncIterator[ApiGateway]:
        if self.per_request_sessions:
            gateway = await self.factory.open(headers)
            try:
                yield gateway
            finally:
                await gateway.aclose()
            return

        # One session per process; calls take turns on it.
        async with self._shared_lock:
            if self._shared_gateway is None:
                self._shared_gateway = await self.factory.open(None)
            yield self._shared_gateway

    async def health(self) -> tuple[int, dict[str, Any]]:
        """Return ``(status_code, body)`` for the HTTP health endpoint."""
        try:
            config = self.factory.resolver.resolve()
        except MissingCredentials:
            return 200, {
                "status": "ok",
                "authenticated": False,
                "message": "Server running, but no credentials configured for health check.",
            }

        try:
            gateway = await self.factory.open(None)
            try:
                whoami = await gateway.whoami()
            finally:
                await gateway.aclose()
        except (ApiError, InvalidDestination) as exc:
            message = exc.render() if isinstance(exc, ApiError) else exc.message
            return 503, {
                "status": "error",
                "authenticated": False,
                "message": f"Cannot connect to Daktela instance: {message}",
            }
        except Exception as exc:
            logger.exception("Health check failed")
            return 503, {
                "status": "error",
                "authenticated": False,
                "message": f"Cannot connect to Daktela instance: {exc}",
            }

        if whoami is None:
            return 503, {
                "status": "error",
                "authenticated": False,
                "message": "Cannot connect to Daktela instance: whoami returned no user",
            }
        return 200, {
            "status": "ok",
            "authenticated": True,
            "instance": config.base_url,
            "user": reference_label(whoami) or "unknown",
        }

    def build_http_app(self, cors_origin: str | None = None) -> Starlette:
        """Starlette app serving streamable HTTP MCP on ``/mcp`` plus ``/health``."""
        session_manager = StreamableHTTPSessionManager(
            app=self.server,
            json_response=True,
            stateless=True,
        )

        async def handle_mcp(scope: Scope, receive: Receive, send: Send) -> None:
            await session_manager.handle_request(scope, receive, send)

        async def handle_health(_request: Request) -> JSONResponse:
            status_code, body = await self.health()
            return JSONResponse(body, status_code=status_code)

        @contextlib.asynccontextmanager
        async def lifespan(_app: Starlette) -> AsyncIterator[None]:
            async with session_manager.run():
                yield
            await self.close()

        origin = cors_origin or os.environ.get("CORS_ORIGIN") or "*"
        return Starlette(
            routes=[
                Route("/health", handle_health, methods=["GET"]),
                Route("/mcp", _ASGIEndpoint(handle_mcp)),
            ],
            middleware=[
                Middleware(
                    CORSMiddleware,
                    allow_origins=[origin],
                    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
                    allow_headers=CORS_ALLOW_HEADERS,
                    expose_headers=["Mcp-Session-Id"],
                    max_age=86400,
                )
            ],
            lifespan=lifespan,
        )

    async def run_stdio(self) -> None:
        async with mcp_stdio.stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
            )

    async def close(self) -> None:
        if self._shared_gateway is not None:
            await self._shared_gateway.aclose()
            self._shared_gateway = None


class _ASGIEndpoint:
    """Wrap a bare ASGI callable so Starlette routes it without a Request."""

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.app(scope, receive, send)


def run_mcp_server(
    transport: str = "stdio",
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:
    """Run the Daktela MCP server on stdio or streamable HTTP."""
    if transport == "http":
        import uvicorn

        server = DaktelaMCPServer(per_request_sessions=True)
        uvicorn.run(server.build_http_app(), host=host, port=port, log_level="warning")
        return

    server = DaktelaMCPServer()

    async def main() -> None:
        try:
            await server.run_stdio()
        finally:
            await server.close()

    asyncio.run(main())
