"""API gateway: authenticated, cache-aware reads against the Daktela REST API.

:class:`ApiGateway` is the only component that talks to the list and
single-record endpoints. It makes sure the session is valid, serves
eligible reference listings from :class:`ReferenceDataCache`, retries
transient provider errors a bounded number of times, and maps every other
failure to :class:`ApiError`.

:class:`GatewayFactory` is the composition root used by the MCP server:
resolve credentials, validate the destination, open a session, wrap it in
a gateway that shares the process-wide cache.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any
from urllib.parse import quote

import httpx

from daktela_mcp.core.auth.resolver import CredentialResolver
from daktela_mcp.core.auth.session import SessionManager
from daktela_mcp.core.cache import ReferenceDataCache
from daktela_mcp.core.network_safety import validate_destination
from daktela_mcp.models.records import ListPage, to_native

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v6"

TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})
DEFAULT_MAX_RETRIES = 3
RETRY_BASE_DELAY_SECONDS = 0.5
RETRY_MAX_DELAY_SECONDS = 10.0

# (field, operator, value); value may be a list for "in"-style operators.
FieldFilter = tuple[str, str, str | list[str]]


def error_hint(http_status: int | None, endpoint: str) -> str:
    """Return an actionable hint for a failed API call ('' when none applies)."""
    if http_status == 401:
        return (
            "Authentication failed. Check that DAKTELA_USERNAME/DAKTELA_PASSWORD "
            "or DAKTELA_ACCESS_TOKEN are correct."
        )
    if http_status == 403:
        return (
            f"Access denied to '{endpoint}'. The configured user may lack read "
            "permission for this resource in Daktela admin."
        )
    if http_status == 404:
        return (
            f"The endpoint '{endpoint}' was not found. This may indicate an "
            "unsupported Daktela version or misconfigured URL."
        )
    if http_status == 429:
        return (
            "Rate limit exceeded. Wait a moment and retry with a smaller page "
            "size (lower 'take' value)."
        )
    if http_status in (500, 502, 503, 504):
        return (
            "Daktela server error. The instance may be temporarily unavailable. "
            "Try again shortly."
        )
    return ""


class ApiError(Exception):
    """A remote call failed at the transport or protocol level."""

    def __init__(self, endpoint: str, http_status: int | None, message: str) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.http_status = http_status
        self.message = message

    @property
    def hint(self) -> str:
        return error_hint(self.http_status, self.endpoint)

    def render(self) -> str:
        status = f" (HTTP {self.http_status})" if self.http_status is not None else ""
        text = f"API error{status}: {self.message} [endpoint: {self.endpoint}]"
        if self.hint:
            text += f"\nHint: {self.hint}"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "error",
            "error": self.message,
            "endpoint": self.endpoint,
            "http_status": self.http_status,
            "hint": self.hint or None,
        }


def build_query_params(
    *,
    skip: int,
    take: int,
    field_filters: Sequence[FieldFilter] | None = None,
    sort: str | None = None,
    sort_dir: str = "desc",
    fields: Sequence[str] | None = None,
    search: str | None = None,
) -> list[tuple[str, str]]:
    """Encode a list query in the v6 REST bracket notation."""
    params: list[tuple[str, str]] = [("skip", str(skip)), ("take", str(take))]

    if field_filters:
        params.append(("filter[logic]", "and"))
        for index, (field, operator, value) in enumerate(field_filters):
            prefix = f"filter[filters][{index}]"
            params.append((f"{prefix}[field]", field))
            params.append((f"{prefix}[operator]", operator))
            if isinstance(value, (list, tuple)):
                params.extend((f"{prefix}[value][]", str(item)) for item in value)
                continue
            if operator == "like" and "%" not in value:
                value = f"%{value}%"
            params.append((f"{prefix}[value]", value))

    if sort:
        params.append(("sort[0][field]", sort))
        params.append(("sort[0][dir]", sort_dir))

    if fields:
        params.extend((f"fields[{index}]", field) for index, field in enumerate(fields))

    if search:
        params.append(("q", search))

    return params


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str) and error:
            return error
        if isinstance(error, list) and error:
            return "; ".join(str(item) for item in error)
        if isinstance(error, dict) and error:
            return "; ".join(f"{key}: {value}" for key, value in error.items())
    return response.reason_phrase or f"HTTP {response.status_code}"


def _retry_delay(response: httpx.Response | None, attempt: int) -> float:
    if response is not None:
        retry_after = response.headers.get("Retry-After", "")
        if retry_after.isdigit():
            return min(float(retry_after), RETRY_MAX_DELAY_SECONDS)
    return min(RETRY_BASE_DELAY_SECONDS * (2**attempt), RETRY_MAX_DELAY_SECONDS)


class ApiGateway:
    """Read-only facade over one authenticated session."""

    def __init__(
        self,
        session: SessionManager,
        cache: ReferenceDataCache | None = None,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self.cache = cache
        self.max_retries = max_retries
        self._sleep = sleeper

    async def __aenter__(self) -> ApiGateway:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def base_url(self) -> str:
        return self.session.config.base_url

    @property
    def identity_key(self) -> str:
        return self.session.config.identity_key

    async def aclose(self) -> None:
        await self.session.aclose()

    async def list(
        self,
        endpoint: str,
        field_filters: Sequence[FieldFilter] | None = None,
        skip: int = 0,
        take: int = 100,
        sort: str | None = None,
        sort_dir: str = "desc",
        fields: Sequence[str] | None = None,
        search: str | None = None,
    ) -> ListPage:
        """Fetch one page of *endpoint*."""
        await self.session.ensure_session()

        cacheable = (
            self.cache is not None and not field_filters and not search and not fields
        )
        if cacheable:
            cached = self.cache.get(self.identity_key, endpoint, skip, take, sort, sort_dir)
            if cached is not None:
                logger.debug("Cache hit for %s (skip=%s, take=%s)", endpoint, skip, take)
                return cached

        params = build_query_params(
            skip=skip,
            take=take,
            field_filters=field_filters,
            sort=sort,
            sort_dir=sort_dir,
            fields=fields,
            search=search,
        )
        response = await self._request(endpoint, f"{API_PREFIX}/{endpoint}.json", params)
        if response.status_code >= 400:
            raise ApiError(endpoint, response.status_code, _error_message(response))

        result = self._result(endpoint, response)
        page = self._page(result)

        if cacheable:
            self.cache.put(self.identity_key, endpoint, skip, take, sort, sort_dir, page)
        return page

    async def get(self, endpoint: str, name: str) -> dict[str, Any] | None:
        """Fetch a single record, returning None when it does not exist."""
        await self.session.ensure_session()

        path = f"{API_PREFIX}/{endpoint}/{quote(name, safe='')}.json"
        return await self._get_record(endpoint, path)

    async def whoami(self) -> dict[str, Any] | None:
        """Return the user record behind the current session."""
        await self.session.ensure_session()
        return await self._get_record("whoami", f"{API_PREFIX}/whoami.json")

    async def _get_record(self, endpoint: str, path: str) -> dict[str, Any] | None:
        response = await self._request(endpoint, path, None)
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise ApiError(endpoint, response.status_code, _error_message(response))

        result = self._result(endpoint, response)
        if not isinstance(result, Mapping) or not result:
            return None
        return to_native(result)

    async def _request(
        self,
        endpoint: str,
        path: str,
        params: list[tuple[str, str]] | None,
    ) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self.session.client.get(path, params=params)
            except httpx.TransportError as exc:
                if attempt >= self.max_retries:
                    raise ApiError(endpoint, None, str(exc) or type(exc).__name__) from exc
                logger.warning(
                    "Transport error on %s (attempt %s/%s): %s",
                    endpoint,
                    attempt + 1,
                    self.max_retries + 1,
                    exc,
                )
                await self._sleep(_retry_delay(None, attempt))
                attempt += 1
                continue
            except httpx.HTTPError as exc:
                raise ApiError(endpoint, None, str(exc) or type(exc).__name__) from exc

            if response.status_code in TRANSIENT_STATUSES and attempt < self.max_retries:
                logger.warning(
                    "HTTP %s from %s (attempt %s/%s), retrying",
                    response.status_code,
                    endpoint,
                    attempt + 1,
                    self.max_retries + 1,
                )
                await self._sleep(_retry_delay(response, attempt))
                attempt += 1
                continue
            return response

    @staticmethod
    def _result(endpoint: str, response: httpx.Response) -> Any:
        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiError(
                endpoint, response.status_code, "Invalid JSON in API response"
            ) from exc
        if not isinstance(payload, Mapping):
            raise ApiError(endpoint, response.status_code, "Unexpected API response shape")
        return payload.get("result")

    @staticmethod
    def _page(result: Any) -> ListPage:
        if not isinstance(result, Mapping):
            return ListPage()

        data = to_native(result.get("data"))
        if isinstance(data, dict):
            data = list(data.values())
        if not isinstance(data, list):
            data = []
        records = [item if isinstance(item, dict) else {} for item in data]

        total = result.get("total")
        try:
            total = int(total)
        except (TypeError, ValueError):
            total = len(records)
        return ListPage(records=records, total=total)


class GatewayFactory:
    """Build per-request gateways that share one reference data cache."""

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        cache: ReferenceDataCache | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        validator: Callable[[str], None] = validate_destination,
    ) -> None:
        self.resolver = resolver or CredentialResolver()
        self.cache = cache
        self.transport = transport
        self.validator = validator

    async def open(self, headers: Mapping[str, str] | None = None) -> ApiGateway:
        """Resolve, validate and authenticate; the caller closes the gateway.

        Raises ``MissingCredentials`` or ``InvalidDestination`` before any
        request is sent.
        """
        config = self.resolver.resolve(headers)
        await asyncio.to_thread(self.validator, config.base_url)

        session = SessionManager(config, transport=self.transport)
        try:
            await session.ensure_session()
        except BaseException:
            await session.aclose()
            raise
        return ApiGateway(session, self.cache)
