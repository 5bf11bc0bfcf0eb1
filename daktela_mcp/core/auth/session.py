"""Token lifecycle for one Daktela connection.

A :class:`SessionManager` is bound to exactly one :class:`ConnectionConfig`
and owns the mutable :class:`SessionState` for it. Instances are not safe to
share between concurrently running requests; build one per request (or per
stdio process) instead.

States::

    unauthenticated --login--> authenticated --expiry--> refresh
                                    ^                      |
                                    +------ login <--------+ (refresh failed)

A session built from a pre-issued access token is never refreshed
(``expires_at == 0``).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from daktela_mcp.models.config import ConnectionConfig

logger = logging.getLogger(__name__)

LOGIN_PATH = "/api/v6/login.json"
AUTH_HEADER = "X-AUTH-TOKEN"

TOKEN_LIFETIME_SECONDS = 3600
EXPIRY_SAFETY_MARGIN_SECONDS = 60

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass
class SessionState:
    """Mutable authentication state of one session."""

    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: float = 0.0

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None


def _login_result(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    if not isinstance(payload, dict):
        return {}
    result = payload.get("result")
    return result if isinstance(result, dict) else {}


def _token(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


class SessionManager:
    """Login, refresh and the authenticated HTTP client for one configuration."""

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.config = config
        self.state = SessionState(access_token=config.access_token)
        self._transport = transport
        self._clock = clock
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SessionManager:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def is_managed(self) -> bool:
        """False when the session runs on a pre-issued access token."""
        return self.config.uses_password_login

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def is_expired(self) -> bool:
        expires_at = self.state.expires_at
        return expires_at > 0 and self._clock() >= expires_at

    async def ensure_session(self) -> None:
        """Make sure a usable token is held, logging in or refreshing as needed."""
        if not self.is_managed:
            if self._client is None:
                self._client = self._build_client()
            return

        if self.state.access_token is None:
            await self.login()
        elif self.is_expired():
            logger.info("Token expired, refreshing (url=%s)", self.config.base_url)
            if self.state.refresh_token is not None:
                await self.refresh()
            else:
                await self.login()
        elif self._client is None:
            self._client = self._build_client()

    async def login(self) -> None:
        """Exchange username/password for tokens.

        A response without an access token leaves the session
        unauthenticated and is only logged; the next API call then fails
        with HTTP 401. Transport errors propagate.
        """
        response = await self._auth_request(
            "POST",
            {"username": self.config.username, "password": self.config.password},
        )

        result = _login_result(response)
        token = _token(result.get("accessToken"))
        if token is None:
            self.state = SessionState()
            logger.warning(
                "Login failed, no access token received (url=%s, user=%s, status=%s)",
                self.config.base_url,
                self.config.username,
                response.status_code,
            )
        else:
            self.state = SessionState(
                access_token=token,
                refresh_token=_token(result.get("refreshToken")),
                expires_at=self._next_expiry(),
            )
            logger.info(
                "Login successful (url=%s, user=%s)",
                self.config.base_url,
                self.config.username,
            )
        await self._rebuild_client()

    async def refresh(self) -> None:
        """Trade the refresh token for a new access token, else log in again."""
        response = await self._auth_request("PUT", {"refreshToken": self.state.refresh_token})

        if response.status_code != 200:
            logger.info(
                "Token refresh failed with HTTP %s, falling back to re-login (url=%s)",
                response.status_code,
                self.config.base_url,
            )
            await self.login()
            return

        result = _login_result(response)
        self.state = SessionState(
            access_token=_token(result.get("accessToken")) or self.state.access_token,
            refresh_token=_token(result.get("refreshToken")) or self.state.refresh_token,
            expires_at=self._next_expiry(),
        )
        logger.info("Token refreshed successfully (url=%s)", self.config.base_url)
        await self._rebuild_client()

    async def aclose(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            if self._transport is None:
                await client.aclose()

    def _next_expiry(self) -> float:
        return self._clock() + TOKEN_LIFETIME_SECONDS - EXPIRY_SAFETY_MARGIN_SECONDS

    def _make_transport(self) -> httpx.AsyncBaseTransport:
        if self._transport is not None:
            return self._transport
        # No connection retries here; ApiGateway owns the retry budget.
        return httpx.AsyncHTTPTransport()

    async def _auth_request(self, method: str, body: dict[str, Any]) -> httpx.Response:
        http = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self._timeout,
            transport=self._make_transport(),
        )
        try:
            return await http.request(method, LOGIN_PATH, json=body)
        finally:
            if self._transport is None:
                await http.aclose()

    def _build_client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.state.access_token:
            headers[AUTH_HEADER] = self.state.access_token
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._make_transport(),
        )

    async def _rebuild_client(self) -> None:
        await self.aclose()
        self._client = self._build_client()
