"""Shared test fixtures for the daktela-mcp test suite."""

from __future__ import annotations

import pytest

from daktela_mcp.core.auth.resolver import CredentialResolver
from daktela_mcp.core.auth.session import SessionManager
from daktela_mcp.core.cache import ReferenceDataCache
from daktela_mcp.core.gateway import ApiGateway, GatewayFactory
from daktela_mcp.models.config import CachePolicy, ConnectionConfig
from tests.helpers import BASE_URL, FakeDaktela, allow_all


async def _no_sleep(_delay: float) -> None:
    return None


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def daktela() -> FakeDaktela:
    return FakeDaktela()


@pytest.fixture
def password_config() -> ConnectionConfig:
    return ConnectionConfig(base_url=BASE_URL, username="api", password="secret")


@pytest.fixture
def token_config() -> ConnectionConfig:
    return ConnectionConfig(base_url=BASE_URL, access_token="tok-1")


@pytest.fixture
def cache() -> ReferenceDataCache:
    return ReferenceDataCache(CachePolicy())


@pytest.fixture
def env() -> dict[str, str]:
    return {
        "DAKTELA_URL": BASE_URL,
        "DAKTELA_USERNAME": "api",
        "DAKTELA_PASSWORD": "secret",
    }


@pytest.fixture
def factory(daktela: FakeDaktela, cache: ReferenceDataCache, env: dict[str, str]) -> GatewayFactory:
    return GatewayFactory(
        CredentialResolver(env),
        cache,
        transport=daktela.transport,
        validator=allow_all,
    )


def make_gateway(
    daktela: FakeDaktela,
    config: ConnectionConfig,
    cache: ReferenceDataCache | None = None,
    **session_kwargs: object,
) -> ApiGateway:
    """Build a gateway over the fake API without the factory.

    Import directly: ``from tests.conftest import make_gateway``.
    """
    session = SessionManager(config, transport=daktela.transport, **session_kwargs)
    return ApiGateway(session, cache, sleeper=_no_sleep)
