"""Credential resolution from per-request headers or the environment.

Headers win when they carry a destination and a usable credential; anything
less falls back to the process environment. In both sources a
username/password pair takes precedence over an access token.

The resolver does not validate the destination. Callers pass the resolved
``base_url`` through :func:`daktela_mcp.core.network_safety.validate_destination`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from daktela_mcp.models.config import ConnectionConfig

HEADER_URL = "x-daktela-url"
HEADER_USERNAME = "x-daktela-username"
HEADER_PASSWORD = "x-daktela-password"
HEADER_ACCESS_TOKEN = "x-daktela-access-token"

ENV_URL = "DAKTELA_URL"
ENV_USERNAME = "DAKTELA_USERNAME"
ENV_PASSWORD = "DAKTELA_PASSWORD"
ENV_ACCESS_TOKEN = "DAKTELA_ACCESS_TOKEN"


class MissingCredentials(Exception):
    """No usable Daktela configuration could be assembled."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def _build_config(url: str, username: str, password: str, token: str) -> ConnectionConfig | None:
    if username and password:
        return ConnectionConfig(base_url=url, username=username, password=password)
    if token:
        return ConnectionConfig(base_url=url, access_token=token)
    return None


class CredentialResolver:
    """Produce a :class:`ConnectionConfig` from headers or environment."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def resolve(self, headers: Mapping[str, str] | None = None) -> ConnectionConfig:
        if headers:
            config = self.from_headers(headers)
            if config is not None:
                return config
        return self.from_environment()

    def from_headers(self, headers: Mapping[str, str]) -> ConnectionConfig | None:
        """Return a config from ``X-Daktela-*`` headers, or None if incomplete."""
        lowered = {str(key).lower(): str(value) for key, value in headers.items()}

        url = lowered.get(HEADER_URL, "").strip().rstrip("/")
        if not url:
            return None

        return _build_config(
            url,
            lowered.get(HEADER_USERNAME, "").strip(),
            lowered.get(HEADER_PASSWORD, ""),
            lowered.get(HEADER_ACCESS_TOKEN, "").strip(),
        )

    def from_environment(self) -> ConnectionConfig:
        env = self.environ

        url = env.get(ENV_URL, "").strip().rstrip("/")
        if not url:
            raise MissingCredentials(f"{ENV_URL} environment variable is required")

        config = _build_config(
            url,
            env.get(ENV_USERNAME, "").strip(),
            env.get(ENV_PASSWORD, ""),
            env.get(ENV_ACCESS_TOKEN, "").strip(),
        )
        if config is None:
            raise MissingCredentials(
                f"Either {ENV_USERNAME} + {ENV_PASSWORD} or {ENV_ACCESS_TOKEN} "
                "environment variables are required"
            )
        return config
