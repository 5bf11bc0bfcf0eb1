"""Connection and cache configuration models."""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 3600.0

# Values of CACHE_ENABLED that switch the cache off (compared lowercased).
CACHE_DISABLED_VALUES = frozenset({"false", "0", "no"})


class ConnectionConfig(BaseModel):
    """A fully specified connection to one Daktela instance.

    Exactly one authentication mode is populated: either a pre-issued
    ``access_token`` or a ``username`` + ``password`` pair.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str
    access_token: str | None = Field(default=None, repr=False)
    username: str | None = None
    password: str | None = Field(default=None, repr=False)

    @field_validator("base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("base_url must not be empty")
        return normalized

    @model_validator(mode="after")
    def _exactly_one_auth_mode(self) -> ConnectionConfig:
        has_token = bool(self.access_token)
        has_username = bool(self.username)
        has_password = bool(self.password)

        if has_username != has_password:
            raise ValueError("username and password must be supplied together")
        if has_token and has_username:
            raise ValueError(
                "Supply either an access token or username/password, not both"
            )
        if not has_token and not has_username:
            raise ValueError(
                "An access token or a username/password pair is required"
            )
        return self

    @property
    def uses_password_login(self) -> bool:
        return bool(self.username)

    @property
    def identity_key(self) -> str:
        """Per-tenant key: destination plus the credential identity."""
        return f"{self.base_url}|{self.username or self.access_token}"


class CachePolicy(BaseModel):
    """Reference data cache switches."""

    enabled: bool = True
    ttl_seconds: float = Field(default=DEFAULT_CACHE_TTL_SECONDS, ge=0)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CachePolicy:
        """Read ``CACHE_ENABLED`` and ``CACHE_TTL_SECONDS``."""
        env = os.environ if environ is None else environ

        enabled = env.get("CACHE_ENABLED", "true").strip().lower() not in CACHE_DISABLED_VALUES

        ttl = DEFAULT_CACHE_TTL_SECONDS
        raw_ttl = env.get("CACHE_TTL_SECONDS")
        if raw_ttl is not None and raw_ttl.strip():
            try:
                ttl = float(raw_ttl)
            except ValueError:
                logger.warning(
                    "Ignoring invalid CACHE_TTL_SECONDS=%r, using %s",
                    raw_ttl,
                    DEFAULT_CACHE_TTL_SECONDS,
                )
            else:
                if not math.isfinite(ttl) or ttl < 0:
                    logger.warning(
                        "Ignoring out-of-range CACHE_TTL_SECONDS=%r, using %s",
                        raw_ttl,
                        DEFAULT_CACHE_TTL_SECONDS,
                    )
                    ttl = DEFAULT_CACHE_TTL_SECONDS

        return cls(enabled=enabled, ttl_seconds=ttl)
