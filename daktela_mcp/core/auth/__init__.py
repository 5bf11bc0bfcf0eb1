"""Credential resolution and session lifecycle."""

from daktela_mcp.core.auth.resolver import CredentialResolver, MissingCredentials
from daktela_mcp.core.auth.session import SessionManager, SessionState

__all__ = [
    "CredentialResolver",
    "MissingCredentials",
    "SessionManager",
    "SessionState",
]
