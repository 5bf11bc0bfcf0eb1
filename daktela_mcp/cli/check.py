"""Connectivity check command implementation."""

from __future__ import annotations

import asyncio
import sys
from typing import Any, NoReturn

import httpx
from rich.markup import escape

from daktela_mcp.core.auth.resolver import CredentialResolver, MissingCredentials
from daktela_mcp.core.gateway import ApiError, GatewayFactory
from daktela_mcp.core.network_safety import InvalidDestination
from daktela_mcp.models.records import reference_id, reference_label
from daktela_mcp.ui.console import err_console


def _fail(message: str) -> NoReturn:
    err_console.print(f"[error]Error:[/error] {escape(message)}")
    sys.exit(1)


async def _whoami(factory: GatewayFactory) -> dict[str, Any] | None:
    gateway = await factory.open(None)
    try:
        return await gateway.whoami()
    finally:
        await gateway.aclose()


def run_check(verbose: bool, factory: GatewayFactory | None = None) -> None:
    """Resolve environment credentials, log in and call whoami."""
    factory = factory or GatewayFactory(CredentialResolver())

    try:
        config = factory.resolver.resolve()
    except MissingCredentials as exc:
        _fail(exc.message)

    err_console.print(f"[heading]Daktela instance:[/heading] {escape(config.base_url)}")
    if verbose:
        mode = "username/password" if config.uses_password_login else "access token"
        err_console.print(f"[muted]Authentication: {mode}[/muted]")

    try:
        whoami = asyncio.run(_whoami(factory))
    except InvalidDestination as exc:
        _fail(exc.message)
    except ApiError as exc:
        _fail(exc.render())
    except httpx.HTTPError as exc:
        _fail(f"Cannot reach {config.base_url}: {exc}")

    if whoami is None:
        _fail("Login did not produce a valid session. Check the configured credentials.")

    err_console.print(
        f"[success]Connected[/success] as {escape(reference_label(whoami))} "
        f"[muted]({escape(reference_id(whoami))})[/muted]"
    )
