"""Serve command implementation."""

from __future__ import annotations

import click

from daktela_mcp.core.auth.resolver import CredentialResolver, MissingCredentials


def run_serve(transport: str, host: str, port: int, verbose: bool) -> None:
    """Run the MCP server on the chosen transport."""
    from daktela_mcp.mcp.server import run_mcp_server

    if transport == "stdio":
        # Over stdio the environment is the only credential source.
        try:
            config = CredentialResolver().resolve()
        except MissingCredentials as exc:
            click.echo(f"Warning: {exc.message}", err=True)
        else:
            if verbose:
                click.echo(f"Daktela instance: {config.base_url}", err=True)

    if verbose:
        click.echo("Starting Daktela MCP server...", err=True)
        click.echo(f"  Transport: {transport}", err=True)
        if transport == "http":
            click.echo(f"  Listening on http://{host}:{port}/mcp", err=True)

    run_mcp_server(transport=transport, host=host, port=port)
