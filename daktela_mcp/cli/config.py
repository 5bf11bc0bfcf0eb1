"""Config snippet command implementation."""

from __future__ import annotations

import sys

import click

from daktela_mcp.utils.config import build_mcp_config_payload, render_config_payload


def run_config(fmt: str, *, server_name: str, use_token: bool = False) -> None:
    """Emit an MCP client config snippet."""
    payload = build_mcp_config_payload(server_name=server_name, use_token=use_token)
    try:
        rendered = render_config_payload(payload, fmt)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    click.echo(rendered)
