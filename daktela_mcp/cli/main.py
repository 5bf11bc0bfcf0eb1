"""Main CLI entry point for daktela-mcp."""

from __future__ import annotations

import logging

import click

from daktela_mcp import __version__

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(verbose: bool) -> None:
    # stdout belongs to the MCP channel; logs always go to stderr.
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )


@click.group()
@click.version_option(version=__version__, prog_name="daktela-mcp")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Read-only MCP server for the Daktela contact center API."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)


@cli.command()
@click.option(
    "--transport",
    type=click.Choice(["stdio", "http"]),
    default="stdio",
    show_default=True,
    help="stdio for local MCP clients, http for the streamable HTTP endpoint",
)
@click.option("--host", default="127.0.0.1", show_default=True, help="HTTP bind address")
@click.option("--port", type=int, default=8000, show_default=True, help="HTTP port")
@click.pass_context
def serve(ctx: click.Context, transport: str, host: str, port: int) -> None:
    """Start the MCP server.

    \b
    Credentials come from DAKTELA_URL plus DAKTELA_USERNAME/DAKTELA_PASSWORD
    or DAKTELA_ACCESS_TOKEN. Over HTTP, X-Daktela-* request headers take
    precedence per request.
    """
    from daktela_mcp.cli.serve import run_serve

    run_serve(
        transport=transport,
        host=host,
        port=port,
        verbose=ctx.obj.get("verbose", False),
    )


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Verify the configured instance is reachable and the credentials work."""
    from daktela_mcp.cli.check import run_check

    run_check(verbose=ctx.obj.get("verbose", False))


@cli.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["json", "yaml", "codex"]),
    default="json",
    show_default=True,
    help="Snippet format (codex emits TOML)",
)
@click.option("--name", "server_name", default="daktela", show_default=True, help="MCP server name")
@click.option("--token", "use_token", is_flag=True, help="Use an access token placeholder instead of username/password")
def config(fmt: str, server_name: str, use_token: bool) -> None:
    """Print an MCP client configuration snippet."""
    from daktela_mcp.cli.config import run_config

    run_config(fmt, server_name=server_name, use_token=use_token)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
