"""MCP client config snippet helpers."""

from __future__ import annotations

import json
import re
import shutil
import sys
from pathlib import Path
from typing import Any

import yaml

from daktela_mcp.core.auth.resolver import ENV_ACCESS_TOKEN, ENV_PASSWORD, ENV_URL, ENV_USERNAME

COMMAND_NAME = "daktela-mcp"

PLACEHOLDER_URL = "https://your-instance.daktela.com"


def _resolve_command() -> str:
    """Return an absolute ``daktela-mcp`` command path when possible.

    Desktop MCP clients often do not inherit the shell PATH (virtualenvs in
    particular), so an absolute path keeps the snippet paste-and-go.
    """
    argv0 = Path(sys.argv[0])
    if argv0.name == COMMAND_NAME:
        if argv0.exists():
            return str(argv0.resolve())

        discovered_self = shutil.which(argv0.name)
        if discovered_self:
            return discovered_self

    discovered = shutil.which(COMMAND_NAME)
    if discovered:
        return discovered

    return COMMAND_NAME


def build_mcp_config_payload(*, server_name: str, use_token: bool = False) -> dict[str, Any]:
    """Build a stdio config payload for MCP clients with credential placeholders."""
    env = {ENV_URL: PLACEHOLDER_URL}
    if use_token:
        env[ENV_ACCESS_TOKEN] = "<access-token>"
    else:
        env[ENV_USERNAME] = "<username>"
        env[ENV_PASSWORD] = "<password>"

    return {
        "mcpServers": {
            server_name: {
                "command": _resolve_command(),
                "args": ["serve"],
                "env": env,
            }
        }
    }


def _toml_key_segment(key: str) -> str:
    if re.fullmatch(r"[A-Za-z0-9_-]+", key):
        return key
    return json.dumps(key)


def _toml_quote(value: str) -> str:
    return json.dumps(value)


def render_config_payload(payload: dict[str, Any], fmt: str) -> str:
    """Render config payload to json, yaml, or Codex TOML."""
    if fmt == "codex":
        servers = payload.get("mcpServers")
        if not isinstance(servers, dict) or not servers:
            raise ValueError("Invalid MCP config payload: missing mcpServers")

        stanzas: list[str] = []
        for server_name, server in servers.items():
            if not isinstance(server_name, str) or not isinstance(server, dict):
                continue
            command = server.get("command")
            args = server.get("args")
            if not isinstance(command, str) or not isinstance(args, list) or not all(
                isinstance(item, str) for item in args
            ):
                raise ValueError("Invalid MCP config payload: server missing command/args")

            section = f"mcp_servers.{_toml_key_segment(server_name)}"
            rendered_args = ", ".join(_toml_quote(item) for item in args)
            lines = [
                f"[{section}]",
                f"args = [{rendered_args}]",
                f"command = {_toml_quote(command)}",
                "enabled = true",
            ]

            env = server.get("env") or {}
            if env:
                lines.append("")
                lines.append(f"[{section}.env]")
                lines.extend(
                    f"{_toml_key_segment(key)} = {_toml_quote(str(value))}"
                    for key, value in env.items()
                )
            stanzas.append("\n".join(lines))

        return "\n\n".join(stanzas) + "\n"

    if fmt == "yaml":
        return yaml.safe_dump(payload, sort_keys=True)
    return json.dumps(payload, indent=2, sort_keys=True)
