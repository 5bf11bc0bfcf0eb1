"""Shared Rich console for human-facing CLI output.

Everything goes to stderr; stdout carries MCP JSON-RPC or config snippets.
"""

from __future__ import annotations

from rich.console import Console
from rich.theme import Theme

DAKTELA_THEME = Theme(
    {
        "info": "cyan",
        "success": "bold green",
        "warning": "bold yellow",
        "error": "bold red",
        "heading": "bold cyan",
        "muted": "dim",
    }
)

err_console = Console(stderr=True, theme=DAKTELA_THEME)
