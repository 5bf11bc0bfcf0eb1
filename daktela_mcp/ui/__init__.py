"""Terminal output helpers. All output goes to stderr."""

from __future__ import annotations

from daktela_mcp.ui.console import err_console

__all__ = ["err_console"]
