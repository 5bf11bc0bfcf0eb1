"""MCP server and read-only tool catalog."""

from __future__ import annotations

from daktela_mcp.mcp.catalog import CATALOG, TOOLS_BY_NAME, ToolKind, ToolSpec, execute_tool
from daktela_mcp.mcp.server import DaktelaMCPServer, ToolCallError, run_mcp_server

__all__ = [
    "CATALOG",
    "TOOLS_BY_NAME",
    "DaktelaMCPServer",
    "ToolCallError",
    "ToolKind",
    "ToolSpec",
    "execute_tool",
    "run_mcp_server",
]
