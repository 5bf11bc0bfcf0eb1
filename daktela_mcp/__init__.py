"""Read-only MCP server for the Daktela contact center REST API v6."""

__version__ = "0.4.0"
