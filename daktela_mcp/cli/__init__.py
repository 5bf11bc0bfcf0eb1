"""Command-line interface for daktela-mcp."""
