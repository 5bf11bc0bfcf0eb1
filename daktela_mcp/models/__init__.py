"""Pydantic data models for daktela-mcp."""

from daktela_mcp.models.config import CachePolicy, ConnectionConfig
from daktela_mcp.models.records import (
    Embedded,
    Identifier,
    ListPage,
    Reference,
    parse_reference,
    reference_id,
    reference_label,
    to_native,
)

__all__ = [
    # Config
    "CachePolicy",
    "ConnectionConfig",
    # Records
    "Embedded",
    "Identifier",
    "ListPage",
    "Reference",
    "parse_reference",
    "reference_id",
    "reference_label",
    "to_native",
]
