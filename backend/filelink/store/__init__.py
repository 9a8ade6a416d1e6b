"""Relational store module: the contract and its DuckDB implementation."""

from .base import Comparison, InList, NotInSubquery, RelationalStore, Where
from .duckdb_store import DuckDBStore, quote_identifier

__all__ = [
    "Comparison",
    "InList",
    "NotInSubquery",
    "RelationalStore",
    "Where",
    "DuckDBStore",
    "quote_identifier",
]
