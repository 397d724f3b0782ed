"""
SQLite storage backend implementation.

This module provides a SQLite-based implementation of the typed graph
store interface, one database file per named store.
"""

from .sqlite_store import SqliteGraphStore

__all__ = ["SqliteGraphStore"]
