"""
In-memory storage backend implementation.

This module provides a dictionary-backed implementation of the typed graph
store interface for testing and in-process migrations.
"""

from .memory_store import MemoryGraphStore

__all__ = ["MemoryGraphStore"]
