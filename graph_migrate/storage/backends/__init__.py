"""
Storage backend implementations for graph migration.

This module contains concrete implementations of storage backends
that implement the typed graph store interface.
"""

from .memory import MemoryGraphStore

__all__ = ["MemoryGraphStore"]

try:
    from .sqlite import SqliteGraphStore
    __all__.extend(["SqliteGraphStore"])
except ImportError:
    pass
