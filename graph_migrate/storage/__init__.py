"""
Storage layer for graph migration.

This module provides the typed graph store interface and its concrete
backends, plus a factory that picks a backend by name.
"""

from .interfaces.typed_graph_store_interface import (
    TypedGraphStoreInterface,
    StoreError,
    UnknownTypeError,
    UnknownInstanceError,
    SchemaViolationError,
    TransactionError,
)
from .factory import create_store, list_available_backends, is_backend_available

__all__ = [
    "TypedGraphStoreInterface",
    "StoreError",
    "UnknownTypeError",
    "UnknownInstanceError",
    "SchemaViolationError",
    "TransactionError",
    "create_store",
    "list_available_backends",
    "is_backend_available",
]
