from .typed_graph_store_interface import (
    SourceStoreInterface,
    TargetStoreInterface,
    TypedGraphStoreInterface,
    StoreError,
    UnknownTypeError,
    UnknownInstanceError,
    SchemaViolationError,
    TransactionError,
)

__all__ = [
    "SourceStoreInterface",
    "TargetStoreInterface",
    "TypedGraphStoreInterface",
    "StoreError",
    "UnknownTypeError",
    "UnknownInstanceError",
    "SchemaViolationError",
    "TransactionError",
]
