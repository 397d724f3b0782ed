"""
Data model for graph migration: schema types and instance records.
"""

from .schema_types import (
    Category,
    ValueKind,
    TypeNode,
    RuleDefinition,
    UnsupportedValueKindError,
)
from .records import (
    RelationRecord,
    OwnershipRecord,
    RelationState,
    PendingRelation,
    PendingOwnership,
    InstanceCounts,
)

__all__ = [
    "Category",
    "ValueKind",
    "TypeNode",
    "RuleDefinition",
    "UnsupportedValueKindError",
    "RelationRecord",
    "OwnershipRecord",
    "RelationState",
    "PendingRelation",
    "PendingOwnership",
    "InstanceCounts",
]
