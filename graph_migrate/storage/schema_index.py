"""
In-process index over a store's schema.

Both backends keep their schema in a SchemaIndex: the memory backend as its
only copy, the SQLite backend as a cache of its schema tables. The index owns
every schema rule the stores enforce (parent existence, category and value-kind
agreement, and which roles and attributes a type may use), so the two backends
validate writes identically.
"""

from typing import Any, Dict, List, Optional, Set

from graph_migrate.model.schema_types import Category, RuleDefinition, TypeNode, ValueKind
from graph_migrate.storage.interfaces.typed_graph_store_interface import (
    SchemaViolationError,
    UnknownTypeError,
)


class SchemaIndex:
    """Type hierarchy plus relates/plays/has declarations and rules."""

    def __init__(self):
        self.types: Dict[str, TypeNode] = {}
        self.relates: Dict[str, Set[str]] = {}
        self.plays: Dict[str, Set[str]] = {}
        self.owns: Dict[str, Set[str]] = {}
        self.rules: Dict[str, RuleDefinition] = {}
        for category in Category:
            self.types[category.value] = TypeNode(
                label=category.value, category=category, parent=None, abstract=True
            )

    # Lookups
    def get(self, label: str) -> Optional[TypeNode]:
        return self.types.get(label)

    def require(self, label: str) -> TypeNode:
        node = self.types.get(label)
        if node is None:
            raise UnknownTypeError(f"Unknown type: {label}")
        return node

    def ancestors(self, label: str) -> List[str]:
        """The label itself followed by each supertype up to the category root."""
        chain = []
        current = self.types.get(label)
        while current is not None:
            chain.append(current.label)
            current = self.types.get(current.parent) if current.parent else None
        return chain

    def direct_subtypes(self, label: str) -> List[TypeNode]:
        self.require(label)
        return [
            node
            for node in self.types.values()
            if node.parent == label and not node.implicit
        ]

    def concrete_types(self, category: Category) -> List[str]:
        return [
            node.label
            for node in self.types.values()
            if node.category == category
            and not node.is_root
            and not node.abstract
            and not node.implicit
        ]

    # Schema declaration checks
    def build_type(
        self,
        label: str,
        category: Category,
        parent: str,
        value_kind: Optional[ValueKind] = None,
    ) -> Optional[TypeNode]:
        """
        Validate a type declaration.

        Returns:
            The node to insert, or None if an identical declaration exists

        Raises:
            UnknownTypeError: If the parent is not defined yet
            SchemaViolationError: On any category or value-kind mismatch
        """
        if label in Category.root_labels():
            raise SchemaViolationError(f"Cannot redefine category root: {label}")

        parent_node = self.types.get(parent)
        if parent_node is None:
            raise UnknownTypeError(f"Parent type '{parent}' of '{label}' is not defined")
        if parent_node.category != category:
            raise SchemaViolationError(
                f"Type '{label}' of category {category.value} cannot sub "
                f"'{parent}' of category {parent_node.category.value}"
            )

        if category == Category.ATTRIBUTE:
            if value_kind is None:
                raise SchemaViolationError(f"Attribute type '{label}' requires a value kind")
            if not parent_node.is_root and parent_node.value_kind != value_kind:
                raise SchemaViolationError(
                    f"Attribute type '{label}' ({value_kind.value}) cannot sub "
                    f"'{parent}' ({parent_node.value_kind.value})"
                )
        elif value_kind is not None:
            raise SchemaViolationError(f"Only attribute types carry a value kind, not '{label}'")

        existing = self.types.get(label)
        if existing is not None:
            if (
                existing.category == category
                and existing.parent == parent
                and existing.value_kind == value_kind
            ):
                return None
            raise SchemaViolationError(f"Type '{label}' is already defined differently")

        return TypeNode(label=label, category=category, parent=parent, value_kind=value_kind)

    def check_relates(self, relation_label: str, role_label: str) -> None:
        relation = self.require(relation_label)
        role = self.require(role_label)
        if relation.category != Category.RELATION or relation.is_root:
            raise SchemaViolationError(f"'{relation_label}' is not a relation type")
        if role.category != Category.ROLE or role.is_root:
            raise SchemaViolationError(f"'{role_label}' is not a role")

    def check_plays(self, player_label: str, role_label: str) -> None:
        player = self.require(player_label)
        role = self.require(role_label)
        if player.category == Category.ROLE or player.is_root:
            raise SchemaViolationError(f"'{player_label}' cannot play roles")
        if role.category != Category.ROLE or role.is_root:
            raise SchemaViolationError(f"'{role_label}' is not a role")

    def check_has(self, owner_label: str, attribute_label: str) -> None:
        owner = self.require(owner_label)
        attribute = self.require(attribute_label)
        if owner.category == Category.ROLE or owner.is_root:
            raise SchemaViolationError(f"'{owner_label}' cannot own attributes")
        if attribute.category != Category.ATTRIBUTE or attribute.is_root:
            raise SchemaViolationError(f"'{attribute_label}' is not an attribute type")

    # Instance-level checks
    def check_instantiable(self, type_label: str, *categories: Category) -> TypeNode:
        node = self.require(type_label)
        if node.category not in categories:
            raise SchemaViolationError(
                f"Type '{type_label}' is a {node.category.value} type, "
                f"expected {'/'.join(c.value for c in categories)}"
            )
        if node.abstract or node.implicit:
            raise SchemaViolationError(f"Type '{type_label}' cannot have instances")
        return node

    def coerce_value(self, type_label: str, value: Any) -> Any:
        node = self.check_instantiable(type_label, Category.ATTRIBUTE)
        kind = node.value_kind
        if kind == ValueKind.FLOAT and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        if not kind.accepts(value):
            raise SchemaViolationError(
                f"Value {value!r} does not match value kind {kind.value} of '{type_label}'"
            )
        return value

    def relation_relates(self, relation_type: str, role_label: str) -> bool:
        return any(role_label in self.relates.get(label, ()) for label in self.ancestors(relation_type))

    def type_plays(self, player_type: str, role_label: str) -> bool:
        return any(role_label in self.plays.get(label, ()) for label in self.ancestors(player_type))

    def type_owns(self, owner_type: str, attribute_type: str) -> bool:
        attribute_chain = set(self.ancestors(attribute_type))
        for label in self.ancestors(owner_type):
            if self.owns.get(label, set()) & attribute_chain:
                return True
        return False

    def check_role_assignment(self, relation_type: str, role_label: str, player_type: str) -> None:
        role = self.require(role_label)
        if role.category != Category.ROLE:
            raise SchemaViolationError(f"'{role_label}' is not a role")
        if not self.relation_relates(relation_type, role_label):
            raise SchemaViolationError(f"Relation type '{relation_type}' does not relate '{role_label}'")
        if not self.type_plays(player_type, role_label):
            raise SchemaViolationError(f"Type '{player_type}' does not play '{role_label}'")

    def check_ownership(self, owner_type: str, attribute_type: str) -> None:
        if not self.type_owns(owner_type, attribute_type):
            raise SchemaViolationError(f"Type '{owner_type}' does not own '{attribute_type}'")
