"""
Abstract interface for typed property-graph stores.

This module defines the contract the migration tooling relies on. The source
side covers schema and instance enumeration; the target side covers schema
declaration and instance creation, where the store always mints identifiers.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from graph_migrate.model.schema_types import Category, RuleDefinition, TypeNode, ValueKind


class StoreError(Exception):
    """Base class for errors raised by a typed graph store."""

    pass


class UnknownTypeError(StoreError):
    """Raised when a referenced type label does not exist."""

    pass


class UnknownInstanceError(StoreError):
    """Raised when a referenced instance id does not exist."""

    pass


class SchemaViolationError(StoreError):
    """Raised when a write is not permitted by the store's schema."""

    pass


class TransactionError(StoreError):
    """Raised on invalid transaction usage (e.g. nesting)."""

    pass


class SourceStoreInterface(ABC):
    """Read-side contract used by the exporters."""

    @abstractmethod
    async def get_type(self, label: str) -> Optional[TypeNode]:
        """
        Look up a type by label.

        Args:
            label: Type label (category roots included)

        Returns:
            The TypeNode, or None if not defined
        """
        pass

    @abstractmethod
    async def get_direct_subtypes(self, label: str) -> List[TypeNode]:
        """
        Direct subtypes of a type, excluding implicit (system-generated) types.

        Abstract subtypes are included: they are part of the hierarchy.
        """
        pass

    @abstractmethod
    async def get_concrete_types(self, category: Category) -> List[str]:
        """Labels of all non-abstract, non-implicit types below a category root."""
        pass

    @abstractmethod
    async def get_owned_attribute_types(self, label: str) -> List[str]:
        """Attribute types declared as owned directly by a type."""
        pass

    @abstractmethod
    async def get_played_roles(self, label: str) -> List[str]:
        """Roles declared as played directly by a type."""
        pass

    @abstractmethod
    async def get_related_roles(self, label: str) -> List[str]:
        """Roles declared as related directly by a relation type."""
        pass

    @abstractmethod
    async def get_rules(self) -> List[RuleDefinition]:
        """All rules defined in the store."""
        pass

    @abstractmethod
    async def get_instances(self, type_label: str) -> List[str]:
        """Ids of instances whose exact type is type_label (subtypes excluded)."""
        pass

    @abstractmethod
    async def get_attribute_value(self, instance_id: str) -> Any:
        """Value carried by an attribute instance."""
        pass

    @abstractmethod
    async def get_role_players(self, relation_id: str) -> Dict[str, List[str]]:
        """Map of role label to player ids for a relation instance."""
        pass

    @abstractmethod
    async def get_attribute_owners(self, attribute_id: str) -> List[str]:
        """Ids of every instance owning an attribute instance."""
        pass

    @abstractmethod
    async def count_instances(self, category: Category) -> int:
        """Aggregate number of instances in a category."""
        pass


class TargetStoreInterface(ABC):
    """Write-side contract used by the importers."""

    # Schema declaration
    @abstractmethod
    async def define_type(
        self,
        label: str,
        category: Category,
        parent: str,
        value_kind: Optional[ValueKind] = None,
    ) -> TypeNode:
        """
        Declare a type (or re-declare it under the same parent).

        Raises:
            UnknownTypeError: If the parent does not exist
            SchemaViolationError: On a category or value-kind mismatch
        """
        pass

    @abstractmethod
    async def set_abstract(self, label: str) -> None:
        """Mark a type as abstract."""
        pass

    @abstractmethod
    async def define_relates(self, relation_label: str, role_label: str) -> None:
        """Declare that a relation type relates a role."""
        pass

    @abstractmethod
    async def define_plays(self, player_label: str, role_label: str) -> None:
        """Declare that a type plays a role."""
        pass

    @abstractmethod
    async def define_has(self, owner_label: str, attribute_label: str) -> None:
        """Declare that a type owns an attribute type."""
        pass

    @abstractmethod
    async def define_rule(self, name: str, when: str, then: str) -> None:
        """Declare (or replace) a rule."""
        pass

    # Instance creation
    @abstractmethod
    async def create_instance(self, type_label: str) -> str:
        """
        Create an entity or relation instance.

        Returns:
            The freshly minted identifier
        """
        pass

    @abstractmethod
    async def create_attribute(self, type_label: str, value: Any) -> str:
        """
        Put an attribute instance carrying value.

        Attributes are unique per (type, value); putting an existing value
        returns the id of the existing instance.
        """
        pass

    @abstractmethod
    async def assign_role_player(self, relation_id: str, role_label: str, player_id: str) -> None:
        """Assign a player to a role of a relation instance."""
        pass

    @abstractmethod
    async def attach_attribute(self, owner_id: str, attribute_id: str) -> None:
        """Attach an attribute instance to an owner instance."""
        pass

    @abstractmethod
    async def count_instances(self, category: Category) -> int:
        """Aggregate number of instances in a category."""
        pass

    # Transactions
    @abstractmethod
    async def _begin(self) -> None:
        pass

    @abstractmethod
    async def _commit(self) -> None:
        pass

    @abstractmethod
    async def _rollback(self) -> None:
        pass

    @asynccontextmanager
    async def transaction(self):
        """
        Group writes into one atomic unit.

        Commits when the block exits normally and rolls back when it raises.
        Writes issued outside a transaction commit individually.
        """
        await self._begin()
        try:
            yield self
        except BaseException:
            await self._rollback()
            raise
        else:
            await self._commit()


class TypedGraphStoreInterface(SourceStoreInterface, TargetStoreInterface):
    """
    Full store contract: both sides plus connection management.

    Every operation connects lazily, so callers may skip connect().
    """

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the store."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connection to the store."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Test if the store is reachable."""
        pass

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
