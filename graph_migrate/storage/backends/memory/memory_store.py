"""
In-memory implementation of the typed graph store.

This module keeps schema and instance data in plain dictionaries. Writes made
inside a transaction are journaled in an undo log so that a failed transaction
leaves the store exactly as it was. Ideal for development, testing, and for
migrating between stores that live in the same process.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from graph_migrate.model.schema_types import Category, RuleDefinition, TypeNode, ValueKind
from graph_migrate.storage.interfaces.typed_graph_store_interface import (
    SchemaViolationError,
    TransactionError,
    TypedGraphStoreInterface,
    UnknownInstanceError,
)
from graph_migrate.storage.schema_index import SchemaIndex


@dataclass
class _Thing:
    instance_id: str
    type_label: str
    category: Category
    value: Any = None


class MemoryGraphStore(TypedGraphStoreInterface):
    """
    Dictionary-backed implementation of the TypedGraphStoreInterface.

    Instance ids are minted as ``V1``, ``V2``... in creation order. Ids are
    never reused, even when a transaction that minted them rolls back.
    """

    _shared: Dict[str, "MemoryGraphStore"] = {}

    def __init__(self, store_name: str = "default"):
        """
        Initialize an empty store.

        Args:
            store_name: Name used in log messages and for shared lookup
        """
        self.store_name = store_name
        self.logger = logging.getLogger(__name__)

        self._schema = SchemaIndex()
        self._things: Dict[str, _Thing] = {}
        self._by_type: Dict[str, List[str]] = {}
        self._role_players: Dict[str, Dict[str, List[str]]] = {}
        self._owners: Dict[str, List[str]] = {}
        self._attribute_index: Dict[Tuple[str, Any], str] = {}
        self._next_id = 1

        self._undo: Optional[List[Callable[[], None]]] = None
        self._connected = False

    @classmethod
    def shared(cls, store_name: str) -> "MemoryGraphStore":
        """Return the process-wide store registered under store_name, creating it if needed."""
        if store_name not in cls._shared:
            cls._shared[store_name] = cls(store_name)
        return cls._shared[store_name]

    @classmethod
    def reset_shared(cls) -> None:
        cls._shared.clear()

    # Connection Management
    async def connect(self) -> None:
        if self._connected:
            return
        self._connected = True
        self.logger.info(f"Connected to in-memory store '{self.store_name}'")

    async def close(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self.logger.info(f"Disconnected from in-memory store '{self.store_name}'")

    async def test_connection(self) -> bool:
        return True

    # Transactions
    async def _begin(self) -> None:
        await self.connect()
        if self._undo is not None:
            raise TransactionError("Nested transactions are not supported")
        self._undo = []

    async def _commit(self) -> None:
        self._undo = None

    async def _rollback(self) -> None:
        journal = self._undo or []
        self._undo = None
        for undo in reversed(journal):
            undo()
        self.logger.debug(f"Rolled back {len(journal)} writes in '{self.store_name}'")

    def _journal(self, undo: Callable[[], None]) -> None:
        if self._undo is not None:
            self._undo.append(undo)

    def _mint_id(self) -> str:
        instance_id = f"V{self._next_id}"
        self._next_id += 1
        return instance_id

    def _require_thing(self, instance_id: str) -> _Thing:
        thing = self._things.get(instance_id)
        if thing is None:
            raise UnknownInstanceError(f"Unknown instance: {instance_id}")
        return thing

    def _add_link(self, mapping: Dict[str, Set[str]], key: str, value: str) -> None:
        links = mapping.setdefault(key, set())
        if value in links:
            return
        links.add(value)
        self._journal(lambda: links.discard(value))

    # Schema declaration
    async def define_type(
        self,
        label: str,
        category: Category,
        parent: str,
        value_kind: Optional[ValueKind] = None,
    ) -> TypeNode:
        await self.connect()
        node = self._schema.build_type(label, category, parent, value_kind)
        if node is None:
            return self._schema.types[label]
        self._schema.types[label] = node
        self._journal(lambda: self._schema.types.pop(label, None))
        self.logger.debug(f"Defined {category.value} type {label} sub {parent}")
        return node

    async def define_implicit_type(
        self,
        label: str,
        category: Category,
        parent: str,
        value_kind: Optional[ValueKind] = None,
    ) -> TypeNode:
        """Define a system-generated type. Implicit types are never instantiated or exported."""
        node = await self.define_type(label, category, parent, value_kind)
        node.implicit = True
        return node

    async def set_abstract(self, label: str) -> None:
        await self.connect()
        node = self._schema.require(label)
        if node.abstract:
            return
        if self._by_type.get(label):
            raise SchemaViolationError(f"Type '{label}' has instances and cannot be abstract")
        node.abstract = True

        def undo():
            node.abstract = False

        self._journal(undo)

    async def define_relates(self, relation_label: str, role_label: str) -> None:
        await self.connect()
        self._schema.check_relates(relation_label, role_label)
        self._add_link(self._schema.relates, relation_label, role_label)

    async def define_plays(self, player_label: str, role_label: str) -> None:
        await self.connect()
        self._schema.check_plays(player_label, role_label)
        self._add_link(self._schema.plays, player_label, role_label)

    async def define_has(self, owner_label: str, attribute_label: str) -> None:
        await self.connect()
        self._schema.check_has(owner_label, attribute_label)
        self._add_link(self._schema.owns, owner_label, attribute_label)

    async def define_rule(self, name: str, when: str, then: str) -> None:
        await self.connect()
        previous = self._schema.rules.get(name)
        self._schema.rules[name] = RuleDefinition(name=name, when=when, then=then)

        def undo():
            if previous is None:
                self._schema.rules.pop(name, None)
            else:
                self._schema.rules[name] = previous

        self._journal(undo)

    # Instance creation
    def _insert_thing(self, thing: _Thing) -> None:
        self._things[thing.instance_id] = thing
        type_instances = self._by_type.setdefault(thing.type_label, [])
        type_instances.append(thing.instance_id)
        if thing.category == Category.RELATION:
            self._role_players[thing.instance_id] = {}

        def undo():
            self._things.pop(thing.instance_id, None)
            type_instances.remove(thing.instance_id)
            self._role_players.pop(thing.instance_id, None)
            if thing.category == Category.ATTRIBUTE:
                self._attribute_index.pop((thing.type_label, thing.value), None)
                self._owners.pop(thing.instance_id, None)

        self._journal(undo)

    async def create_instance(self, type_label: str) -> str:
        await self.connect()
        node = self._schema.check_instantiable(type_label, Category.ENTITY, Category.RELATION)
        instance_id = self._mint_id()
        self._insert_thing(_Thing(instance_id, type_label, node.category))
        return instance_id

    async def create_attribute(self, type_label: str, value: Any) -> str:
        await self.connect()
        value = self._schema.coerce_value(type_label, value)
        key = (type_label, value)
        existing = self._attribute_index.get(key)
        if existing is not None:
            return existing

        instance_id = self._mint_id()
        self._attribute_index[key] = instance_id
        self._insert_thing(_Thing(instance_id, type_label, Category.ATTRIBUTE, value))
        return instance_id

    async def assign_role_player(self, relation_id: str, role_label: str, player_id: str) -> None:
        await self.connect()
        relation = self._require_thing(relation_id)
        if relation.category != Category.RELATION:
            raise SchemaViolationError(f"Instance {relation_id} is not a relation")
        player = self._require_thing(player_id)
        self._schema.check_role_assignment(relation.type_label, role_label, player.type_label)

        roles = self._role_players[relation_id]
        players = roles.setdefault(role_label, [])
        if player_id in players:
            return
        players.append(player_id)

        def undo():
            players.remove(player_id)
            if not players:
                roles.pop(role_label, None)

        self._journal(undo)

    async def attach_attribute(self, owner_id: str, attribute_id: str) -> None:
        await self.connect()
        owner = self._require_thing(owner_id)
        attribute = self._require_thing(attribute_id)
        if attribute.category != Category.ATTRIBUTE:
            raise SchemaViolationError(f"Instance {attribute_id} is not an attribute")
        self._schema.check_ownership(owner.type_label, attribute.type_label)

        owners = self._owners.setdefault(attribute_id, [])
        if owner_id in owners:
            return
        owners.append(owner_id)
        self._journal(lambda: owners.remove(owner_id))

    # Schema reads
    async def get_type(self, label: str) -> Optional[TypeNode]:
        await self.connect()
        return self._schema.get(label)

    async def get_direct_subtypes(self, label: str) -> List[TypeNode]:
        await self.connect()
        return self._schema.direct_subtypes(label)

    async def get_concrete_types(self, category: Category) -> List[str]:
        await self.connect()
        return self._schema.concrete_types(category)

    async def get_owned_attribute_types(self, label: str) -> List[str]:
        await self.connect()
        return sorted(self._schema.owns.get(label, ()))

    async def get_played_roles(self, label: str) -> List[str]:
        await self.connect()
        return sorted(self._schema.plays.get(label, ()))

    async def get_related_roles(self, label: str) -> List[str]:
        await self.connect()
        return sorted(self._schema.relates.get(label, ()))

    async def get_rules(self) -> List[RuleDefinition]:
        await self.connect()
        return list(self._schema.rules.values())

    # Instance reads
    async def get_instances(self, type_label: str) -> List[str]:
        await self.connect()
        return list(self._by_type.get(type_label, []))

    async def get_attribute_value(self, instance_id: str) -> Any:
        await self.connect()
        thing = self._require_thing(instance_id)
        if thing.category != Category.ATTRIBUTE:
            raise SchemaViolationError(f"Instance {instance_id} is not an attribute")
        return thing.value

    async def get_role_players(self, relation_id: str) -> Dict[str, List[str]]:
        await self.connect()
        self._require_thing(relation_id)
        roles = self._role_players.get(relation_id, {})
        return {role: list(players) for role, players in roles.items()}

    async def get_attribute_owners(self, attribute_id: str) -> List[str]:
        await self.connect()
        self._require_thing(attribute_id)
        return list(self._owners.get(attribute_id, []))

    async def count_instances(self, category: Category) -> int:
        await self.connect()
        return sum(1 for thing in self._things.values() if thing.category == category)

    def get_stats(self) -> Dict[str, Any]:
        """Summary of store contents, for logging."""
        return {
            "store_name": self.store_name,
            "types": len(self._schema.types),
            "instances": len(self._things),
            "rules": len(self._schema.rules),
        }
