"""
Tests for the in-memory typed graph store.
"""

import pytest

from graph_migrate.model.schema_types import Category, ValueKind
from graph_migrate.storage.backends.memory import MemoryGraphStore
from graph_migrate.storage.interfaces.typed_graph_store_interface import (
    SchemaViolationError,
    TransactionError,
    UnknownInstanceError,
    UnknownTypeError,
)


class TestMemorySchema:
    """Test schema declaration on the memory store."""

    @pytest.mark.asyncio
    async def test_roots_exist(self, memory_store):
        for category in Category:
            node = await memory_store.get_type(category.value)
            assert node.is_root
            assert node.abstract

    @pytest.mark.asyncio
    async def test_define_type_requires_parent(self, memory_store):
        with pytest.raises(UnknownTypeError):
            await memory_store.define_type("Employee", Category.ENTITY, "Person")

    @pytest.mark.asyncio
    async def test_define_type_is_idempotent(self, memory_store):
        first = await memory_store.define_type("Person", Category.ENTITY, "entity")
        second = await memory_store.define_type("Person", Category.ENTITY, "entity")
        assert first is second

    @pytest.mark.asyncio
    async def test_conflicting_redefinition(self, memory_store):
        await memory_store.define_type("Person", Category.ENTITY, "entity")
        await memory_store.define_type("Agent", Category.ENTITY, "entity")

        with pytest.raises(SchemaViolationError):
            await memory_store.define_type("Person", Category.ENTITY, "Agent")

    @pytest.mark.asyncio
    async def test_category_must_match_parent(self, memory_store):
        with pytest.raises(SchemaViolationError):
            await memory_store.define_type("Person", Category.ENTITY, "relation")

    @pytest.mark.asyncio
    async def test_roots_cannot_be_redefined(self, memory_store):
        with pytest.raises(SchemaViolationError):
            await memory_store.define_type("entity", Category.ENTITY, "entity")

    @pytest.mark.asyncio
    async def test_attribute_value_kinds(self, memory_store):
        with pytest.raises(SchemaViolationError):
            await memory_store.define_type("age", Category.ATTRIBUTE, "attribute")

        await memory_store.define_type("amount", Category.ATTRIBUTE, "attribute", ValueKind.FLOAT)
        with pytest.raises(SchemaViolationError):
            await memory_store.define_type("price", Category.ATTRIBUTE, "amount", ValueKind.INTEGER)

        price = await memory_store.define_type("price", Category.ATTRIBUTE, "amount", ValueKind.FLOAT)
        assert price.parent == "amount"

    @pytest.mark.asyncio
    async def test_subtypes_and_concrete_types(self, memory_store):
        await memory_store.define_type("Agent", Category.ENTITY, "entity")
        await memory_store.define_type("Person", Category.ENTITY, "Agent")
        await memory_store.set_abstract("Agent")
        await memory_store.define_implicit_type("@shadow", Category.ENTITY, "entity")

        subtypes = await memory_store.get_direct_subtypes("entity")
        assert [node.label for node in subtypes] == ["Agent"]
        assert await memory_store.get_concrete_types(Category.ENTITY) == ["Person"]

    @pytest.mark.asyncio
    async def test_schema_edges_are_validated(self, memory_store, build_org_graph):
        await build_org_graph(memory_store)

        assert await memory_store.get_related_roles("Reports_to") == ["subordinate", "supervisor"]
        assert await memory_store.get_played_roles("Person") == ["subordinate", "supervisor"]
        assert await memory_store.get_owned_attribute_types("Person") == ["age"]

        with pytest.raises(SchemaViolationError):
            await memory_store.define_relates("Person", "subordinate")
        with pytest.raises(SchemaViolationError):
            await memory_store.define_has("Person", "Person")
        with pytest.raises(UnknownTypeError):
            await memory_store.define_plays("Person", "mentor")

    @pytest.mark.asyncio
    async def test_set_abstract_refuses_types_with_instances(self, memory_store):
        await memory_store.define_type("Person", Category.ENTITY, "entity")
        await memory_store.create_instance("Person")

        with pytest.raises(SchemaViolationError):
            await memory_store.set_abstract("Person")

    @pytest.mark.asyncio
    async def test_rules(self, memory_store):
        await memory_store.define_rule("r1", "when-1", "then-1")
        await memory_store.define_rule("r1", "when-2", "then-2")

        rules = await memory_store.get_rules()
        assert len(rules) == 1
        assert rules[0].when == "when-2"


class TestMemoryInstances:
    """Test instance creation and reads on the memory store."""

    @pytest.mark.asyncio
    async def test_ids_are_minted_in_order(self, memory_store, build_org_graph):
        people = await build_org_graph(memory_store)

        assert people == ["V1", "V3", "V5"]
        assert await memory_store.get_instances("Person") == people

    @pytest.mark.asyncio
    async def test_counts(self, memory_store, build_org_graph):
        await build_org_graph(memory_store)

        assert await memory_store.count_instances(Category.ENTITY) == 3
        assert await memory_store.count_instances(Category.ATTRIBUTE) == 3
        assert await memory_store.count_instances(Category.RELATION) == 3
        assert memory_store.get_stats()["instances"] == 9

    @pytest.mark.asyncio
    async def test_attributes_are_unique_per_value(self, memory_store):
        await memory_store.define_type("age", Category.ATTRIBUTE, "attribute", ValueKind.INTEGER)

        first = await memory_store.create_attribute("age", 30)
        second = await memory_store.create_attribute("age", 30)

        assert first == second
        assert await memory_store.get_attribute_value(first) == 30
        assert await memory_store.count_instances(Category.ATTRIBUTE) == 1

    @pytest.mark.asyncio
    async def test_attribute_value_must_match_kind(self, memory_store):
        await memory_store.define_type("age", Category.ATTRIBUTE, "attribute", ValueKind.INTEGER)
        await memory_store.define_type("weight", Category.ATTRIBUTE, "attribute", ValueKind.FLOAT)

        with pytest.raises(SchemaViolationError):
            await memory_store.create_attribute("age", "thirty")

        weight = await memory_store.create_attribute("weight", 2)
        assert await memory_store.get_attribute_value(weight) == 2.0

    @pytest.mark.asyncio
    async def test_abstract_types_cannot_be_instantiated(self, memory_store):
        await memory_store.define_type("Agent", Category.ENTITY, "entity")
        await memory_store.set_abstract("Agent")

        with pytest.raises(SchemaViolationError):
            await memory_store.create_instance("Agent")
        with pytest.raises(UnknownTypeError):
            await memory_store.create_instance("Robot")

    @pytest.mark.asyncio
    async def test_role_assignment_is_validated(self, memory_store, build_org_graph):
        people = await build_org_graph(memory_store)
        relation = await memory_store.create_instance("Reports_to")
        age = (await memory_store.get_instances("age"))[0]

        with pytest.raises(UnknownTypeError):
            await memory_store.assign_role_player(relation, "mentor", people[0])
        with pytest.raises(SchemaViolationError):
            await memory_store.assign_role_player(relation, "subordinate", age)
        with pytest.raises(UnknownInstanceError):
            await memory_store.assign_role_player(relation, "subordinate", "V999")

        await memory_store.assign_role_player(relation, "subordinate", people[0])
        await memory_store.assign_role_player(relation, "subordinate", people[0])
        assert await memory_store.get_role_players(relation) == {"subordinate": [people[0]]}

    @pytest.mark.asyncio
    async def test_attach_attribute(self, memory_store, build_org_graph):
        people = await build_org_graph(memory_store)
        age = await memory_store.create_attribute("age", 99)

        await memory_store.attach_attribute(people[0], age)
        await memory_store.attach_attribute(people[0], age)
        assert await memory_store.get_attribute_owners(age) == [people[0]]

        relation = (await memory_store.get_instances("Reports_to"))[0]
        with pytest.raises(SchemaViolationError):
            await memory_store.attach_attribute(relation, age)

    @pytest.mark.asyncio
    async def test_subtypes_inherit_roles(self, memory_store, build_org_graph):
        people = await build_org_graph(memory_store)
        await memory_store.define_type("Manager", Category.ENTITY, "Person")
        manager = await memory_store.create_instance("Manager")
        relation = await memory_store.create_instance("Reports_to")

        await memory_store.assign_role_player(relation, "supervisor", manager)
        await memory_store.assign_role_player(relation, "subordinate", people[0])

        assert await memory_store.get_role_players(relation) == {
            "supervisor": [manager],
            "subordinate": [people[0]],
        }


class TestMemoryTransactions:
    """Test transactional writes on the memory store."""

    @pytest.mark.asyncio
    async def test_rollback_undoes_every_write(self, memory_store, build_org_graph):
        people = await build_org_graph(memory_store)

        with pytest.raises(SchemaViolationError):
            async with memory_store.transaction():
                await memory_store.define_type("Robot", Category.ENTITY, "entity")
                relation = await memory_store.create_instance("Reports_to")
                await memory_store.assign_role_player(relation, "subordinate", people[0])
                age = await memory_store.create_attribute("age", 77)
                await memory_store.attach_attribute(people[1], age)
                await memory_store.assign_role_player(relation, "supervisor", age)

        assert await memory_store.get_type("Robot") is None
        assert await memory_store.count_instances(Category.RELATION) == 3
        assert await memory_store.count_instances(Category.ATTRIBUTE) == 3
        assert len(await memory_store.get_instances("Reports_to")) == 3

        # the rolled back attribute value can be created again
        age = await memory_store.create_attribute("age", 77)
        assert await memory_store.get_attribute_owners(age) == []

    @pytest.mark.asyncio
    async def test_commit_keeps_writes(self, memory_store):
        async with memory_store.transaction():
            await memory_store.define_type("Person", Category.ENTITY, "entity")
            person = await memory_store.create_instance("Person")

        assert await memory_store.get_instances("Person") == [person]

    @pytest.mark.asyncio
    async def test_nested_transactions_are_rejected(self, memory_store):
        async with memory_store.transaction():
            with pytest.raises(TransactionError):
                async with memory_store.transaction():
                    pass

    def test_shared_registry(self):
        first = MemoryGraphStore.shared("source")
        assert MemoryGraphStore.shared("source") is first
        assert MemoryGraphStore.shared("target") is not first

        MemoryGraphStore.reset_shared()
        assert MemoryGraphStore.shared("source") is not first
