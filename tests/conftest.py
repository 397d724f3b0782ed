"""
Configuration file for pytest.

This file configures pytest to properly load environment variables
and provides shared fixtures for tests.
"""

import pytest
import dotenv

import graph_migrate.config.config_manager as config_module
from graph_migrate.config.config_manager import ConfigManager
from graph_migrate.model.schema_types import Category, ValueKind
from graph_migrate.storage.backends.memory import MemoryGraphStore
from graph_migrate.storage.backends.sqlite import SqliteGraphStore

# Load environment variables from .env file
dotenv.load_dotenv()


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch, tmp_path):
    """Every test starts with no shared stores and a freshly loaded configuration."""
    for name in (
        "ENVIRONMENT",
        "GRAPH_STORE_BACKEND",
        "SQLITE_DIRECTORY",
        "MIGRATION_ERROR_POLICY",
        "PROGRESS_INTERVAL",
        "WRITE_SCHEMA_DEFINITION",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    MemoryGraphStore.reset_shared()
    ConfigManager.reset()
    config_module._config_manager = None
    yield
    MemoryGraphStore.reset_shared()
    ConfigManager.reset()
    config_module._config_manager = None


@pytest.fixture
def memory_store():
    return MemoryGraphStore("test")


@pytest.fixture
def sqlite_store(tmp_path):
    """Unconnected SQLite store; tests open it with ``async with``."""
    return SqliteGraphStore(database_path=str(tmp_path / "stores" / "test.db"))


async def _build_org_graph(store):
    """
    Three people with an age each, reporting to one another.

    The third person reports to themself.
    """
    await store.define_type("subordinate", Category.ROLE, "role")
    await store.define_type("supervisor", Category.ROLE, "role")
    await store.define_type("age", Category.ATTRIBUTE, "attribute", ValueKind.INTEGER)
    await store.define_type("Person", Category.ENTITY, "entity")
    await store.define_type("Reports_to", Category.RELATION, "relation")
    await store.define_relates("Reports_to", "subordinate")
    await store.define_relates("Reports_to", "supervisor")
    await store.define_has("Person", "age")
    await store.define_plays("Person", "subordinate")
    await store.define_plays("Person", "supervisor")

    people = []
    for years in (30, 41, 52):
        person = await store.create_instance("Person")
        age = await store.create_attribute("age", years)
        await store.attach_attribute(person, age)
        people.append(person)

    for subordinate, supervisor in ((0, 1), (1, 2), (2, 2)):
        relation = await store.create_instance("Reports_to")
        await store.assign_role_player(relation, "subordinate", people[subordinate])
        await store.assign_role_player(relation, "supervisor", people[supervisor])

    return people


async def _build_endorsement_schema(store):
    """Relations that play roles in relations of their own type, and own an attribute."""
    await store.define_type("endorser", Category.ROLE, "role")
    await store.define_type("endorsed", Category.ROLE, "role")
    await store.define_type("weight", Category.ATTRIBUTE, "attribute", ValueKind.FLOAT)
    await store.define_type("Person", Category.ENTITY, "entity")
    await store.define_type("Endorsement", Category.RELATION, "relation")
    await store.define_relates("Endorsement", "endorser")
    await store.define_relates("Endorsement", "endorsed")
    await store.define_plays("Person", "endorser")
    await store.define_plays("Person", "endorsed")
    await store.define_plays("Endorsement", "endorser")
    await store.define_plays("Endorsement", "endorsed")
    await store.define_has("Endorsement", "weight")


@pytest.fixture
def build_org_graph():
    return _build_org_graph


@pytest.fixture
def build_endorsement_schema():
    return _build_endorsement_schema
