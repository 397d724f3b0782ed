"""
SQLite implementation of the typed graph store.

This module provides a SQLite-based implementation of the
TypedGraphStoreInterface using relational tables for the schema and the
instance graph. Each named store is one database file. The schema tables are
mirrored into an in-process SchemaIndex on connect, so schema validation never
needs a round trip to the database.
"""

import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite

from graph_migrate.model.schema_types import Category, RuleDefinition, TypeNode, ValueKind
from graph_migrate.storage.interfaces.typed_graph_store_interface import (
    SchemaViolationError,
    TransactionError,
    TypedGraphStoreInterface,
    UnknownInstanceError,
)
from graph_migrate.storage.schema_index import SchemaIndex


class SqliteGraphStore(TypedGraphStoreInterface):
    """
    SQLite-based implementation of the TypedGraphStoreInterface.

    Attribute values are stored in their canonical text form and decoded
    through the attribute type's value kind on the way out.
    """

    def __init__(self, database_path: str = "./data/graph.db"):
        """
        Initialize SqliteGraphStore with database path.

        Args:
            database_path: Path to the SQLite database file
        """
        self.database_path = Path(database_path)
        self.logger = logging.getLogger(__name__)

        self._schema = SchemaIndex()
        self._in_transaction = False

        # Connection state
        self._connected = False
        self._db_connection = None

    # Connection Management
    async def connect(self) -> None:
        """Establish connection to the SQLite database."""
        if self._connected:
            return

        try:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)

            self._db_connection = await aiosqlite.connect(str(self.database_path))
            await self._db_connection.execute("PRAGMA foreign_keys = ON")
            await self._create_tables()

            self._connected = True
            await self._load_schema()
            self.logger.info(f"Connected to SQLite store at {self.database_path}")

        except Exception as e:
            self.logger.error(f"Failed to connect to SQLite store: {e}")
            raise

    async def close(self) -> None:
        """Close connection to the SQLite database."""
        if not self._connected:
            return

        try:
            if self._db_connection:
                await self._db_connection.close()
                self._db_connection = None

            self._connected = False
            self.logger.info("Disconnected from SQLite store")

        except Exception as e:
            self.logger.error(f"Error closing SQLite store: {e}")

    async def test_connection(self) -> bool:
        """Test if the database file can be opened and queried."""
        try:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(str(self.database_path)) as db:
                await db.execute("SELECT 1")
            return True
        except Exception as e:
            self.logger.error(f"SQLite connection test failed: {e}")
            return False

    # Transactions
    async def _begin(self) -> None:
        await self.connect()
        if self._in_transaction:
            raise TransactionError("Nested transactions are not supported")
        await self._db_connection.execute("BEGIN")
        self._in_transaction = True

    async def _commit(self) -> None:
        self._in_transaction = False
        await self._db_connection.commit()

    async def _rollback(self) -> None:
        self._in_transaction = False
        await self._db_connection.rollback()
        # Schema writes made inside the transaction are gone from the tables too
        await self._load_schema()

    async def _write(self, query: str, params=()) -> None:
        """Execute one write, committing immediately when no transaction is open."""
        try:
            await self._db_connection.execute(query, params)
            if not self._in_transaction:
                await self._db_connection.commit()
        except Exception as e:
            if not self._in_transaction:
                await self._db_connection.rollback()
            self.logger.error(f"Error writing to SQLite store: {e}")
            raise

    async def _fetchone(self, query: str, params=()):
        cursor = await self._db_connection.execute(query, params)
        return await cursor.fetchone()

    async def _fetchall(self, query: str, params=()):
        cursor = await self._db_connection.execute(query, params)
        return await cursor.fetchall()

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

        await self._write(
            """
            INSERT INTO types (label, category, parent, value_kind, abstract, implicit)
            VALUES (?, ?, ?, ?, 0, 0)
        """,
            (label, category.value, parent, value_kind.value if value_kind else None),
        )
        self._schema.types[label] = node
        self.logger.debug(f"Defined {category.value} type {label} sub {parent}")
        return node

    async def set_abstract(self, label: str) -> None:
        await self.connect()
        node = self._schema.require(label)
        if node.abstract:
            return
        if await self._fetchone("SELECT 1 FROM things WHERE type_label = ? LIMIT 1", (label,)):
            raise SchemaViolationError(f"Type '{label}' has instances and cannot be abstract")

        await self._write("UPDATE types SET abstract = 1 WHERE label = ?", (label,))
        node.abstract = True

    async def define_relates(self, relation_label: str, role_label: str) -> None:
        await self.connect()
        self._schema.check_relates(relation_label, role_label)
        await self._write(
            "INSERT OR IGNORE INTO relates (relation_label, role_label) VALUES (?, ?)",
            (relation_label, role_label),
        )
        self._schema.relates.setdefault(relation_label, set()).add(role_label)

    async def define_plays(self, player_label: str, role_label: str) -> None:
        await self.connect()
        self._schema.check_plays(player_label, role_label)
        await self._write(
            "INSERT OR IGNORE INTO plays (player_label, role_label) VALUES (?, ?)",
            (player_label, role_label),
        )
        self._schema.plays.setdefault(player_label, set()).add(role_label)

    async def define_has(self, owner_label: str, attribute_label: str) -> None:
        await self.connect()
        self._schema.check_has(owner_label, attribute_label)
        await self._write(
            "INSERT OR IGNORE INTO owns (owner_label, attribute_label) VALUES (?, ?)",
            (owner_label, attribute_label),
        )
        self._schema.owns.setdefault(owner_label, set()).add(attribute_label)

    async def define_rule(self, name: str, when: str, then: str) -> None:
        await self.connect()
        await self._write(
            "INSERT OR REPLACE INTO rules (name, when_pattern, then_pattern) VALUES (?, ?, ?)",
            (name, when, then),
        )
        self._schema.rules[name] = RuleDefinition(name=name, when=when, then=then)

    # Instance creation
    async def create_instance(self, type_label: str) -> str:
        await self.connect()
        node = self._schema.check_instantiable(type_label, Category.ENTITY, Category.RELATION)
        instance_id = str(uuid.uuid4())
        await self._write(
            "INSERT INTO things (instance_id, type_label, category) VALUES (?, ?, ?)",
            (instance_id, type_label, node.category.value),
        )
        self.logger.debug(f"Created {type_label} instance {instance_id}")
        return instance_id

    async def create_attribute(self, type_label: str, value: Any) -> str:
        await self.connect()
        value = self._schema.coerce_value(type_label, value)
        value_text = self._schema.types[type_label].value_kind.format(value)

        row = await self._fetchone(
            "SELECT instance_id FROM things WHERE type_label = ? AND value_text = ?",
            (type_label, value_text),
        )
        if row:
            return row[0]

        instance_id = str(uuid.uuid4())
        await self._write(
            """
            INSERT INTO things (instance_id, type_label, category, value_text)
            VALUES (?, ?, ?, ?)
        """,
            (instance_id, type_label, Category.ATTRIBUTE.value, value_text),
        )
        return instance_id

    async def _require_thing(self, instance_id: str):
        row = await self._fetchone(
            "SELECT type_label, category, value_text FROM things WHERE instance_id = ?",
            (instance_id,),
        )
        if not row:
            raise UnknownInstanceError(f"Unknown instance: {instance_id}")
        return row[0], Category(row[1]), row[2]

    async def assign_role_player(self, relation_id: str, role_label: str, player_id: str) -> None:
        await self.connect()
        relation_type, relation_category, _ = await self._require_thing(relation_id)
        if relation_category != Category.RELATION:
            raise SchemaViolationError(f"Instance {relation_id} is not a relation")
        player_type, _, _ = await self._require_thing(player_id)
        self._schema.check_role_assignment(relation_type, role_label, player_type)

        await self._write(
            """
            INSERT OR IGNORE INTO role_players (relation_id, role_label, player_id)
            VALUES (?, ?, ?)
        """,
            (relation_id, role_label, player_id),
        )

    async def attach_attribute(self, owner_id: str, attribute_id: str) -> None:
        await self.connect()
        owner_type, _, _ = await self._require_thing(owner_id)
        attribute_type, attribute_category, _ = await self._require_thing(attribute_id)
        if attribute_category != Category.ATTRIBUTE:
            raise SchemaViolationError(f"Instance {attribute_id} is not an attribute")
        self._schema.check_ownership(owner_type, attribute_type)

        await self._write(
            "INSERT OR IGNORE INTO ownerships (attribute_id, owner_id) VALUES (?, ?)",
            (attribute_id, owner_id),
        )

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
        rows = await self._fetchall(
            "SELECT instance_id FROM things WHERE type_label = ? ORDER BY rowid", (type_label,)
        )
        return [row[0] for row in rows]

    async def get_attribute_value(self, instance_id: str) -> Any:
        await self.connect()
        type_label, category, value_text = await self._require_thing(instance_id)
        if category != Category.ATTRIBUTE:
            raise SchemaViolationError(f"Instance {instance_id} is not an attribute")
        return self._schema.require(type_label).value_kind.parse(value_text)

    async def get_role_players(self, relation_id: str) -> Dict[str, List[str]]:
        await self.connect()
        await self._require_thing(relation_id)
        rows = await self._fetchall(
            """
            SELECT role_label, player_id FROM role_players
            WHERE relation_id = ? ORDER BY rowid
        """,
            (relation_id,),
        )
        role_players: Dict[str, List[str]] = {}
        for role_label, player_id in rows:
            role_players.setdefault(role_label, []).append(player_id)
        return role_players

    async def get_attribute_owners(self, attribute_id: str) -> List[str]:
        await self.connect()
        await self._require_thing(attribute_id)
        rows = await self._fetchall(
            "SELECT owner_id FROM ownerships WHERE attribute_id = ? ORDER BY rowid",
            (attribute_id,),
        )
        return [row[0] for row in rows]

    async def count_instances(self, category: Category) -> int:
        await self.connect()
        row = await self._fetchone("SELECT COUNT(*) FROM things WHERE category = ?", (category.value,))
        return row[0]

    # Helper methods
    async def _load_schema(self) -> None:
        """Rebuild the schema index from the schema tables."""
        schema = SchemaIndex()

        rows = await self._fetchall(
            "SELECT label, category, parent, value_kind, abstract, implicit FROM types ORDER BY rowid"
        )
        for label, category, parent, value_kind, abstract, implicit in rows:
            schema.types[label] = TypeNode(
                label=label,
                category=Category(category),
                parent=parent,
                value_kind=ValueKind.from_token(value_kind) if value_kind else None,
                abstract=bool(abstract),
                implicit=bool(implicit),
            )

        for relation_label, role_label in await self._fetchall("SELECT relation_label, role_label FROM relates"):
            schema.relates.setdefault(relation_label, set()).add(role_label)
        for player_label, role_label in await self._fetchall("SELECT player_label, role_label FROM plays"):
            schema.plays.setdefault(player_label, set()).add(role_label)
        for owner_label, attribute_label in await self._fetchall("SELECT owner_label, attribute_label FROM owns"):
            schema.owns.setdefault(owner_label, set()).add(attribute_label)
        for name, when, then in await self._fetchall(
            "SELECT name, when_pattern, then_pattern FROM rules ORDER BY rowid"
        ):
            schema.rules[name] = RuleDefinition(name=name, when=when, then=then)

        self._schema = schema

    async def _create_tables(self):
        """Create database tables if they don't exist."""
        await self._db_connection.execute(
            """
            CREATE TABLE IF NOT EXISTS types (
                label TEXT PRIMARY KEY,
                category TEXT NOT NULL,
                parent TEXT NOT NULL,
                value_kind TEXT,
                abstract INTEGER NOT NULL DEFAULT 0,
                implicit INTEGER NOT NULL DEFAULT 0
            )
        """
        )

        await self._db_connection.execute(
            """
            CREATE TABLE IF NOT EXISTS relates (
                relation_label TEXT NOT NULL,
                role_label TEXT NOT NULL,
                PRIMARY KEY (relation_label, role_label)
            )
        """
        )

        await self._db_connection.execute(
            """
            CREATE TABLE IF NOT EXISTS plays (
                player_label TEXT NOT NULL,
                role_label TEXT NOT NULL,
                PRIMARY KEY (player_label, role_label)
            )
        """
        )

        await self._db_connection.execute(
            """
            CREATE TABLE IF NOT EXISTS owns (
                owner_label TEXT NOT NULL,
                attribute_label TEXT NOT NULL,
                PRIMARY KEY (owner_label, attribute_label)
            )
        """
        )

        await self._db_connection.execute(
            """
            CREATE TABLE IF NOT EXISTS rules (
                name TEXT PRIMARY KEY,
                when_pattern TEXT NOT NULL,
                then_pattern TEXT NOT NULL
            )
        """
        )

        await self._db_connection.execute(
            """
            CREATE TABLE IF NOT EXISTS things (
                instance_id TEXT PRIMARY KEY,
                type_label TEXT NOT NULL,
                category TEXT NOT NULL,
                value_text TEXT
            )
        """
        )

        await self._db_connection.execute(
            """
            CREATE TABLE IF NOT EXISTS role_players (
                relation_id TEXT NOT NULL,
                role_label TEXT NOT NULL,
                player_id TEXT NOT NULL,
                PRIMARY KEY (relation_id, role_label, player_id),
                FOREIGN KEY (relation_id) REFERENCES things (instance_id),
                FOREIGN KEY (player_id) REFERENCES things (instance_id)
            )
        """
        )

        await self._db_connection.execute(
            """
            CREATE TABLE IF NOT EXISTS ownerships (
                attribute_id TEXT NOT NULL,
                owner_id TEXT NOT NULL,
                PRIMARY KEY (attribute_id, owner_id),
                FOREIGN KEY (attribute_id) REFERENCES things (instance_id),
                FOREIGN KEY (owner_id) REFERENCES things (instance_id)
            )
        """
        )

        # Create indexes for performance
        await self._db_connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_things_type ON things (type_label)"
        )
        await self._db_connection.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_things_value ON things (type_label, value_text) "
            "WHERE value_text IS NOT NULL"
        )
        await self._db_connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_things_category ON things (category)"
        )

        await self._db_connection.commit()
