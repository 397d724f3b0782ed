"""
End-to-end export and import runs.

A source store with three people, their ages, and a self-referential
Reports_to relation is exported and imported into a fresh store on each
backend; the result must carry the same graph under new identifiers.
"""

from datetime import datetime

import pytest

from graph_migrate.config.config_manager import ErrorPolicy, MigrationConfig
from graph_migrate.migration.runner import (
    DATA_DIR,
    SCHEMA_DEFINITION_FILE,
    GraphExporter,
    GraphImporter,
    resolve_data_root,
)
from graph_migrate.migration.row_format import read_rows
from graph_migrate.model.schema_types import Category, ValueKind
from graph_migrate.storage.backends.memory import MemoryGraphStore
from graph_migrate.storage.backends.sqlite import SqliteGraphStore


async def _describe(store):
    """Backend-independent view of the org graph: ages and (subordinate age, supervisor age) pairs."""
    owner_age = {}
    for age in await store.get_instances("age"):
        value = await store.get_attribute_value(age)
        for owner in await store.get_attribute_owners(age):
            owner_age[owner] = value

    pairs = []
    for relation in await store.get_instances("Reports_to"):
        players = await store.get_role_players(relation)
        pairs.append((owner_age[players["subordinate"][0]], owner_age[players["supervisor"][0]]))
    return sorted(owner_age.values()), sorted(pairs)


def _config(**overrides) -> MigrationConfig:
    return MigrationConfig(**overrides)


class TestExportRun:
    """Test GraphExporter runs."""

    @pytest.mark.asyncio
    async def test_export_layout(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)

        result = await GraphExporter(_config()).run(memory_store, tmp_path)

        data_root = tmp_path / DATA_DIR
        assert result.success
        assert result.data_path == str(data_root)
        assert len(list(read_rows(data_root / "entity" / "Person"))) == 3
        assert len(list(read_rows(data_root / "attribute" / "age"))) == 3
        relation_rows = [row for _, row in read_rows(data_root / "relation" / "Reports_to")]
        assert len(relation_rows) == 3
        assert all("(subordinate," in row and "(supervisor," in row for row in relation_rows)
        assert (data_root / "checksums").read_text() == "3\n3\n3\n"
        assert (data_root / SCHEMA_DEFINITION_FILE).read_text().startswith("define\n")
        assert result.details["types"] == 5

    @pytest.mark.asyncio
    async def test_schema_definition_can_be_disabled(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)

        result = await GraphExporter(_config(write_schema_definition=False)).run(memory_store, tmp_path)

        assert result.success
        assert not (tmp_path / DATA_DIR / SCHEMA_DEFINITION_FILE).exists()

    @pytest.mark.asyncio
    async def test_unwritable_export_directory(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        result = await GraphExporter(_config()).run(memory_store, blocker)

        assert not result.success
        assert result.errors
        assert result.details["error_type"] in ("FileExistsError", "NotADirectoryError")


class TestImportRun:
    """Test GraphImporter runs."""

    @pytest.mark.asyncio
    async def test_memory_round_trip(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)
        await GraphExporter(_config()).run(memory_store, tmp_path)

        target = MemoryGraphStore("target")
        result = await GraphImporter(_config()).run(target, tmp_path / DATA_DIR)

        assert result.success
        assert result.checksums_matched
        assert result.failures == []
        assert result.warnings == []
        assert await _describe(target) == await _describe(memory_store)
        assert await _describe(target) == ([30, 41, 52], [(30, 41), (41, 52), (52, 52)])

    @pytest.mark.asyncio
    async def test_sqlite_round_trip(self, build_org_graph, tmp_path):
        source = SqliteGraphStore(database_path=str(tmp_path / "stores" / "source.db"))
        target = SqliteGraphStore(database_path=str(tmp_path / "stores" / "target.db"))

        async with source:
            source_people = await build_org_graph(source)
            export = await GraphExporter(_config()).run(source, tmp_path / "export")
            expected = await _describe(source)
        assert export.success

        async with target:
            result = await GraphImporter(_config()).run(target, tmp_path / "export" / DATA_DIR)
            assert result.success
            assert result.checksums_matched
            assert await _describe(target) == expected
            target_people = await target.get_instances("Person")

        assert len(target_people) == 3
        assert not set(target_people) & set(source_people)

    @pytest.mark.asyncio
    async def test_export_directory_is_accepted(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)
        await GraphExporter(_config()).run(memory_store, tmp_path)

        assert resolve_data_root(tmp_path) == tmp_path / DATA_DIR
        assert resolve_data_root(tmp_path / DATA_DIR) == tmp_path / DATA_DIR

        result = await GraphImporter(_config()).run(MemoryGraphStore("target"), tmp_path)
        assert result.success
        assert result.checksums_matched

    @pytest.mark.asyncio
    async def test_import_into_a_populated_store(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)
        await GraphExporter(_config()).run(memory_store, tmp_path)

        # importing into a store that already holds the same schema and data
        result = await GraphImporter(_config()).run(memory_store, tmp_path)

        assert result.success
        assert [checksum.matched for checksum in result.checksums] == [True, True, False]
        assert await memory_store.count_instances(Category.ENTITY) == 6
        assert await memory_store.count_instances(Category.RELATION) == 6
        # equal attribute values are not duplicated, so nothing new is counted
        assert await memory_store.count_instances(Category.ATTRIBUTE) == 3
        assert result.checksums[2].imported == 0

    @pytest.mark.asyncio
    async def test_checksum_mismatch_is_a_warning(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)
        await GraphExporter(_config()).run(memory_store, tmp_path)
        (tmp_path / DATA_DIR / "checksums").write_text("4\n3\n3\n")

        result = await GraphImporter(_config()).run(MemoryGraphStore("target"), tmp_path)

        assert result.success
        assert not result.checksums_matched
        assert result.warnings == ["Checksum mismatch for entity: expected 4, imported 3"]

    @pytest.mark.asyncio
    async def test_row_failures_do_not_fail_the_run(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)
        await GraphExporter(_config()).run(memory_store, tmp_path)
        with open(tmp_path / DATA_DIR / "relation" / "Reports_to", "a") as handle:
            handle.write("V99,(subordinate,V404)\n")

        result = await GraphImporter(_config()).run(MemoryGraphStore("target"), tmp_path)

        assert result.success
        assert len(result.failures) == 1
        assert "1 records failed to import" in result.warnings
        assert result.failures[0].original_id == "V99"
        assert [checksum.imported for checksum in result.checksums] == [3, 3, 3]

    @pytest.mark.asyncio
    async def test_fail_fast_aborts_the_run(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)
        await GraphExporter(_config()).run(memory_store, tmp_path)
        with open(tmp_path / DATA_DIR / "entity" / "Person", "a") as handle:
            handle.write("V1\n")

        result = await GraphImporter(_config(), error_policy=ErrorPolicy.FAIL_FAST).run(
            MemoryGraphStore("target"), tmp_path
        )

        assert not result.success
        assert result.details["error_type"] == "DuplicateIdentifierError"

    @pytest.mark.asyncio
    async def test_missing_checksums_fail_the_run(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)
        await GraphExporter(_config()).run(memory_store, tmp_path)
        (tmp_path / DATA_DIR / "checksums").unlink()

        target = MemoryGraphStore("target")
        result = await GraphImporter(_config()).run(target, tmp_path)

        assert not result.success
        assert await target.get_type("Person") is None

    @pytest.mark.asyncio
    async def test_schema_failure_fails_the_run(self, memory_store, build_org_graph, tmp_path):
        await build_org_graph(memory_store)
        await GraphExporter(_config()).run(memory_store, tmp_path)
        (tmp_path / DATA_DIR / "schema" / "attribute").write_text("age,attribute,geopoint\n")

        result = await GraphImporter(_config()).run(MemoryGraphStore("target"), tmp_path)

        assert not result.success
        assert result.details["error_type"] == "SchemaImportError"


SENSOR_READINGS = {
    "installed": (ValueKind.DATETIME, datetime(2020, 1, 1)),
    "active": (ValueKind.BOOLEAN, True),
    "channels": (ValueKind.INTEGER, 42),
    "gain": (ValueKind.FLOAT, 0.1),
    "label": (ValueKind.STRING, "north, (upper)\\ wing\nbay 3\r"),
}


async def _build_sensor(store):
    """One entity owning an attribute of every value kind."""
    await store.define_type("Sensor", Category.ENTITY, "entity")
    sensor = await store.create_instance("Sensor")
    for type_label, (kind, value) in SENSOR_READINGS.items():
        await store.define_type(type_label, Category.ATTRIBUTE, "attribute", kind)
        await store.define_has("Sensor", type_label)
        await store.attach_attribute(sensor, await store.create_attribute(type_label, value))


async def _readings(store):
    (sensor,) = await store.get_instances("Sensor")
    readings = {}
    for type_label in SENSOR_READINGS:
        (attribute,) = await store.get_instances(type_label)
        assert await store.get_attribute_owners(attribute) == [sensor]
        readings[type_label] = await store.get_attribute_value(attribute)
    return readings


class TestValueFidelity:
    """Test that every value kind survives an export and import unchanged."""

    @pytest.mark.asyncio
    async def test_memory_backend(self, tmp_path):
        source = MemoryGraphStore("source")
        await _build_sensor(source)
        await GraphExporter(_config()).run(source, tmp_path)

        target = MemoryGraphStore("target")
        result = await GraphImporter(_config()).run(target, tmp_path)

        assert result.success
        assert result.failures == []
        assert await _readings(target) == {label: value for label, (_, value) in SENSOR_READINGS.items()}

    @pytest.mark.asyncio
    async def test_sqlite_backend(self, tmp_path):
        source = SqliteGraphStore(database_path=str(tmp_path / "stores" / "source.db"))
        target = SqliteGraphStore(database_path=str(tmp_path / "stores" / "target.db"))

        async with source:
            await _build_sensor(source)
            export = await GraphExporter(_config()).run(source, tmp_path / "export")
        assert export.success

        async with target:
            result = await GraphImporter(_config()).run(target, tmp_path / "export")
            assert result.success
            assert result.failures == []
            readings = await _readings(target)

        assert readings == {label: value for label, (_, value) in SENSOR_READINGS.items()}
        assert type(readings["active"]) is bool
        assert type(readings["installed"]) is datetime
