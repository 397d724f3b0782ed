"""
Instance exporter.

Writes one data file per concrete type: ``entity/<T>``, ``attribute/<T>``,
``relation/<T>`` and, per attribute type, ``ownership/<T>``. Only instances
whose exact type is ``T`` go into ``T``'s file, so every instance is written
exactly once. The aggregate instance counts are written last, as the
``checksums`` file the importer verifies against.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Union

from graph_migrate.migration.checksum import CHECKSUM_FILE, snapshot, write_checksums
from graph_migrate.migration.row_format import escape_field, format_ownership_row, format_relation_row, join_row
from graph_migrate.model.records import InstanceCounts, OwnershipRecord
from graph_migrate.model.schema_types import Category, UnsupportedValueKindError
from graph_migrate.storage.interfaces.typed_graph_store_interface import SourceStoreInterface

logger = logging.getLogger(__name__)

OWNERSHIP_DIR = "ownership"


@dataclass
class ExportStats:
    """Rows written per type, plus the checksum counts."""

    entities: Dict[str, int] = field(default_factory=dict)
    attributes: Dict[str, int] = field(default_factory=dict)
    relations: Dict[str, int] = field(default_factory=dict)
    ownerships: Dict[str, int] = field(default_factory=dict)
    checksums: InstanceCounts = field(default_factory=InstanceCounts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entities": dict(self.entities),
            "attributes": dict(self.attributes),
            "relations": dict(self.relations),
            "ownerships": dict(self.ownerships),
            "checksums": self.checksums.as_list(),
        }


class InstanceExporter:
    """Writes the instance data files of a source store."""

    def __init__(self, store: SourceStoreInterface, progress_interval: int = 10000):
        self.store = store
        self.progress_interval = progress_interval
        self.logger = logging.getLogger(__name__)

    def _progress(self, kind: str, type_label: str, written: int) -> None:
        if written % self.progress_interval == 0:
            self.logger.info(f"Exported {written} {kind} rows of {type_label}")

    async def export(self, data_root: Union[str, Path]) -> ExportStats:
        """
        Export every instance of every concrete type.

        Args:
            data_root: The ``data`` directory of the export

        Returns:
            ExportStats with per-type row counts
        """
        data_root = Path(data_root)
        stats = ExportStats()

        await self._export_entities(data_root, stats)
        await self._export_attributes(data_root, stats)
        await self._export_relations(data_root, stats)

        stats.checksums = await snapshot(self.store)
        write_checksums(data_root / CHECKSUM_FILE, stats.checksums)
        self.logger.info(
            f"Wrote checksums: entity={stats.checksums.entity} "
            f"relation={stats.checksums.relation} attribute={stats.checksums.attribute}"
        )
        return stats

    async def _export_entities(self, data_root: Path, stats: ExportStats) -> None:
        directory = data_root / Category.ENTITY.value
        directory.mkdir(parents=True, exist_ok=True)

        for type_label in sorted(await self.store.get_concrete_types(Category.ENTITY)):
            written = 0
            with open(directory / type_label, "w", encoding="utf-8", newline="") as handle:
                for instance_id in await self.store.get_instances(type_label):
                    handle.write(escape_field(instance_id) + "\n")
                    written += 1
                    self._progress("entity", type_label, written)
            stats.entities[type_label] = written
            self.logger.info(f"Exported {written} instances of entity type {type_label}")

    async def _export_attributes(self, data_root: Path, stats: ExportStats) -> None:
        directory = data_root / Category.ATTRIBUTE.value
        ownership_directory = data_root / OWNERSHIP_DIR
        directory.mkdir(parents=True, exist_ok=True)
        ownership_directory.mkdir(parents=True, exist_ok=True)

        for type_label in sorted(await self.store.get_concrete_types(Category.ATTRIBUTE)):
            node = await self.store.get_type(type_label)
            if node is None or node.value_kind is None:
                raise UnsupportedValueKindError(f"Attribute type '{type_label}' has no value kind")
            format_value = node.value_kind.formatter

            written = 0
            owned = 0
            with open(directory / type_label, "w", encoding="utf-8", newline="") as values, open(
                ownership_directory / type_label, "w", encoding="utf-8", newline=""
            ) as ownerships:
                for instance_id in await self.store.get_instances(type_label):
                    value = await self.store.get_attribute_value(instance_id)
                    values.write(join_row([instance_id, format_value(value)]) + "\n")
                    written += 1
                    self._progress("attribute", type_label, written)

                    for owner_id in await self.store.get_attribute_owners(instance_id):
                        ownerships.write(format_ownership_row(OwnershipRecord(instance_id, owner_id)) + "\n")
                        owned += 1

            stats.attributes[type_label] = written
            stats.ownerships[type_label] = owned
            self.logger.info(
                f"Exported {written} instances of attribute type {type_label} with {owned} owners"
            )

    async def _export_relations(self, data_root: Path, stats: ExportStats) -> None:
        directory = data_root / Category.RELATION.value
        directory.mkdir(parents=True, exist_ok=True)

        for type_label in sorted(await self.store.get_concrete_types(Category.RELATION)):
            written = 0
            with open(directory / type_label, "w", encoding="utf-8", newline="") as handle:
                for instance_id in await self.store.get_instances(type_label):
                    role_players = await self.store.get_role_players(instance_id)
                    handle.write(format_relation_row(instance_id, role_players) + "\n")
                    written += 1
                    self._progress("relation", type_label, written)
            stats.relations[type_label] = written
            self.logger.info(f"Exported {written} instances of relation type {type_label}")
