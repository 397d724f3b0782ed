"""
Checksum verification of an import.

The exporter records the source store's aggregate instance counts; the
importer snapshots the target store before and after loading the data and
compares the difference against that record, one category at a time. A
mismatch is logged and reported, never raised.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Union

from graph_migrate.model.records import InstanceCounts
from graph_migrate.model.schema_types import Category
from graph_migrate.storage.interfaces.typed_graph_store_interface import SourceStoreInterface

logger = logging.getLogger(__name__)

CHECKSUM_FILE = "checksums"


@dataclass
class ChecksumResult:
    """Outcome of the check for one category."""

    category: str
    expected: int
    imported: int

    @property
    def matched(self) -> bool:
        return self.expected == self.imported

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "expected": self.expected,
            "imported": self.imported,
            "matched": self.matched,
        }


async def snapshot(store: SourceStoreInterface) -> InstanceCounts:
    """Aggregate entity, relation and attribute counts of a store."""
    return InstanceCounts(
        entity=await store.count_instances(Category.ENTITY),
        relation=await store.count_instances(Category.RELATION),
        attribute=await store.count_instances(Category.ATTRIBUTE),
    )


def write_checksums(path: Union[str, Path], counts: InstanceCounts) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        handle.write("\n".join(counts.to_lines()) + "\n")


def read_checksums(path: Union[str, Path]) -> InstanceCounts:
    """
    Read a checksum file.

    Raises:
        ValueError: If the file does not hold exactly three integer lines
    """
    with open(path, "r", encoding="utf-8") as handle:
        return InstanceCounts.from_lines(handle.read().splitlines())


def verify(before: InstanceCounts, after: InstanceCounts, expected: InstanceCounts) -> List[ChecksumResult]:
    """Compare ``after - before`` with the expected counts, per category."""
    imported = after - before
    results = []
    for category, expected_count, imported_count in zip(
        InstanceCounts.CATEGORIES, expected.as_list(), imported.as_list()
    ):
        result = ChecksumResult(category=category, expected=expected_count, imported=imported_count)
        if result.matched:
            logger.info(f"Checksum {category}: {imported_count} imported, as expected")
        else:
            logger.warning(
                f"Checksum mismatch for {category}: expected {expected_count}, imported {imported_count}"
            )
        results.append(result)
    return results
