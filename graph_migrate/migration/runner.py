"""
Export and import runs.

A run wires the codec, exporter, importer and checksum verifier together,
times each phase, and turns fatal errors into an unsuccessful result instead
of an exception. Row failures and checksum mismatches are reported in the
result without making the run unsuccessful.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from graph_migrate.config import get_config
from graph_migrate.config.config_manager import ErrorPolicy, MigrationConfig
from graph_migrate.migration.checksum import (
    CHECKSUM_FILE,
    ChecksumResult,
    read_checksums,
    snapshot,
    verify,
)
from graph_migrate.migration.exceptions import MigrationError
from graph_migrate.migration.graph_importer import GraphRelinkImporter, ImportStats, RowFailure
from graph_migrate.migration.instance_exporter import ExportStats, InstanceExporter
from graph_migrate.migration.schema_codec import SCHEMA_DIR, export_schema, import_schema
from graph_migrate.migration.schema_definition import render_schema
from graph_migrate.model.schema_types import UnsupportedValueKindError
from graph_migrate.monitoring.structured_logger import LoggingContext, OperationLogger, get_logger
from graph_migrate.storage.interfaces.typed_graph_store_interface import (
    SourceStoreInterface,
    StoreError,
    TargetStoreInterface,
)

logger = logging.getLogger(__name__)

DATA_DIR = "data"
SCHEMA_DEFINITION_FILE = "schema.gql"

# Errors that end a run
FATAL_ERRORS = (MigrationError, StoreError, UnsupportedValueKindError, OSError, ValueError)


@dataclass
class ExportResult:
    """Result of an export run."""

    success: bool
    data_path: str
    duration: float
    stats: Optional[ExportStats] = None
    errors: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ImportResult:
    """Result of an import run."""

    success: bool
    data_path: str
    duration: float
    stats: Optional[ImportStats] = None
    checksums: List[ChecksumResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def failures(self) -> List[RowFailure]:
        return self.stats.failures if self.stats else []

    @property
    def checksums_matched(self) -> bool:
        return bool(self.checksums) and all(result.matched for result in self.checksums)


def resolve_data_root(path: Union[str, Path]) -> Path:
    """Accept either the ``data`` directory itself or the export directory holding it."""
    path = Path(path)
    if not (path / SCHEMA_DIR).is_dir() and (path / DATA_DIR / SCHEMA_DIR).is_dir():
        return path / DATA_DIR
    return path


class GraphExporter:
    """Exports schema and instances of a source store into ``<export dir>/data``."""

    def __init__(self, config: Optional[MigrationConfig] = None):
        self.config = config or get_config().config.migration
        self.structured_logger = get_logger(__name__, component="exporter")

    async def run(self, store: SourceStoreInterface, export_dir: Union[str, Path]) -> ExportResult:
        start_time = time.time()
        data_root = Path(export_dir) / DATA_DIR

        with LoggingContext() as run:
            logger.info(f"Starting export into {data_root} (run {run.run_id})")
            try:
                data_root.mkdir(parents=True, exist_ok=True)

                with OperationLogger(self.structured_logger, "export_schema"):
                    schema = await export_schema(store, data_root)

                if self.config.write_schema_definition:
                    with OperationLogger(self.structured_logger, "render_schema"):
                        (data_root / SCHEMA_DEFINITION_FILE).write_text(render_schema(schema), encoding="utf-8")

                with OperationLogger(self.structured_logger, "export_instances"):
                    stats = await InstanceExporter(store, self.config.progress_interval).export(data_root)

            except FATAL_ERRORS as e:
                error_msg = f"Export failed: {e}"
                logger.error(error_msg)
                return ExportResult(
                    success=False,
                    data_path=str(data_root),
                    duration=time.time() - start_time,
                    errors=[error_msg],
                    details={"run_id": run.run_id, "error_type": type(e).__name__},
                )

            logger.info(f"Completed export into {data_root}")
            return ExportResult(
                success=True,
                data_path=str(data_root),
                duration=time.time() - start_time,
                stats=stats,
                details={
                    "run_id": run.run_id,
                    "types": schema.type_count(),
                    "rules": len(schema.rules),
                },
            )


class GraphImporter:
    """Imports an export's ``data`` directory into a target store and verifies checksums."""

    def __init__(self, config: Optional[MigrationConfig] = None, error_policy: Optional[ErrorPolicy] = None):
        self.config = config or get_config().config.migration
        self.error_policy = error_policy or self.config.error_policy
        self.structured_logger = get_logger(__name__, component="importer")

    async def run(self, store: TargetStoreInterface, data_dir: Union[str, Path]) -> ImportResult:
        start_time = time.time()
        data_root = resolve_data_root(data_dir)

        with LoggingContext() as run:
            logger.info(
                f"Starting import from {data_root} (run {run.run_id}, policy {self.error_policy.value})"
            )
            try:
                expected = read_checksums(data_root / CHECKSUM_FILE)

                with OperationLogger(self.structured_logger, "import_schema"):
                    schema_counts = await import_schema(store, data_root)

                before = await snapshot(store)
                importer = GraphRelinkImporter(store, self.error_policy, self.config.progress_interval)
                stats = await importer.import_instances(data_root)
                after = await snapshot(store)

                with OperationLogger(self.structured_logger, "verify_checksums"):
                    checksums = verify(before, after, expected)

            except FATAL_ERRORS as e:
                error_msg = f"Import failed: {e}"
                logger.error(error_msg)
                return ImportResult(
                    success=False,
                    data_path=str(data_root),
                    duration=time.time() - start_time,
                    errors=[error_msg],
                    details={"run_id": run.run_id, "error_type": type(e).__name__},
                )

            warnings = [
                f"Checksum mismatch for {result.category}: expected {result.expected}, imported {result.imported}"
                for result in checksums
                if not result.matched
            ]
            if stats.failures:
                warnings.append(f"{len(stats.failures)} records failed to import")

            logger.info(f"Completed import from {data_root}")
            return ImportResult(
                success=True,
                data_path=str(data_root),
                duration=time.time() - start_time,
                stats=stats,
                checksums=checksums,
                warnings=warnings,
                details={"run_id": run.run_id, "schema": schema_counts},
            )
