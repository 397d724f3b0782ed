"""
Export and import of typed property graphs.
"""

from .exceptions import (
    MigrationError,
    MalformedRowError,
    SchemaImportError,
    UnresolvedReferenceError,
    DuplicateIdentifierError,
)
from .schema_codec import SchemaSnapshot, export_schema, import_schema
from .schema_definition import render_schema
from .instance_exporter import InstanceExporter, ExportStats
from .id_remap import IdentifierRemap
from .graph_importer import GraphRelinkImporter, ImportContext, ImportStats, RowFailure
from .checksum import ChecksumResult, snapshot, read_checksums, write_checksums, verify
from .runner import GraphExporter, GraphImporter, ExportResult, ImportResult

__all__ = [
    "MigrationError",
    "MalformedRowError",
    "SchemaImportError",
    "UnresolvedReferenceError",
    "DuplicateIdentifierError",
    "SchemaSnapshot",
    "export_schema",
    "import_schema",
    "render_schema",
    "InstanceExporter",
    "ExportStats",
    "IdentifierRemap",
    "GraphRelinkImporter",
    "ImportContext",
    "ImportStats",
    "RowFailure",
    "ChecksumResult",
    "snapshot",
    "read_checksums",
    "write_checksums",
    "verify",
    "GraphExporter",
    "GraphImporter",
    "ExportResult",
    "ImportResult",
]
