#!/usr/bin/env python3
"""
graph-migrate - move the schema and data of a typed graph store into another store.

Usage:
    graph-migrate export EXPORT_DIR ADDRESS STORE [--backend=BACKEND] [--config=DIR]
    graph-migrate import DATA_DIR ADDRESS STORE [--backend=BACKEND] [--config=DIR] [--fail-fast]
    graph-migrate version
    graph-migrate --help

Commands:
    export              Write schema, instances and checksums of STORE into EXPORT_DIR/data
    import              Load an export's data directory into STORE and verify checksums
    version             Show version information

Arguments:
    EXPORT_DIR          Absolute export directory
    DATA_DIR            Absolute data directory (the export's "data" directory)
    ADDRESS             Server address of the store (for sqlite, the database directory)
    STORE               Name of the source or target store

Options:
    -h --help           Show this help message
    --backend=BACKEND   Storage backend (memory, sqlite) [default: from configuration]
    --config=DIR        Configuration directory
    --fail-fast         Abort the import on the first failing record

Exit status:
    0 run completed (failed records and checksum mismatches are reported)
    1 usage error
    2 the run aborted
"""

import os
import sys
import asyncio
import logging
import traceback
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from graph_migrate import __version__
from graph_migrate.config import ConfigManager, ConfigValidationError, ErrorPolicy, get_config, init_config
from graph_migrate.migration.runner import ExportResult, GraphExporter, GraphImporter, ImportResult
from graph_migrate.monitoring.structured_logger import configure_logging
from graph_migrate.storage.factory import create_store

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_FAILED = 2

# Options that take a value; every other option is a flag
VALUE_OPTIONS = ("backend", "config")


class GraphMigrateCLI:
    """graph-migrate command line interface."""

    def __init__(self, config_manager: ConfigManager):
        self.config_manager = config_manager

    @property
    def migration_config(self):
        return self.config_manager.config.migration

    async def export_command(self, export_dir: str, address: str, store_name: str, backend: Optional[str] = None) -> int:
        """Export a store."""
        print(f"📤 Exporting store '{store_name}' at {address} into {export_dir}...")

        store = create_store(backend, address, store_name)
        try:
            result = await GraphExporter(self.migration_config).run(store, export_dir)
        finally:
            await store.close()

        return self._report_export(result)

    async def import_command(
        self,
        data_dir: str,
        address: str,
        store_name: str,
        backend: Optional[str] = None,
        fail_fast: bool = False,
    ) -> int:
        """Import into a store."""
        print(f"📥 Importing {data_dir} into store '{store_name}' at {address}...")

        error_policy = ErrorPolicy.FAIL_FAST if fail_fast else None
        store = create_store(backend, address, store_name)
        try:
            result = await GraphImporter(self.migration_config, error_policy).run(store, data_dir)
        finally:
            await store.close()

        return self._report_import(result)

    def version_command(self):
        print(f"graph-migrate {__version__}")

    def _report_export(self, result: ExportResult) -> int:
        if not result.success:
            print("❌ Export failed")
            for error in result.errors:
                print(f"   Error: {error}")
            return EXIT_FAILED

        stats = result.stats
        print(f"✅ Export completed in {result.duration:.2f}s: {result.data_path}")
        print(
            f"📊 {stats.checksums.entity} entities, {stats.checksums.relation} relations, "
            f"{stats.checksums.attribute} attributes across {result.details.get('types', 0)} types"
        )
        return EXIT_OK

    def _report_import(self, result: ImportResult) -> int:
        if not result.success:
            print("❌ Import failed")
            for error in result.errors:
                print(f"   Error: {error}")
            return EXIT_FAILED

        stats = result.stats
        print(f"✅ Import completed in {result.duration:.2f}s")
        print(
            f"📊 {stats.entities} entities, {stats.attributes} attributes, "
            f"{stats.relations} relations ({stats.relations_deferred} deferred), "
            f"{stats.ownerships_attached} ownerships"
        )
        for checksum in result.checksums:
            mark = "✅" if checksum.matched else "⚠️"
            print(f"{mark} {checksum.category}: expected {checksum.expected}, imported {checksum.imported}")
        if result.failures:
            print(f"⚠️  {len(result.failures)} records failed:")
            for failure in result.failures:
                print(f"   {failure}")
        return EXIT_OK


def parse_args(argv: Optional[List[str]] = None) -> Tuple[Optional[str], Dict[str, Any]]:
    """Parse command line arguments manually."""
    argv = list(sys.argv[1:] if argv is None else argv)

    if not argv:
        return None, {}

    command = argv[0]
    args: Dict[str, Any] = {"positional": []}

    i = 1
    while i < len(argv):
        arg = argv[i]

        if arg.startswith("--"):
            if "=" in arg:
                key, value = arg[2:].split("=", 1)
                args[key] = value
            else:
                key = arg[2:]
                if key in VALUE_OPTIONS and i + 1 < len(argv):
                    args[key] = argv[i + 1]
                    i += 1
                else:
                    args[key] = True
        else:
            args["positional"].append(arg)

        i += 1

    return command, args


def _usage() -> int:
    print(__doc__)
    return EXIT_USAGE


def _load_config(args: Dict[str, Any]) -> ConfigManager:
    # a .env file in the working directory feeds the environment overrides
    load_dotenv(".env")
    if args.get("config"):
        return init_config(args["config"])
    return get_config()


async def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point. Returns the process exit status."""
    command, args = parse_args(argv)

    if command in ("--help", "-h", "help"):
        print(__doc__)
        return EXIT_OK

    if command not in ("export", "import", "version"):
        if command is not None:
            print(f"Error - unknown command: {command}")
        return _usage()

    try:
        config_manager = _load_config(args)
    except ConfigValidationError as e:
        print(f"❌ {e}")
        return EXIT_FAILED

    cli = GraphMigrateCLI(config_manager)
    if command == "version":
        cli.version_command()
        return EXIT_OK

    positional = args["positional"]
    if len(positional) != 3:
        if command == "export":
            print("Error - correct arguments: [absolute export directory] [server address] [source store name]")
        else:
            print("Error - correct arguments: [absolute data directory] [server address] [target store name]")
        return _usage()

    if not os.path.isabs(positional[0]):
        print(f"Error - the directory must be an absolute path: {positional[0]}")
        return _usage()

    logging_config = config_manager.config.logging
    configure_logging(
        log_level=logging_config.level.value,
        json_format=logging_config.json_format,
        log_format=logging_config.format,
        file_path=logging_config.file_path,
    )

    directory, address, store_name = positional
    backend = args.get("backend") or None
    try:
        if command == "export":
            return await cli.export_command(directory, address, store_name, backend)
        return await cli.import_command(
            directory, address, store_name, backend, fail_fast=bool(args.get("fail-fast"))
        )
    except ValueError as e:
        # unknown backend
        print(f"❌ {e}")
        return EXIT_FAILED
    except KeyboardInterrupt:
        print("\n🛑 Operation cancelled")
        return EXIT_FAILED
    except Exception as e:
        print(f"❌ Unexpected error: {e}")
        if os.getenv("DEBUG"):
            traceback.print_exc()
        return EXIT_FAILED


def run():
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
