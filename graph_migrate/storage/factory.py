"""
Storage factory for creating typed graph store instances.

This module provides a factory to instantiate the appropriate store backend
for a server address and store name, based on configuration settings.
"""
import logging
from pathlib import Path
from typing import List, Optional

from graph_migrate.config import get_config
from graph_migrate.storage.interfaces.typed_graph_store_interface import TypedGraphStoreInterface


SQLITE_SCHEME = "sqlite://"


class StorageFactory:
    """
    Factory class for creating typed graph store instances.

    A store is addressed the way the command line addresses it: a server
    address plus a store name. What the address means is up to the backend.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._backends = {}
        self._register_backends()

    def _register_backends(self):
        """Register available storage backends."""
        from graph_migrate.storage.backends.memory import MemoryGraphStore

        self._backends["memory"] = MemoryGraphStore

        try:
            from graph_migrate.storage.backends.sqlite import SqliteGraphStore
            self._backends["sqlite"] = SqliteGraphStore
        except ImportError:
            self.logger.warning("SQLite backend not available (missing aiosqlite)")

    def create_store(
        self,
        backend_type: Optional[str] = None,
        address: Optional[str] = None,
        store_name: str = "default",
    ) -> TypedGraphStoreInterface:
        """
        Create a typed graph store instance.

        Args:
            backend_type: Type of backend to create ('memory', 'sqlite').
                         If None, uses configuration setting.
            address: Server address. For sqlite, the directory holding the
                     database files (an optional ``sqlite://`` prefix is stripped).
            store_name: Name of the store at that address

        Returns:
            Configured store instance

        Raises:
            ValueError: If the backend type is not supported
        """
        config = get_config()

        if backend_type is None:
            backend_type = config.config.storage.backend

        if backend_type not in self._backends:
            available_backends = list(self._backends.keys())
            raise ValueError(
                f"Unsupported backend type '{backend_type}'. "
                f"Available backends: {available_backends}"
            )

        backend_class = self._backends[backend_type]

        if backend_type == "memory":
            return backend_class.shared(store_name)
        elif backend_type == "sqlite":
            return self._create_sqlite_store(backend_class, address, store_name, config)
        else:
            return backend_class(store_name)

    def _create_sqlite_store(self, backend_class, address: Optional[str], store_name: str, config):
        """Create SQLite store instance for <address>/<store_name>.db."""
        directory = address or config.config.storage.sqlite.directory
        if directory.startswith(SQLITE_SCHEME):
            directory = directory[len(SQLITE_SCHEME):]
        database_path = Path(directory) / f"{store_name}.db"
        self.logger.debug(f"Resolved sqlite store '{store_name}' to {database_path}")
        return backend_class(database_path=str(database_path))

    def list_available_backends(self) -> List[str]:
        """
        List all available storage backends.

        Returns:
            List of backend type names
        """
        return list(self._backends.keys())

    def is_backend_available(self, backend_type: str) -> bool:
        """
        Check if a specific backend is available.

        Args:
            backend_type: Type of backend to check

        Returns:
            True if backend is available, False otherwise
        """
        return backend_type in self._backends


# Global factory instance
_storage_factory = StorageFactory()


def create_store(
    backend_type: Optional[str] = None,
    address: Optional[str] = None,
    store_name: str = "default",
) -> TypedGraphStoreInterface:
    """
    Create a typed graph store instance using the global factory.

    Args:
        backend_type: Type of backend to create ('memory', 'sqlite').
                     If None, uses configuration setting.
        address: Server address of the store
        store_name: Name of the store at that address

    Returns:
        Configured store instance

    Raises:
        ValueError: If the backend type is not supported
    """
    return _storage_factory.create_store(backend_type, address, store_name)


def list_available_backends() -> List[str]:
    """List all available storage backends."""
    return _storage_factory.list_available_backends()


def is_backend_available(backend_type: str) -> bool:
    """Check if a specific backend is available."""
    return _storage_factory.is_backend_available(backend_type)
