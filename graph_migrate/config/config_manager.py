"""
Configuration for graph migration runs.

Settings live in a tree of dataclasses. They are filled in from, in
increasing priority:

1. the dataclass defaults
2. ``config.yaml`` / ``config.json`` in the configuration directory
3. ``environments/config.<ENVIRONMENT>.yaml`` / ``.json``
4. environment variables (see ``ENV_OVERRIDES``)

and validated once everything is loaded. Values from files and from the
environment go through the same coercion, driven by the type of the default
they replace, so ``"fail_fast"`` becomes ``ErrorPolicy.FAIL_FAST`` and
``"25"`` becomes ``25`` wherever they come from.
"""

import os
import json
import yaml
import logging
from typing import Any, Callable, Dict, Iterator, Optional, Union
from pathlib import Path
from dataclasses import asdict, dataclass, field, is_dataclass
from enum import Enum
import threading


class Environment(Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorPolicy(Enum):
    """How the importer reacts to a failing row."""

    BEST_EFFORT = "best_effort"
    FAIL_FAST = "fail_fast"


SUPPORTED_BACKENDS = ("memory", "sqlite")

# Environment variable -> dotted configuration path
ENV_OVERRIDES: Dict[str, str] = {
    "ENVIRONMENT": "environment",
    "DEBUG": "debug",
    "GRAPH_STORE_BACKEND": "storage.backend",
    "SQLITE_DIRECTORY": "storage.sqlite.directory",
    "MIGRATION_ERROR_POLICY": "migration.error_policy",
    "WRITE_SCHEMA_DEFINITION": "migration.write_schema_definition",
    "PROGRESS_INTERVAL": "migration.progress_interval",
    "LOG_LEVEL": "logging.level",
    "LOG_FORMAT": "logging.format",
    "LOG_JSON": "logging.json_format",
    "LOG_FILE": "logging.file_path",
}

# Extra normalisation for plain string settings
_NORMALIZERS: Dict[str, Callable[[str], str]] = {
    "storage.backend": str.lower,
}

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


@dataclass
class SqliteStoreConfig:
    """SQLite store configuration"""

    directory: str = "./data/stores"


@dataclass
class StorageConfig:
    """Storage layer configuration"""

    backend: str = "sqlite"  # Options: "memory", "sqlite"
    sqlite: SqliteStoreConfig = field(default_factory=SqliteStoreConfig)


@dataclass
class MigrationConfig:
    """Export and import behaviour"""

    error_policy: ErrorPolicy = ErrorPolicy.BEST_EFFORT
    write_schema_definition: bool = True
    progress_interval: int = 10000  # rows between progress log lines


@dataclass
class LoggingConfig:
    """Logging configuration"""

    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json_format: bool = False
    file_path: Optional[str] = None


@dataclass
class AppConfig:
    """Main application configuration"""

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    storage: StorageConfig = field(default_factory=StorageConfig)
    migration: MigrationConfig = field(default_factory=MigrationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""

    pass


def _coerce(current: Any, value: Any) -> Any:
    """
    Convert a raw file or environment value to the type of the value it replaces.

    Raises:
        ValueError: If the value cannot be represented as that type
    """
    if isinstance(current, Enum):
        wanted = str(value).lower()
        for member in type(current):
            if member.value.lower() == wanted:
                return member
        raise ValueError(f"expected one of {[member.value for member in type(current)]}")
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        text = str(value).lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ValueError("expected a boolean")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, str):
        return str(value)
    return value


def _flatten(data: Dict[str, Any], prefix: str = "") -> Iterator[tuple]:
    """Yield (dotted path, value) pairs of a nested mapping."""
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            yield from _flatten(value, path)
        else:
            yield path, value


def _read_config_file(file_path: Path) -> Optional[Dict[str, Any]]:
    with open(file_path, "r") as f:
        if file_path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(f)
        return json.load(f)


class ConfigManager:
    """
    Process-wide configuration.

    A singleton: every construction after the first returns the loaded
    instance until ``reset()`` is called.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            with cls._lock:
                if not cls._instance:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        if hasattr(self, "_initialized"):
            return

        self._initialized = True
        self.config_dir = Path(config_dir) if config_dir else Path.cwd() / "config"
        self.config: AppConfig = AppConfig()
        self.logger = logging.getLogger(__name__)

        self._load_configuration()

    @classmethod
    def reset(cls):
        """Drop the singleton so the next construction reloads every source."""
        with cls._lock:
            cls._instance = None

    def _config_files(self) -> Iterator[Path]:
        env = os.getenv("ENVIRONMENT", Environment.DEVELOPMENT.value).lower()
        for name in ("config", f"environments/config.{env}"):
            for suffix in (".yaml", ".json"):
                yield self.config_dir / f"{name}{suffix}"

    def _load_configuration(self):
        self.config = AppConfig()

        for file_path in self._config_files():
            if file_path.exists():
                self._apply_file(file_path)

        for env_var, path in ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value is not None:
                self._apply(path, value, source=env_var)

        self._validate_configuration()

    def _apply_file(self, file_path: Path):
        try:
            data = _read_config_file(file_path)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            self.logger.warning(f"Failed to load configuration from {file_path.name}: {e}")
            return

        if not data:
            return
        for path, value in _flatten(data):
            self._apply(path, value, source=file_path.name)
        self.logger.info(f"Loaded configuration from {file_path.relative_to(self.config_dir)}")

    def _apply(self, path: str, value: Any, source: str):
        """Set one value, logging and skipping anything that does not fit."""
        try:
            self._assign(path, value)
        except AttributeError:
            self.logger.warning(f"Unknown configuration key in {source}: {path}")
        except (ValueError, TypeError) as e:
            self.logger.warning(f"Invalid value for {path} in {source}: {value!r} ({e})")

    def _assign(self, path: str, value: Any):
        *parents, name = path.split(".")
        target = self.config
        for part in parents:
            target = getattr(target, part)
        if not is_dataclass(target) or not hasattr(target, name):
            raise AttributeError(path)

        current = getattr(target, name)
        if is_dataclass(current):
            raise AttributeError(path)
        if value is not None and current is not None:
            value = _coerce(current, value)
        if path in _NORMALIZERS and isinstance(value, str):
            value = _NORMALIZERS[path](value)
        setattr(target, name, value)

    def _validate_configuration(self):
        errors = []

        if self.config.storage.backend not in SUPPORTED_BACKENDS:
            errors.append(
                f"Unknown storage backend '{self.config.storage.backend}' "
                f"(expected one of {', '.join(SUPPORTED_BACKENDS)})"
            )

        if not self.config.storage.sqlite.directory:
            errors.append("SQLITE_DIRECTORY must not be empty")

        if self.config.migration.progress_interval <= 0:
            errors.append("Progress interval must be a positive number of rows")

        if errors:
            raise ConfigValidationError(f"Configuration validation failed: {'; '.join(errors)}")

    def reload_configuration(self):
        """Reload configuration from all sources"""
        self._load_configuration()
        self.logger.info("Configuration reloaded")

    def get(self, path: str, default: Any = None) -> Any:
        """Get a configuration value by dotted path"""
        value = self.config
        for part in path.split("."):
            if not hasattr(value, part):
                return default
            value = getattr(value, part)
        return value

    def set(self, path: str, value: Any):
        """
        Set a configuration value by dotted path and revalidate.

        Raises:
            AttributeError: If the path names no setting
            ConfigValidationError: If the new value is invalid
        """
        self._assign(path, value)
        self._validate_configuration()

    def to_dict(self) -> Dict[str, Any]:
        """Configuration as plain data, enums replaced by their values."""

        def _plain(items):
            return {key: value.value if isinstance(value, Enum) else value for key, value in items}

        return asdict(self.config, dict_factory=_plain)

    def save_to_file(self, filename: str, format: str = "yaml"):
        """Write the current configuration into the configuration directory."""
        file_path = self.config_dir / filename
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "w") as f:
            if format.lower() == "yaml":
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, indent=2)
            else:
                json.dump(self.to_dict(), f, indent=2)

        self.logger.info(f"Configuration saved to {filename}")


# Global configuration instance
_config_manager: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Get the global configuration manager instance"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def init_config(config_dir: Optional[Union[str, Path]] = None) -> ConfigManager:
    """Load configuration afresh, optionally from another directory"""
    global _config_manager
    ConfigManager.reset()
    _config_manager = ConfigManager(config_dir)
    return _config_manager
