from .config_manager import (
    AppConfig,
    ConfigManager,
    get_config,
    init_config,
    ConfigValidationError,
    Environment,
    ErrorPolicy,
    LogLevel,
)

__all__ = [
    "AppConfig",
    "ConfigManager",
    "get_config",
    "init_config",
    "ConfigValidationError",
    "Environment",
    "ErrorPolicy",
    "LogLevel",
]
