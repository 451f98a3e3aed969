# src/polistore/logging_config.py
"""
Logging configuration for applications built on polistore.

polistore itself only ever calls ``logging.getLogger(__name__)``; importers,
batch jobs and web services call ``configure_logging`` once at startup to
install handlers.

Supports:
- Console logging to stderr
- File logging, either one timestamped file per run or a single rotating file
- Per-component log level overrides (``polistore``, ``botocore``, ...)

Configuration comes from a dict or from the ``[polistore.logging]`` table of
a TOML file.

Usage:
    from polistore.logging_config import configure_logging

    configure_logging(app_name="importer", config={"file_enabled": True})
"""

import logging
import os
import sys
import tomllib
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Default logging configuration
# ---------------------------------------------------------------------------

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": True,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_enabled": False,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/polistore/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,  # 10 MB
    "rotation_backup_count": 5,
    "components": {
        "polistore": "INFO",
        "botocore": "WARNING",
        "boto3": "WARNING",
        "s3transfer": "WARNING",
        "urllib3": "WARNING",
    },
}


def _level(value: str | int, default: int) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else default


# ---------------------------------------------------------------------------
# UnifiedLoggingManager
# ---------------------------------------------------------------------------


class UnifiedLoggingManager:
    """
    Singleton manager for logging configuration.

    Ensures logging is only configured once and provides methods
    for runtime adjustment of log levels.
    """

    _instance: Optional["UnifiedLoggingManager"] = None
    _configured: bool = False
    _log_file_path: Path | None = None
    _console_handler: logging.Handler | None = None
    _file_handler: logging.Handler | None = None

    def __new__(cls) -> "UnifiedLoggingManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def get_instance(cls) -> "UnifiedLoggingManager":
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    @classmethod
    def get_log_file_path(cls) -> Path | None:
        return cls._log_file_path

    def configure(
        self,
        app_name: str = "polistore",
        config: dict[str, Any] | None = None,
        config_file_path: str | Path | None = None,
        force_reconfigure: bool = False,
    ) -> Path | None:
        """
        Install handlers on the root logger.

        Args:
            app_name: Name of the application (used in the log filename).
            config: Logging configuration dictionary.
            config_file_path: TOML file with a ``[polistore.logging]`` table,
                used when ``config`` is not given.
            force_reconfigure: Reconfigure even if already configured.

        Returns:
            Path to the log file, or None when file logging is disabled.
        """
        if self._configured and not force_reconfigure:
            return self._log_file_path

        log_config = self._load_config(config, config_file_path)

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(logging.DEBUG)

        self._console_handler = None
        if log_config.get("console_enabled", True):
            self._console_handler = self._create_console_handler(log_config)
            root_logger.addHandler(self._console_handler)

        self._file_handler, log_file_path = None, None
        if log_config.get("file_enabled", False):
            self._file_handler, log_file_path = self._create_file_handler(log_config, app_name)
            if self._file_handler:
                root_logger.addHandler(self._file_handler)

        for component_name, level_str in log_config.get("components", {}).items():
            logging.getLogger(component_name).setLevel(_level(level_str, logging.INFO))

        UnifiedLoggingManager._configured = True
        UnifiedLoggingManager._log_file_path = log_file_path

        logging.getLogger(__name__).debug(f"Logging configured for {app_name}. Log file: {log_file_path}")
        return log_file_path

    def _load_config(self, config: dict[str, Any] | None, config_file_path: str | Path | None) -> dict[str, Any]:
        """Merge the given configuration over the defaults."""
        if config is None and config_file_path is not None:
            path = Path(os.path.expanduser(str(config_file_path)))
            try:
                with open(path, "rb") as f:
                    config = tomllib.load(f).get("polistore", {}).get("logging", {})
            except FileNotFoundError:
                sys.stderr.write(f"Warning: logging config file not found: {path}\n")
            except tomllib.TOMLDecodeError as e:
                sys.stderr.write(f"Warning: invalid TOML in {path}: {e}\n")

        merged = {**DEFAULT_LOGGING_CONFIG, **(config or {})}
        merged["components"] = {**DEFAULT_LOGGING_CONFIG["components"], **(config or {}).get("components", {})}
        return merged

    def _create_console_handler(self, config: dict[str, Any]) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(_level(config.get("console_level", "WARNING"), logging.WARNING))
        handler.setFormatter(logging.Formatter(config.get("console_format", DEFAULT_LOGGING_CONFIG["console_format"])))
        return handler

    def _create_file_handler(
        self, config: dict[str, Any], app_name: str
    ) -> tuple[logging.Handler | None, Path | None]:
        """Create the file handler.

        - ``"per_run"`` (default): a new timestamped file per invocation.
        - ``"single"``: one persistent file rotated at ``rotation_max_bytes``.
        """
        log_dir = Path(os.path.expanduser(config.get("file_directory", DEFAULT_LOGGING_CONFIG["file_directory"])))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        handler: logging.Handler
        if config.get("file_mode", "per_run") == "single":
            try:
                filename = config.get("file_single_name", "{app}.log").format(app=app_name)
            except (KeyError, ValueError):
                filename = f"{app_name}.log"
            log_file_path = log_dir / filename
            try:
                handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=config.get("rotation_max_bytes", 10 * 1024 * 1024),
                    backupCount=config.get("rotation_backup_count", 5),
                    encoding="utf-8",
                )
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None
        else:
            pattern = config.get("file_name_pattern", DEFAULT_LOGGING_CONFIG["file_name_pattern"])
            timestamp = datetime.now()
            try:
                filename = pattern.format(app=app_name, timestamp=timestamp)
            except (KeyError, ValueError):
                filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
            log_file_path = log_dir / filename
            try:
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None

        handler.setLevel(_level(config.get("file_level", "DEBUG"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"])))
        return handler, log_file_path

    def set_console_level(self, level: str | int) -> None:
        if self._console_handler is not None:
            self._console_handler.setLevel(_level(level, self._console_handler.level))

    def set_file_level(self, level: str | int) -> None:
        if self._file_handler is not None:
            self._file_handler.setLevel(_level(level, self._file_handler.level))

    def set_component_level(self, component: str, level: str | int) -> None:
        component_logger = logging.getLogger(component)
        component_logger.setLevel(_level(level, component_logger.level))


# ---------------------------------------------------------------------------
# Public module-level functions
# ---------------------------------------------------------------------------


def configure_logging(
    app_name: str = "polistore",
    config: dict[str, Any] | None = None,
    config_file_path: str | Path | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Configure logging for an application using polistore.

    Example:
        configure_logging(
            app_name="importer",
            config={"file_enabled": True, "file_mode": "single", "components": {"botocore": "DEBUG"}},
        )
    """
    return UnifiedLoggingManager.get_instance().configure(
        app_name=app_name,
        config=config,
        config_file_path=config_file_path,
        force_reconfigure=force_reconfigure,
    )


def get_log_file_path() -> Path | None:
    return UnifiedLoggingManager.get_log_file_path()


def set_console_level(level: str | int) -> None:
    UnifiedLoggingManager.get_instance().set_console_level(level)


def set_file_level(level: str | int) -> None:
    UnifiedLoggingManager.get_instance().set_file_level(level)


def set_component_level(component: str, level: str | int) -> None:
    UnifiedLoggingManager.get_instance().set_component_level(component, level)
