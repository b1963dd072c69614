"""
Logging setup for the SignalRelay application.

Every module logs through the standard library with
``logging.getLogger(__name__)``; this package only decides where records go
and how they look:

- coloured console output
- rotating log files (all records, and errors only)
- per-component level overrides (``websockets`` is noisy at DEBUG)
- presets for development, production and testing

Usage:
    from SignalRelay.core.logging import auto_configure, get_logger

    auto_configure("production")
    logger = get_logger(__name__)
    logger.info("Relay started")
"""

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional


@dataclass
class LogConfig:
    """
    Configuration for the logging system.

    Attributes:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files
        console_output: Whether to output to console
        file_output: Whether to output to rotating files
        max_bytes: Maximum size of a log file before rotation (bytes)
        backup_count: Number of rotated files to keep
        format_string: Custom format string for log messages
        date_format: Date format string
        component_levels: Logger name -> level overrides
    """
    level: str = "INFO"
    log_dir: str = "./logs"
    console_output: bool = True
    file_output: bool = True
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    format_string: Optional[str] = None
    date_format: str = "%Y-%m-%d %H:%M:%S"
    component_levels: Dict[str, str] = field(default_factory=dict)


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name on terminals."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str, datefmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and sys.platform != 'win32'

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors or record.levelname not in self.COLORS:
            return super().format(record)
        # Colour a copy so file handlers sharing the record see the plain name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        return super().format(record)


def get_default_format() -> str:
    """Get the default log format string."""
    return "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_detailed_format() -> str:
    """Get a log format string with source location."""
    return (
        "%(asctime)s - %(name)s - %(levelname)s - "
        "[%(filename)s:%(lineno)d - %(funcName)s] - %(message)s"
    )


class LoggingManager:
    """
    Owns the handlers installed on the root logger.

    Reconfiguring removes the handlers installed by the previous call, so
    ``configure`` may be called repeatedly (tests do).
    """

    def __init__(self):
        self._config: Optional[LogConfig] = None
        self._handlers: List[logging.Handler] = []

    @property
    def config(self) -> Optional[LogConfig]:
        return self._config

    def configure(self, config: LogConfig) -> None:
        """
        Configure the logging system.

        Args:
            config: Logging configuration
        """
        self._config = config
        level = getattr(logging, config.level.upper())

        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []

        if config.console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            console_handler.setFormatter(ColoredFormatter(
                config.format_string or get_default_format(),
                config.date_format
            ))
            self._install(console_handler)

        if config.file_output:
            Path(config.log_dir).mkdir(parents=True, exist_ok=True)
            file_formatter = logging.Formatter(
                config.format_string or get_detailed_format(),
                config.date_format
            )

            file_handler = self._rotating(config, "signalrelay.log")
            file_handler.setLevel(level)
            file_handler.setFormatter(file_formatter)
            self._install(file_handler)

            error_handler = self._rotating(config, "signalrelay_errors.log")
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(file_formatter)
            self._install(error_handler)

        for component, component_level in config.component_levels.items():
            logging.getLogger(component).setLevel(getattr(logging, component_level.upper()))

        logging.getLogger(__name__).debug("Logging configured with level %s", config.level)

    def _install(self, handler: logging.Handler) -> None:
        logging.getLogger().addHandler(handler)
        self._handlers.append(handler)

    @staticmethod
    def _rotating(config: LogConfig, filename: str) -> logging.handlers.RotatingFileHandler:
        return logging.handlers.RotatingFileHandler(
            os.path.join(config.log_dir, filename),
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding='utf-8'
        )


_logging_manager = LoggingManager()


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically for ``__name__``)."""
    return logging.getLogger(name)


def configure_logging(config: LogConfig) -> None:
    """Configure the logging system."""
    _logging_manager.configure(config)


def get_logging_manager() -> LoggingManager:
    """Get the global logging manager instance."""
    return _logging_manager


def create_development_config() -> LogConfig:
    """Verbose console and file logging under ./logs/dev."""
    return LogConfig(
        level="DEBUG",
        log_dir="./logs/dev",
        max_bytes=5 * 1024 * 1024,  # 5MB
        backup_count=3,
        format_string=get_detailed_format(),
        component_levels={"websockets": "WARNING"},
    )


def create_production_config() -> LogConfig:
    """INFO-level console and file logging under ./logs/prod."""
    return LogConfig(
        level="INFO",
        log_dir="./logs/prod",
        max_bytes=50 * 1024 * 1024,  # 50MB
        backup_count=10,
        component_levels={"websockets": "ERROR"},
    )


def create_testing_config() -> LogConfig:
    """Console-only logging for test runs."""
    return LogConfig(
        level="DEBUG",
        console_output=True,
        file_output=False,
        format_string="%(levelname)s - %(name)s - %(message)s",
        component_levels={"websockets": "ERROR"},
    )


_PRESETS = {
    "development": create_development_config,
    "dev": create_development_config,
    "production": create_production_config,
    "prod": create_production_config,
    "testing": create_testing_config,
    "test": create_testing_config,
}


def auto_configure(env: Optional[str] = None) -> str:
    """
    Configure logging from a named preset.

    Args:
        env: Preset name. Read from ``SIGNALRELAY_ENV`` when None; unknown
             names fall back to production.

    Returns:
        The preset name that was applied
    """
    if env is None:
        env = os.environ.get("SIGNALRELAY_ENV", "production")
    env = env.lower()
    if env not in _PRESETS:
        env = "production"

    configure_logging(_PRESETS[env]())
    get_logger(__name__).info("Logging auto-configured for environment: %s", env)
    return env


__all__ = [
    'LogConfig',
    'LoggingManager',
    'ColoredFormatter',
    'get_logger',
    'configure_logging',
    'get_logging_manager',
    'create_development_config',
    'create_production_config',
    'create_testing_config',
    'auto_configure',
    'get_default_format',
    'get_detailed_format',
]
