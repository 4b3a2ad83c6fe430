"""
Logging setup for repodex.

Console output goes to stderr so command output on stdout stays clean.
The [logging] config section can add a rotating log file and switch both
outputs to one JSON object per line.
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .config import Config

# Chatty at INFO/DEBUG; raised to WARNING unless debugging
THIRD_PARTY_LOGGERS = ("httpx", "httpcore", "watchdog", "sentence_transformers", "urllib3")

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # logger.info(..., extra={"extra": {"path": ..., "chunks": ...}})
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            entry.update(fields)

        return json.dumps(entry, default=str)


def _level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    json_format: bool = False,
    max_log_size_mb: int = 10,
    log_backups: int = 5,
) -> None:
    """
    Replace the root logger's handlers with repodex's console and file handlers.

    Args:
        level: Log level name or number
        log_file: Optional log file, rotated at max_log_size_mb
        json_format: Emit JSON lines instead of text
        max_log_size_mb: Size at which the log file is rotated
        log_backups: Number of rotated files to keep

    Raises:
        ValueError: If the level name is unknown
    """
    numeric_level = _level(level)
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(numeric_level)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JsonFormatter() if json_format else logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    if log_file:
        path = Path(log_file).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                path,
                maxBytes=max_log_size_mb * 1024 * 1024,
                backupCount=log_backups,
                encoding="utf-8",
            )
        except OSError as e:
            root.warning(f"Cannot log to {path}: {e}; logging to console only")
        else:
            file_handler.setFormatter(
                JsonFormatter() if json_format else logging.Formatter(FILE_FORMAT, "%Y-%m-%d %H:%M:%S")
            )
            root.addHandler(file_handler)

    quiet = numeric_level > logging.DEBUG
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING if quiet else logging.NOTSET)

    root.debug(f"Logging configured at {logging.getLevelName(numeric_level)}")


def configure_logging(config: Config, debug: bool = False) -> None:
    """Apply the [logging] section of config; debug forces DEBUG level."""
    setup_logging(
        level="DEBUG" if debug else config.get("logging", "level", default="INFO"),
        log_file=config.get("logging", "file"),
        json_format=config.get("logging", "json", default=False),
        max_log_size_mb=config.get("logging", "max_size_mb", default=10),
        log_backups=config.get("logging", "backups", default=5),
    )


def set_log_level(level: Union[str, int]) -> None:
    """Change the root level at runtime (handlers follow the root level)."""
    logging.getLogger().setLevel(_level(level))
