"""Structured logging for sync runs.

Events go through structlog into stdlib logging, where python-json-logger
renders them as JSON lines:

* console and ``logs/sync.log`` get every event at the configured level,
* ``logs/error.log`` gets errors only,
* ``logs/sources/<tag>.log`` gets the events bound to one source.

The log directory follows ``LEAD_SYNC_HOME``; when it changes between calls the
handlers are rebuilt against the new directory.
"""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Any, Iterable

import structlog

ROOT_LOGGER = "lead_sync"
SOURCE_LOGGER_PREFIX = f"{ROOT_LOGGER}.source."
_JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured_dir: Path | None = None
_configured_level = "INFO"


def _default_log_dir() -> Path:
    env_root = os.environ.get("LEAD_SYNC_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def _logging_config(directory: Path, level: str) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "pythonjsonlogger.json.JsonFormatter", "fmt": _JSON_FORMAT}
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
            "sync_file": {
                "class": "logging.FileHandler",
                "level": "INFO",
                "filename": str(directory / "sync.log"),
                "encoding": "utf-8",
                "formatter": "json",
            },
            "error_file": {
                "class": "logging.FileHandler",
                "level": "ERROR",
                "filename": str(directory / "error.log"),
                "encoding": "utf-8",
                "formatter": "json",
            },
        },
        "loggers": {
            ROOT_LOGGER: {
                "handlers": ["console", "sync_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure handlers for the current log directory and return the app logger.

    ``verbose`` only ever raises the level to DEBUG; later non-verbose calls from
    library code keep whatever the entrypoint chose.
    """

    global _configured_dir, _configured_level
    directory = _default_log_dir()
    level = "DEBUG" if verbose else _configured_level
    if directory == _configured_dir and level == _configured_level:
        return structlog.get_logger(ROOT_LOGGER)

    (directory / "sources").mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(_logging_config(directory, level))
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured_dir = directory
    _configured_level = level
    return structlog.get_logger(ROOT_LOGGER)


def source_logger(source_tag: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to ``source_tag`` that also writes to its own file.

    Raises ``OSError`` when the per-source file cannot be opened.
    """

    configure_logging(verbose)
    path = _default_log_dir() / "sources" / f"{source_tag}.log"
    py_logger = logging.getLogger(f"{SOURCE_LOGGER_PREFIX}{source_tag}")
    current = False
    for handler in list(py_logger.handlers):
        if not isinstance(handler, logging.FileHandler):
            continue
        if handler.baseFilename == str(path):
            current = True
        else:
            # Left over from a previous log directory
            py_logger.removeHandler(handler)
            handler.close()

    if not current:
        file_handler = logging.FileHandler(path, encoding="utf-8")
        root_handlers = logging.getLogger(ROOT_LOGGER).handlers
        if root_handlers:
            file_handler.setFormatter(root_handlers[0].formatter)
        file_handler.setLevel(logging.INFO)
        py_logger.addHandler(file_handler)

    return structlog.get_logger(py_logger.name).bind(source=source_tag)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last ``line_count`` lines of ``path`` (empty if missing)."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def available_source_logs() -> Iterable[Path]:
    sources_dir = _default_log_dir() / "sources"
    if not sources_dir.exists():
        return []
    return sorted(path for path in sources_dir.glob("*.log") if path.is_file())


def log_dir() -> Path:
    return _default_log_dir()


__all__ = ["available_source_logs", "configure_logging", "log_dir", "source_logger", "tail_log"]
