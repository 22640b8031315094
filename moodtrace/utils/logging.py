"""
Logging setup for the MoodTrace pipeline.

The pipeline runs on several threads at once (sampling worker, text
retry loop, classifier worker), so every line carries the thread name.
Components that track a cycle attach it through create_logger_with_context().

Console output goes to stderr; stdout is reserved for CLI results.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional


TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)-12s [%(threadName)s] %(message)s"
TEXT_DATE_FORMAT = "%H:%M:%S"

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

LEVEL_COLORS = {
    "DEBUG": "\033[2m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[1;31m",
}
RESET = "\033[0m"


def _context_of(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "context", None) or {}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Context keys (e.g. ``generation``) are merged into the top level so a
    cycle can be followed with a plain ``jq 'select(.generation == 3)'``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        for key, value in _context_of(record).items():
            entry.setdefault(key, value)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Text lines for a terminal, with optional level colors and a context tag."""

    def __init__(self, colored: bool = False):
        super().__init__(TEXT_FORMAT, TEXT_DATE_FORMAT)
        self.colored = colored

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = _context_of(record)
        if context:
            tags = " ".join(f"{key}={value}" for key, value in context.items())
            line = f"{line} [{tags}]"
        if self.colored:
            color = LEVEL_COLORS.get(record.levelname, "")
            line = f"{color}{line}{RESET}"
        return line


def setup_logging(
    settings: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
    stream: Any = None,
) -> None:
    """
    Configure the root logger from the ``logging`` config section.

    Args:
        settings: Section with ``level``, ``format`` ("json" or "text") and
            optional ``file``
        verbose: Force DEBUG regardless of the configured level
        stream: Console stream, stderr by default
    """
    settings = settings or {}
    level = "DEBUG" if verbose else str(settings.get("level", "INFO")).upper()
    stream = stream if stream is not None else sys.stderr

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers = []

    console = logging.StreamHandler(stream)
    if settings.get("format", "text") == "json":
        console.setFormatter(JSONFormatter())
    else:
        isatty = getattr(stream, "isatty", None)
        console.setFormatter(ConsoleFormatter(colored=bool(isatty and isatty())))
    root.addHandler(console)

    log_file = settings.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        )
        # Files are always JSON lines
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)


class ContextAdapter(logging.LoggerAdapter):
    """
    Attaches a live context dict to every record.

    The dict is read at log time, so owners can update it in place
    (the coordinator bumps ``generation`` at the end of each cycle).
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple[str, Dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = dict(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def create_logger_with_context(name: str, context: Dict[str, Any]) -> ContextAdapter:
    """
    Logger for ``name`` whose records carry ``context``.

    Example:
        context = {"generation": 0}
        logger = create_logger_with_context("coordinator", context)
        context["generation"] = 1
        logger.info("Cycle complete")  # record.context == {"generation": 1}
    """
    return ContextAdapter(logging.getLogger(name), context)
