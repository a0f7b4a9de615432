"""Logging setup: coloured console on stderr, optional JSON-lines file."""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union


# Structured fields a LogContext may attach to records
CONTEXT_FIELDS = ('resource_type', 'action', 'operation', 'duration')

_log_context: "ContextVar[Dict[str, Any]]" = ContextVar('converge_log_context', default={})


class ContextFilter(logging.Filter):
    """Copies the active LogContext fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update({
            field: getattr(record, field) for field in CONTEXT_FIELDS if hasattr(record, field)
        })
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short coloured lines prefixed with the resource being reconciled."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime('%H:%M:%S')
        message = record.getMessage()

        resource_type = getattr(record, 'resource_type', None)
        if resource_type:
            action = getattr(record, 'action', None)
            message = f"[{resource_type}:{action}] {message}" if action else f"[{resource_type}] {message}"

        line = f"{timestamp} {color}{record.levelname:8}{self.RESET} {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(log_level: str = 'info', log_dir: Optional[Union[str, Path]] = None) -> None:
    """Configure the root logger.

    Args:
        log_level: Console level (debug, info, warning, error)
        log_dir: Directory for daily JSON-lines files, always at DEBUG;
            no file logging when None
    """
    level = getattr(logging, log_level.upper())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG if log_dir else level)

    # stderr keeps stdout free for state output
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(ConsoleFormatter())
    console.addFilter(ContextFilter())
    root.addHandler(console)

    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        filename = f"converge-{datetime.now(timezone.utc):%Y%m%d}.jsonl"
        file_handler = logging.FileHandler(directory / filename)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(ContextFilter())
        root.addHandler(file_handler)

    for noisy in ('boto3', 'botocore', 'urllib3'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically ``get_logger(__name__)``)."""
    return logging.getLogger(name)


class LogContext:
    """Attach structured fields to every record logged inside the block.

    Fields live in a context variable, so concurrent reconciliations on
    different threads never see each other's fields. Nested contexts
    override outer values for their duration.

    Example:
        with LogContext(resource_type='aws:SQS.Queue', action='apply'):
            logger.info("Applying")
    """

    def __init__(self, **kwargs: Any):
        self.fields = {k: v for k, v in kwargs.items() if v is not None}
        self._token = None

    def __enter__(self):
        self._token = _log_context.set({**_log_context.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _log_context.reset(self._token)
        self._token = None
