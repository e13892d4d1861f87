"""
Logging setup for the darp CLI.

Text logs by default; JSON lines when DARP_LOG_FORMAT=json, which is handy
when deploy runs from a script and the output is collected elsewhere.
Logs go to stderr so command output on stdout stays clean.
"""

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any

DEFAULT_LEVEL = "WARNING"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Fields: timestamp, level, logger, message, file, function, exception
    (when present), plus anything passed through ``extra=``.
    """

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created)
        timestamp = dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}"

        log_entry: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.pathname:
            log_entry["file"] = f"{record.filename}:{record.lineno}"
        if record.funcName and record.funcName != "<module>":
            log_entry["function"] = record.funcName
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_FIELDS and not key.startswith("_"):
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def is_json_logging_enabled() -> bool:
    """True if DARP_LOG_FORMAT=json"""
    return os.getenv("DARP_LOG_FORMAT", "text").strip().lower() == "json"


def _handlers(formatter: logging.Formatter, log_file: str | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file))
        except OSError as e:
            print(f"Warning: Could not open log file {log_file}: {e}", file=sys.stderr)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(level: str | None = None, log_file: str | None = None, force: bool = True) -> None:
    """
    Configure the root logger from the environment.

    Environment variables:
    - DARP_LOG_FORMAT: "json" or "text" (default: text)
    - DARP_LOG_LEVEL: Log level (default: WARNING)
    - DARP_LOG_FILE: Optional log file path

    Args:
        level: Override log level (uses DARP_LOG_LEVEL if None)
        log_file: Override log file (uses DARP_LOG_FILE if None)
        force: Force reconfiguration of root logger
    """
    if level is None:
        level = os.getenv("DARP_LOG_LEVEL", DEFAULT_LEVEL)
    if log_file is None:
        log_file = os.getenv("DARP_LOG_FILE")

    formatter = JSONFormatter() if is_json_logging_enabled() else logging.Formatter(TEXT_FORMAT)
    logging.basicConfig(level=level.upper(), handlers=_handlers(formatter, log_file), force=force)
