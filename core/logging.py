# PATH: core/logging.py
"""
core/logging.py - Structured logging for the RPC layer and block reader.

Every record may carry a "context" dict. Callers attach it only through
extra={"context": {...}}; the formatters merge it with the process-wide
context (service, chain) set at startup.

    logger = get_logger(__name__)
    logger.info("Consensus head", extra={"context": {"height": 41234567}})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Process-wide fields merged into every entry (e.g. service, chain)
_global_context: dict[str, Any] = {}

# Libraries whose INFO chatter drowns out reader output
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

CONSOLE_CONTEXT_FIELDS = 4


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    return dict(getattr(record, "context", None) or {})


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line:

    {"timestamp": "2026-01-04T12:00:00.000+00:00", "level": "INFO",
     "logger": "ingestion.block_reader", "message": "...",
     "context": {"service": "block-reader", "block_number": 41234567}}

    The timestamp is the record creation time, not the formatting time.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {**_global_context, **_record_context(record)}
        if record.exc_info:
            context["exception"] = self.formatException(record.exc_info)
        if context:
            entry["context"] = context

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Single-line output for terminals:

        2026-01-04 12:00:00 | INFO     | chains.multinode | message | k=v, ...

    Only the first few context fields are shown.
    """

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{stamp} | {record.levelname:<8} | {record.name} | {record.getMessage()}"

        context = _record_context(record)
        if context:
            shown = list(context.items())[:CONSOLE_CONTEXT_FIELDS]
            line += " | " + ", ".join(f"{key}={value}" for key, value in shown)
            hidden = len(context) - len(shown)
            if hidden:
                line += f", ... (+{hidden} more)"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextAdapter(logging.LoggerAdapter):
    """
    Adapter holding per-logger default context.

    Call-site context wins over the defaults on key collisions.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        call_context = kwargs.get("extra", {}).get("context", {})
        kwargs["extra"] = {"context": {**self.extra, **call_context}}
        return msg, kwargs


def set_global_context(**fields: Any) -> None:
    """Add fields to every subsequent entry, e.g. set_global_context(chain="bsc")."""
    _global_context.update(fields)


def clear_global_context() -> None:
    _global_context.clear()


def get_logger(name: str, **context: Any) -> ContextAdapter:
    """
    Logger for a module, optionally with default context fields.

    Example:
        logger = get_logger("chains.multinode", chain_id=56)
    """
    return ContextAdapter(logging.getLogger(name), context)


def setup_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_output: JSON lines on stdout; False gives ConsoleFormatter
        log_file: Also append JSON lines to this file
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(JSONFormatter() if json_output else ConsoleFormatter())
    root.addHandler(stdout_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_endpoint_failure(
    logger: ContextAdapter,
    url: str,
    method: str,
    error: BaseException | str,
    **extra: Any,
) -> None:
    """WARNING for one endpoint's failure inside a fan-out."""
    logger.warning(
        f"[RPC FAIL] {url} -> {error}",
        extra={"context": {"url": url, "method": method, "error": str(error), **extra}},
    )
