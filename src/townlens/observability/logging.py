"""Run-scoped logging for townlens.

A report run binds a correlation ID in a ContextVar. ``CorrelationFilter``
stamps it onto every record, so lines emitted by concurrent fetch tasks can be
grouped per run whether the handler writes JSON or plain text.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Record attributes passed via ``extra=`` by retrieval and pipeline code
CONTEXT_FIELDS = ("municipality", "dataset", "step", "attempt", "duration_ms")

QUIET_LOGGERS = ("httpx", "httpcore", "mlflow")


def get_correlation_id() -> str:
    return correlation_id.get()


def new_correlation_id() -> str:
    """Bind a fresh 12-hex-digit run ID to the current context and return it."""
    cid = uuid.uuid4().hex[:12]
    correlation_id.set(cid)
    return cid


class CorrelationFilter(logging.Filter):
    """Copy the active correlation ID onto the record as ``run_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "run_id", None):
            record.run_id = correlation_id.get()
        return True


def context_fields(record: logging.LogRecord) -> dict:
    """The ``CONTEXT_FIELDS`` present on a record, in declaration order."""
    fields = {}
    for name in CONTEXT_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            fields[name] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line; Japanese text is written unescaped."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        run_id = getattr(record, "run_id", None) or correlation_id.get()
        if run_id:
            entry["correlation_id"] = run_id
        entry.update(context_fields(record))
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable lines for local runs, prefixed with the run ID."""

    def __init__(self):
        super().__init__("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = context_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        run_id = getattr(record, "run_id", None) or correlation_id.get()
        return f"[{run_id}] {line}" if run_id else line


def setup_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Install a single stderr handler on the root logger.

    Args:
        json_format: JSON lines when True, ``TextFormatter`` output otherwise.
        level: Root log level name; unknown names fall back to INFO.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.addFilter(CorrelationFilter())
    handler.setFormatter(JSONFormatter() if json_format else TextFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
