"""
Logging setup.

Configures the root logger once at startup. Every record is enriched with the
correlation id of the current request (read from the audit context variable)
so log lines can be joined with ``audit_logs.correlation_id``.

Handlers emit domain events the usual way:

    logger.info("Client created", extra={"event": "client_created", "client_id": str(client.id)})

With ``LOG_JSON`` enabled each record is rendered as one JSON object per line,
including every ``extra`` field.
"""
import json
import logging
from datetime import datetime, timezone

from backoffice.audit.context import get_audit_context
from backoffice.core.config import settings

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "correlation_id"}


class CorrelationIdFilter(logging.Filter):
    """Attach the current request's correlation id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_audit_context()
        record.correlation_id = context.correlation_id if context else "-"
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Install a single stream handler on the root logger."""
    level = (level or settings.LOG_LEVEL).upper()
    json_output = settings.LOG_JSON if json_output is None else json_output

    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s")
        )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
