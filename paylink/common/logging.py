"""JSON log lines tagged with the request's trace id and the payment it concerns.

Correlation fields live in context variables. `log_context` binds them for a
block and restores the previous values on exit, so one request never tags
another request's lines.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TextIO

from pythonjsonlogger.json import JsonFormatter

from paylink.common.config import settings


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(service)s %(trace_id)s %(payment_reference)s %(message)s"
RENAMED_FIELDS = {"asctime": "timestamp", "levelname": "level", "name": "logger"}

trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
payment_reference_ctx: ContextVar[str] = ContextVar("payment_reference", default="")

CONTEXT_FIELDS: dict[str, ContextVar[str]] = {
    "trace_id": trace_id_ctx,
    "payment_reference": payment_reference_ctx,
}


class ContextFilter(logging.Filter):
    """Stamp each record with the service name and whatever context is bound."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service_name
        for field, var in CONTEXT_FIELDS.items():
            setattr(record, field, var.get() or None)
        return True


@contextmanager
def log_context(**fields: str) -> Iterator[None]:
    """Bind correlation fields, e.g. `log_context(trace_id=...)`, for one block."""

    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise KeyError(f"unknown log context fields: {sorted(unknown)}")
    tokens = [(CONTEXT_FIELDS[name], CONTEXT_FIELDS[name].set(value)) for name, value in fields.items()]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def configure_logging(
    service_name: str | None = None,
    level: str | None = None,
    stream: TextIO | None = None,
) -> logging.Handler:
    """Route every logger through one JSON handler on the root logger."""

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(ContextFilter(service_name or settings.service_name))
    handler.setFormatter(JsonFormatter(LOG_FORMAT, rename_fields=RENAMED_FIELDS))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level or settings.log_level)
    return handler


logger = logging.getLogger("paylink")
