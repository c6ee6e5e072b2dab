"""Key-value logging for node invocations.

``setup_logging`` installs a stdout handler through ``dictConfig``. While a
node handles one inbound message, ``bind_invocation_id`` tags every record
with that invocation's id and the node type, so interleaved invocations can
be told apart in the output.
"""

from __future__ import annotations

import logging
import logging.config
import os
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

invocation_id_ctx_var: ContextVar[str | None] = ContextVar("invocation_id", default=None)
node_type_ctx_var: ContextVar[str | None] = ContextVar("node_type", default=None)

LOG_FORMAT = (
    "level=%(levelname)s logger=%(name)s node=%(node_type)s "
    "invocation_id=%(invocation_id)s message=%(message)s"
)


class InvocationIdFilter(logging.Filter):
    """Copy the bound invocation id and node type onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.invocation_id = invocation_id_ctx_var.get() or "-"
        record.node_type = node_type_ctx_var.get() or "-"
        return True


def _build_config(log_level: str) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"invocation": {"()": InvocationIdFilter}},
        "formatters": {"kv": {"format": LOG_FORMAT}},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "kv",
                "filters": ["invocation"],
                "level": log_level,
            }
        },
        "root": {"handlers": ["default"], "level": log_level},
        # aiohttp access/client chatter is rarely useful at INFO
        "loggers": {"aiohttp": {"level": "WARNING"}},
    }


def setup_logging(log_level: str | None = None) -> None:
    """Configure the root logger; ``LOG_LEVEL`` applies when no level is given."""
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.config.dictConfig(_build_config(level))


@contextmanager
def bind_invocation_id(
    invocation_id: str | None = None, *, node_type: str | None = None
) -> Iterator[str]:
    """Tag log records with an invocation id (a fresh short UUID by default).

    Both context variables are restored on exit, so nested and concurrent
    invocations keep their own values.
    """
    value = invocation_id or uuid.uuid4().hex[:12]
    id_token = invocation_id_ctx_var.set(value)
    type_token = node_type_ctx_var.set(node_type) if node_type else None
    try:
        yield value
    finally:
        if type_token is not None:
            node_type_ctx_var.reset(type_token)
        invocation_id_ctx_var.reset(id_token)


__all__ = [
    "InvocationIdFilter",
    "bind_invocation_id",
    "invocation_id_ctx_var",
    "node_type_ctx_var",
    "setup_logging",
]
