"""
Logging Setup

Structured stdout logging with a per-request correlation id.

The id lives in a ContextVar set by the request-id middleware; a logging
filter copies it onto every record so `%(request_id)s` can be used in the
format string from any module.
"""

import logging
import sys
import uuid
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] [req=%(request_id)s] - %(message)s"


def new_request_id() -> str:
    """Generate a short correlation id."""
    return uuid.uuid4().hex[:12]


class RequestIdFilter(logging.Filter):
    """Attach the current request id to each log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger to write to stdout.

    Safe to call more than once; existing handlers are replaced.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    root_logger.addHandler(handler)

    # Libraries that are too chatty at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging configured (level=%s)", level)
