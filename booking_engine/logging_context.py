"""Request ID logging context for tracing booking operations across modules.

Provides a request_id-aware logger that attaches a correlation ID to every
log record, making it easy to follow one create/cancel/reschedule request
through the resolver, the store and the notification dispatcher.

Usage:
    from booking_engine.logging_context import get_request_logger, set_request_id

    set_request_id("REQ-abc123")
    logger = get_request_logger(__name__)
    logger.info("Creating booking")  # record.request_id == "REQ-abc123"
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Optional

_request_id: ContextVar[str] = ContextVar("request_id", default="NO_REQUEST_ID")


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the correlation ID for the current async context.

    A fresh ``REQ-`` identifier is generated when none is given.
    """
    value = request_id or f"REQ-{uuid.uuid4().hex[:8]}"
    _request_id.set(value)
    return value


def get_request_id() -> str:
    """Retrieve the current correlation ID."""
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """Injects request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        return True


def get_request_logger(name: str) -> logging.Logger:
    """Return a logger with the RequestIdFilter attached.

    The filter adds ``request_id`` to each record so formatters can
    include ``%(request_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger


def install_request_id_filter(logger: Optional[logging.Logger] = None) -> None:
    """Attach a RequestIdFilter to every handler of ``logger`` (root by default).

    Handler filters see records propagated from any logger, so a format
    using ``%(request_id)s`` never fails on third-party records.
    """
    target = logger or logging.getLogger()
    for handler in target.handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())
