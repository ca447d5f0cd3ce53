import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Literal

from .config import ServiceSettings
from .tracing import current_trace_ids


_PLACEHOLDER = "-"
_LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | trace_id=%(trace_id)s span_id=%(span_id)s "
    "product_id=%(product_id)s | %(message)s"
)

_PRODUCT_ID: ContextVar[str | None] = ContextVar("marketplace_product_id", default=None)


@contextmanager
def bind_product_id(product_id: int | str | None) -> Iterator[None]:
    """Tag log records emitted inside the block with ``product_id``."""

    token = _PRODUCT_ID.set(None if product_id is None else str(product_id))
    try:
        yield
    finally:
        _PRODUCT_ID.reset(token)


class TraceContextFilter(logging.Filter):
    """Populate trace/span identifiers and the bound product id on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id, record.span_id = current_trace_ids() or (_PLACEHOLDER, _PLACEHOLDER)
        record.product_id = _PRODUCT_ID.get() or _PLACEHOLDER
        return True


def configure_logging(settings: ServiceSettings) -> None:
    """Configure root logging level and format."""

    logging_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = settings.log_level
    logging.basicConfig(level=logging_level, format=_LOG_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging_level)
    context_filter = next(
        (f for f in root_logger.filters if isinstance(f, TraceContextFilter)),
        None,
    )
    if context_filter is None:
        context_filter = TraceContextFilter()
        root_logger.addFilter(context_filter)
    for handler in root_logger.handlers:
        if not any(isinstance(f, TraceContextFilter) for f in handler.filters):
            handler.addFilter(context_filter)
