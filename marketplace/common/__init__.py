"""Shared infrastructure for marketplace services."""

from .config import DEFAULT_APP_NAME, ServiceSettings, get_settings
from .errors import ServiceError, register_error_handlers
from .instrumentation import build_app, instrument_app
from .logging import bind_product_id, configure_logging
from .database import (
    create_engine,
    create_schema,
    dispose_engines,
    get_session_factory,
    lifespan_session,
    resolve_database_url,
    unit_of_work,
)
from .cache import close_redis_connections, get_redis_client, resolve_redis
from .events import EventBus, EventConsumer, EventProducer, get_event_bus
from .tracing import start_span

__all__ = [
    "ServiceSettings",
    "get_settings",
    "ServiceError",
    "register_error_handlers",
    "build_app",
    "instrument_app",
    "configure_logging",
    "bind_product_id",
    "DEFAULT_APP_NAME",
    "create_engine",
    "create_schema",
    "dispose_engines",
    "get_session_factory",
    "lifespan_session",
    "resolve_database_url",
    "unit_of_work",
    "get_redis_client",
    "resolve_redis",
    "close_redis_connections",
    "EventBus",
    "EventProducer",
    "EventConsumer",
    "get_event_bus",
    "start_span",
]
