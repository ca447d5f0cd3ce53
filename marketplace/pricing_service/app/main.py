from contextlib import asynccontextmanager

from fastapi import FastAPI
from httpx import AsyncClient

from marketplace.common import (
    DEFAULT_APP_NAME,
    EventBus,
    EventConsumer,
    EventProducer,
    ServiceSettings,
    build_app,
    close_redis_connections,
    configure_logging,
    create_schema,
    dispose_engines,
    get_session_factory,
    resolve_database_url,
    resolve_redis,
)

from .api.health import router as health_router
from .api.products import router as products_router
from .api.strategies import router as strategies_router
from .event_handlers import PriceChangeHandler
from .events import PRICE_CHANGED_TOPIC, PricingEventPublisher
from .models import Base
from .order_references import HttpOrderReferenceLookup, NoOrderReferences
from .price_cache import ResolvedPriceCache

SERVICE_NAME = "Pricing Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./pricing_service.db"


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Pricing Service FastAPI application."""

    resolved_settings = settings or ServiceSettings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    session_factory = get_session_factory(database_url)
    redis_client = resolve_redis(resolved_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        producer: EventProducer | None = None
        consumer: EventConsumer | None = None
        order_lookup: HttpOrderReferenceLookup | None = None
        if resolved_settings.auto_create_schema:
            await create_schema(database_url, Base.metadata)
        app.state.session_factory = session_factory
        try:
            bus = EventBus()
            price_cache = ResolvedPriceCache(redis_client, resolved_settings.price_cache_ttl_seconds)
            app.state.event_bus = bus
            app.state.price_cache = price_cache if price_cache.enabled else None
            producer = EventProducer(bus=bus)
            await producer.connect()
            app.state.event_publisher = PricingEventPublisher(producer)
            price_handler = PriceChangeHandler(price_cache)
            consumer = EventConsumer([PRICE_CHANGED_TOPIC], price_handler.handle, bus=bus)
            await consumer.start()
            app.state.price_change_handler = price_handler
            if resolved_settings.order_service_url:
                order_lookup = HttpOrderReferenceLookup(
                    AsyncClient(timeout=resolved_settings.order_lookup_timeout_seconds),
                    resolved_settings.order_service_url,
                )
                app.state.order_references = order_lookup
            else:
                app.state.order_references = NoOrderReferences()
            yield
        finally:
            app.state.session_factory = None  # type: ignore[assignment]
            app.state.event_publisher = None
            app.state.price_cache = None
            app.state.price_change_handler = None
            app.state.order_references = None
            if consumer is not None:
                await consumer.stop()
            if producer is not None:
                await producer.close()
            if order_lookup is not None:
                await order_lookup.close()
            await dispose_engines()
            if redis_client is not None:
                await close_redis_connections()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(products_router)
    app.include_router(strategies_router)
    return app


app = create_app()
