"""Dependency wiring for the pricing service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import cast

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace.common import ServiceSettings, lifespan_session

from .competition import CompetitionOptions
from .events import PricingEventPublisher
from .order_references import NoOrderReferences, OrderReferenceLookup
from .price_cache import PriceCacheProtocol
from .repository import PricingRepository
from .services import PricingService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an AsyncSession for the current request lifecycle."""

    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        yield session


def get_repository(session: AsyncSession = Depends(get_session)) -> PricingRepository:
    """Provide a repository bound to the active session."""

    return PricingRepository(session)


def get_event_publisher_optional(request: Request) -> PricingEventPublisher | None:
    publisher = getattr(request.app.state, "event_publisher", None)
    if publisher is None:
        return None
    if hasattr(publisher, "price_changed"):
        return cast(PricingEventPublisher, publisher)
    return None


def get_price_cache_optional(request: Request) -> PriceCacheProtocol | None:
    cache = getattr(request.app.state, "price_cache", None)
    if cache is None:
        return None
    if hasattr(cache, "get") and hasattr(cache, "invalidate"):
        return cast(PriceCacheProtocol, cache)
    return None


def get_order_references(request: Request) -> OrderReferenceLookup:
    lookup = getattr(request.app.state, "order_references", None)
    if lookup is None or not hasattr(lookup, "is_referenced"):
        return NoOrderReferences()
    return cast(OrderReferenceLookup, lookup)


def get_pricing_service(
    request: Request,
    repository: PricingRepository = Depends(get_repository),
    event_publisher: PricingEventPublisher | None = Depends(get_event_publisher_optional),
    price_cache: PriceCacheProtocol | None = Depends(get_price_cache_optional),
    order_references: OrderReferenceLookup = Depends(get_order_references),
) -> PricingService:
    settings: ServiceSettings = request.app.state.settings
    return PricingService(
        repository,
        currency=settings.pricing_currency,
        event_publisher=event_publisher,
        price_cache=price_cache,
        order_references=order_references,
        competition=CompetitionOptions(
            similar_products_count=settings.competitor_sample_size,
            price_band_percent=settings.competitor_price_band_percent,
        ),
    )


def get_caller_id(user_id: int | None = Header(default=None, alias="X-User-Id")) -> int | None:
    """Identity of the caller as asserted by the authenticating gateway."""

    return user_id
