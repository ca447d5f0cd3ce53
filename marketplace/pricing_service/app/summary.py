"""Aggregate price summary maintained on the product row."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import PricingStrategy, Product

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PriceSummary:
    base_min_price: int = 0
    base_max_price: int = 0
    calculated_min_price: int = 0
    calculated_max_price: int = 0
    has_any_discount: bool = False
    best_discount_percent: Decimal | None = None

    @classmethod
    def of(cls, product: Product) -> "PriceSummary":
        return cls(
            base_min_price=product.base_min_price,
            base_max_price=product.base_max_price,
            calculated_min_price=product.calculated_min_price,
            calculated_max_price=product.calculated_max_price,
            has_any_discount=product.has_any_discount,
            best_discount_percent=product.best_discount_percent,
        )


EMPTY_SUMMARY = PriceSummary()


def compute_summary(strategies: Iterable[PricingStrategy]) -> PriceSummary:
    """Derive the summary from the active members of ``strategies``."""

    active = [strategy for strategy in strategies if strategy.is_active]
    if not active:
        return EMPTY_SUMMARY
    finals = [strategy.final_price_amount for strategy in active]
    bases = [strategy.base_price_amount for strategy in active]
    discounts = [strategy.custom_adjustment_percent for strategy in active if strategy.has_discount]
    return PriceSummary(
        base_min_price=min(bases),
        base_max_price=max(bases),
        calculated_min_price=min(finals),
        calculated_max_price=max(finals),
        has_any_discount=bool(discounts),
        best_discount_percent=min(discounts) if discounts else None,
    )


def apply_summary(product: Product, summary: PriceSummary) -> None:
    product.base_min_price = summary.base_min_price
    product.base_max_price = summary.base_max_price
    product.calculated_min_price = summary.calculated_min_price
    product.calculated_max_price = summary.calculated_max_price
    product.has_any_discount = summary.has_any_discount
    product.best_discount_percent = summary.best_discount_percent
    # Always dirty the row so the version counter moves on every recompute.
    product.price_updated_at = datetime.now(timezone.utc)


async def recompute(session: AsyncSession, product: Product) -> PriceSummary:
    """Rewrite ``product``'s summary from its currently active strategies.

    Must run inside the caller's unit of work; pending strategy writes are
    flushed by the query before the summary is derived.
    """

    result = await session.execute(
        select(PricingStrategy)
        .where(PricingStrategy.product_id == product.id, PricingStrategy.is_active.is_(True))
        .execution_options(populate_existing=True)
    )
    summary = compute_summary(result.scalars().all())
    previous = PriceSummary.of(product)
    apply_summary(product, summary)
    if summary != previous:
        _LOGGER.debug(
            "Price summary for product %s changed: min %s -> %s, max %s -> %s, discount %s -> %s",
            product.id,
            previous.calculated_min_price,
            summary.calculated_min_price,
            previous.calculated_max_price,
            summary.calculated_max_price,
            previous.best_discount_percent,
            summary.best_discount_percent,
        )
    return summary
