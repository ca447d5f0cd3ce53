"""HTTP routes addressing pricing strategies directly."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..conditions import ConditionCategory, ConditionType
from ..dependencies import get_caller_id, get_pricing_service
from ..repository import StrategyFilters
from ..schemas import (
    DeleteStrategyResponse,
    PriceFiltersResponse,
    PriceStatsResponse,
    StrategyResponse,
    StrategySearchResponse,
    StrategyUpdate,
)
from ..services import PricingService

router = APIRouter(prefix="/strategies", tags=["strategies"])


@router.get("", response_model=StrategySearchResponse)
async def search_strategies(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    product_id: int | None = Query(default=None, alias="productId"),
    condition_category: ConditionCategory | None = Query(default=None, alias="category"),
    condition_type: ConditionType | None = Query(default=None, alias="conditionType"),
    price_unit: str | None = Query(default=None, alias="priceUnit"),
    min_price: int | None = Query(default=None, ge=0, alias="minPrice"),
    max_price: int | None = Query(default=None, ge=0, alias="maxPrice"),
    has_discount: bool | None = Query(default=None, alias="hasDiscount"),
    active_only: bool = Query(default=True, alias="activeOnly"),
    service: PricingService = Depends(get_pricing_service),
) -> StrategySearchResponse:
    filters = StrategyFilters(
        product_id=product_id,
        condition_category=condition_category,
        condition_type=condition_type,
        price_unit=price_unit.strip().lower() if price_unit else None,
        min_price=min_price,
        max_price=max_price,
        has_discount=has_discount,
        active_only=active_only,
    )
    return await service.search_strategies(filters, limit=limit, offset=offset)


@router.get("/filters", response_model=PriceFiltersResponse)
async def price_filters(
    product_id: int | None = Query(default=None, alias="productId"),
    service: PricingService = Depends(get_pricing_service),
) -> PriceFiltersResponse:
    return await service.price_filters(product_id)


@router.get("/stats", response_model=PriceStatsResponse)
async def price_stats(
    product_id: int | None = Query(default=None, alias="productId"),
    service: PricingService = Depends(get_pricing_service),
) -> PriceStatsResponse:
    return await service.price_stats(product_id)


@router.get("/{strategy_id}", response_model=StrategyResponse)
async def get_strategy(
    strategy_id: int,
    service: PricingService = Depends(get_pricing_service),
) -> StrategyResponse:
    return await service.get_strategy(strategy_id)


@router.patch("/{strategy_id}", response_model=StrategyResponse)
async def update_strategy(
    strategy_id: int,
    payload: StrategyUpdate,
    caller_id: int | None = Depends(get_caller_id),
    service: PricingService = Depends(get_pricing_service),
) -> StrategyResponse:
    return await service.update_strategy(strategy_id, caller_id, payload)


@router.delete("/{strategy_id}", response_model=DeleteStrategyResponse)
async def delete_strategy(
    strategy_id: int,
    caller_id: int | None = Depends(get_caller_id),
    service: PricingService = Depends(get_pricing_service),
) -> DeleteStrategyResponse:
    return await service.delete_strategy(strategy_id, caller_id)
