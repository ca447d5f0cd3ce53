"""HTTP routes for products and their pricing strategies."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, status

from ..competition import CompetitionOptions
from ..conditions import ConditionType
from ..dependencies import get_caller_id, get_pricing_service
from ..resolver import PricingConditions
from ..schemas import (
    CompetitiveAnalysisResponse,
    PriceResolutionResponse,
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    StrategyCreate,
    StrategyListResponse,
    StrategyResponse,
    VolumeDiscountRequest,
    VolumeDiscountResponse,
)
from ..services import PricingService

router = APIRouter(prefix="/products", tags=["products"])

ProductSort = Literal["newest", "oldest", "price_low", "price_high", "best_discount"]


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    caller_id: int | None = Depends(get_caller_id),
    service: PricingService = Depends(get_pricing_service),
) -> ProductResponse:
    return await service.create_product(caller_id, payload)


@router.get("", response_model=ProductListResponse)
async def list_products(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    category: str | None = Query(default=None),
    has_discount: bool | None = Query(default=None, alias="hasDiscount"),
    min_price: int | None = Query(default=None, ge=0, alias="minPrice"),
    max_price: int | None = Query(default=None, ge=0, alias="maxPrice"),
    sort: ProductSort = Query(default="newest"),
    service: PricingService = Depends(get_pricing_service),
) -> ProductListResponse:
    return await service.list_products(
        limit=limit,
        offset=offset,
        category=category.strip() if category else None,
        has_discount=has_discount,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    service: PricingService = Depends(get_pricing_service),
) -> ProductResponse:
    return await service.get_product(product_id)


@router.post(
    "/{product_id}/strategies",
    response_model=StrategyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_strategy(
    product_id: int,
    payload: StrategyCreate,
    caller_id: int | None = Depends(get_caller_id),
    service: PricingService = Depends(get_pricing_service),
) -> StrategyResponse:
    return await service.create_strategy(product_id, caller_id, payload)


@router.get("/{product_id}/strategies", response_model=StrategyListResponse)
async def list_strategies(
    product_id: int,
    active_only: bool = Query(default=True, alias="activeOnly"),
    service: PricingService = Depends(get_pricing_service),
) -> StrategyListResponse:
    return await service.list_strategies(product_id, active_only=active_only)


@router.post("/{product_id}/strategies/{strategy_id}/primary", response_model=StrategyResponse)
async def set_primary_strategy(
    product_id: int,
    strategy_id: int,
    caller_id: int | None = Depends(get_caller_id),
    service: PricingService = Depends(get_pricing_service),
) -> StrategyResponse:
    return await service.set_primary_strategy(product_id, strategy_id, caller_id)


@router.put("/{product_id}/volume-discounts", response_model=VolumeDiscountResponse)
async def set_volume_discounts(
    product_id: int,
    payload: VolumeDiscountRequest,
    caller_id: int | None = Depends(get_caller_id),
    service: PricingService = Depends(get_pricing_service),
) -> VolumeDiscountResponse:
    return await service.set_volume_discounts(product_id, caller_id, payload)


@router.get("/{product_id}/price", response_model=PriceResolutionResponse)
async def resolve_price(
    product_id: int,
    payment_method: ConditionType | None = Query(default=None, alias="paymentMethod"),
    delivery_method: ConditionType | None = Query(default=None, alias="deliveryMethod"),
    customer_type: ConditionType | None = Query(default=None, alias="customerType"),
    location_condition: ConditionType | None = Query(default=None, alias="locationCondition"),
    quantity: int | None = Query(default=None, ge=1),
    service: PricingService = Depends(get_pricing_service),
) -> PriceResolutionResponse:
    conditions = PricingConditions(
        payment_method=payment_method,
        delivery_method=delivery_method,
        customer_type=customer_type,
        location_condition=location_condition,
        quantity=quantity,
    )
    return await service.resolve_price(product_id, conditions)


@router.get("/{product_id}/competitive-analysis", response_model=CompetitiveAnalysisResponse)
async def analyze_competitive_pricing(
    product_id: int,
    similar_products_count: int | None = Query(default=None, ge=1, le=100, alias="similarProductsCount"),
    price_band_percent: float | None = Query(default=None, gt=0, alias="priceBandPercent"),
    same_brand: bool = Query(default=False, alias="sameBrand"),
    service: PricingService = Depends(get_pricing_service),
) -> CompetitiveAnalysisResponse:
    defaults = service.competition
    options = CompetitionOptions(
        similar_products_count=similar_products_count or defaults.similar_products_count,
        price_band_percent=price_band_percent or defaults.price_band_percent,
        same_brand=same_brand,
    )
    return await service.analyze_competitive_pricing(product_id, options)
