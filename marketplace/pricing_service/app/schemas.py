"""Pydantic schemas for the pricing service."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator

from .conditions import ConditionCategory, ConditionType


class StrategyCreate(BaseModel):
    price_unit: str = Field(min_length=1, max_length=32, alias="priceUnit")
    base_price_amount: int = Field(alias="basePriceAmount")
    conversion_rate: Decimal = Field(default=Decimal("1"), max_digits=12, decimal_places=6, alias="conversionRate")
    condition_category: ConditionCategory | None = Field(default=None, alias="conditionCategory")
    condition_type: ConditionType | None = Field(default=None, alias="conditionType")
    custom_adjustment_percent: Decimal | None = Field(
        default=None, max_digits=7, decimal_places=3, alias="customAdjustmentPercent"
    )
    condition_config: dict[str, Any] | None = Field(default=None, alias="conditionConfig")
    is_primary: bool = Field(default=False, alias="isPrimary")
    is_active: bool = Field(default=True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("price_unit")
    @classmethod
    def _clean_unit(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if not cleaned:
            msg = "priceUnit must be non-empty"
            raise ValueError(msg)
        return cleaned


class StrategyUpdate(BaseModel):
    """Partial update; fields left out of the payload keep their stored value."""

    price_unit: str | None = Field(default=None, min_length=1, max_length=32, alias="priceUnit")
    base_price_amount: int | None = Field(default=None, alias="basePriceAmount")
    conversion_rate: Decimal | None = Field(default=None, max_digits=12, decimal_places=6, alias="conversionRate")
    condition_category: ConditionCategory | None = Field(default=None, alias="conditionCategory")
    condition_type: ConditionType | None = Field(default=None, alias="conditionType")
    custom_adjustment_percent: Decimal | None = Field(
        default=None, max_digits=7, decimal_places=3, alias="customAdjustmentPercent"
    )
    condition_config: dict[str, Any] | None = Field(default=None, alias="conditionConfig")
    is_primary: bool | None = Field(default=None, alias="isPrimary")
    is_active: bool | None = Field(default=None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("price_unit")
    @classmethod
    def _clean_unit(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower() or None


class StrategyResponse(BaseModel):
    id: PositiveInt
    product_id: int = Field(alias="productId")
    condition_category: ConditionCategory | None = Field(default=None, alias="conditionCategory")
    condition_type: ConditionType | None = Field(default=None, alias="conditionType")
    price_unit: str = Field(alias="priceUnit")
    conversion_rate: Decimal = Field(alias="conversionRate")
    base_price_amount: int = Field(alias="basePriceAmount")
    custom_adjustment_percent: Decimal | None = Field(default=None, alias="customAdjustmentPercent")
    condition_config: dict[str, Any] | None = Field(default=None, alias="conditionConfig")
    final_price_amount: int = Field(alias="finalPriceAmount")
    has_discount: bool = Field(alias="hasDiscount")
    is_primary: bool = Field(alias="isPrimary")
    is_active: bool = Field(alias="isActive")
    min_effective_price: int = Field(alias="minEffectivePrice")
    max_effective_price: int = Field(alias="maxEffectivePrice")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class DiscountInfo(BaseModel):
    percent: Decimal
    amount: int
    type: Literal["discount", "surcharge", "none"]


class StrategyListItem(StrategyResponse):
    discount_info: DiscountInfo = Field(alias="discountInfo")
    normalized_price: Decimal = Field(alias="normalizedPrice")


class PriceSummaryResponse(BaseModel):
    base_min_price: int = Field(alias="baseMinPrice")
    base_max_price: int = Field(alias="baseMaxPrice")
    calculated_min_price: int = Field(alias="calculatedMinPrice")
    calculated_max_price: int = Field(alias="calculatedMaxPrice")
    has_any_discount: bool = Field(alias="hasAnyDiscount")
    best_discount_percent: Decimal | None = Field(default=None, alias="bestDiscountPercent")
    price_updated_at: datetime | None = Field(default=None, alias="priceUpdatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class StrategyListResponse(BaseModel):
    product_id: int = Field(alias="productId")
    strategies: list[StrategyListItem]
    grouped: dict[str, list[StrategyListItem]]
    summary: PriceSummaryResponse

    model_config = ConfigDict(populate_by_name=True)


class StrategySearchResponse(BaseModel):
    items: list[StrategyResponse]
    total: int


class DeleteStrategyResponse(BaseModel):
    success: bool
    mode: Literal["deleted", "deactivated"]
    promoted_strategy_id: int | None = Field(default=None, alias="promotedStrategyId")

    model_config = ConfigDict(populate_by_name=True)


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    category: str | None = Field(default=None, max_length=100)
    brand: str | None = Field(default=None, max_length=100)
    unit: str = Field(default="unit", min_length=1, max_length=32)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    account_id: int | None = Field(default=None, alias="accountId")
    base_price: int | None = Field(default=None, ge=0, alias="basePrice")
    strategies: list[StrategyCreate] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def _clean_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            msg = "name must be non-empty"
            raise ValueError(msg)
        return cleaned

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().upper()

    @field_validator("unit")
    @classmethod
    def _normalize_unit(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def _require_price(self) -> "ProductCreate":
        if self.base_price is None and not self.strategies:
            msg = "basePrice or at least one strategy is required"
            raise ValueError(msg)
        return self


class ProductResponse(PriceSummaryResponse):
    id: PositiveInt
    owner_id: int = Field(alias="ownerId")
    account_id: int | None = Field(default=None, alias="accountId")
    name: str
    category: str | None = None
    brand: str | None = None
    unit: str
    currency: str
    is_active: bool = Field(alias="isActive")
    total_views: int = Field(alias="totalViews")
    total_likes: int = Field(alias="totalLikes")
    version: int
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class ProductListResponse(BaseModel):
    items: list[ProductResponse]
    total: int


class AppliedStrategyResponse(BaseModel):
    id: int
    condition_category: str | None = Field(default=None, alias="conditionCategory")
    condition_type: str | None = Field(default=None, alias="conditionType")
    final_price: int = Field(alias="finalPrice")
    applied: bool

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class PriceAdjustmentResponse(BaseModel):
    type: str
    percent: Decimal
    description: str

    model_config = ConfigDict(from_attributes=True)


class PriceBreakdown(BaseModel):
    selection: str
    base_price: int = Field(alias="basePrice")
    adjustments: list[PriceAdjustmentResponse]
    discount_amount: int = Field(alias="discountAmount")
    discount_percent: Decimal = Field(alias="discountPercent")
    applied_conditions: list[str] = Field(alias="appliedConditions")
    trace: list[str]
    final_calculation: str = Field(alias="finalCalculation")

    model_config = ConfigDict(populate_by_name=True)


class PriceResolutionResponse(BaseModel):
    product_id: int = Field(alias="productId")
    price: int
    currency: str
    applied_strategy_id: int = Field(alias="appliedStrategyId")
    applied_strategies: list[AppliedStrategyResponse] = Field(alias="appliedStrategies")
    breakdown: PriceBreakdown

    model_config = ConfigDict(populate_by_name=True)


class VolumeDiscountRule(BaseModel):
    min_quantity: int = Field(alias="minQuantity")
    max_quantity: int | None = Field(default=None, alias="maxQuantity")
    discount_percent: Decimal = Field(max_digits=7, decimal_places=3, alias="discountPercent")
    additional_discount_per_unit: Decimal | None = Field(
        default=None, max_digits=7, decimal_places=3, alias="additionalDiscountPerUnit"
    )
    description: str | None = Field(default=None, max_length=255)

    model_config = ConfigDict(populate_by_name=True)


class VolumeDiscountRequest(BaseModel):
    rules: list[VolumeDiscountRule]


class VolumeDiscountResponse(BaseModel):
    created: int
    updated: int
    removed: int
    strategies: list[StrategyResponse]
    summary: PriceSummaryResponse


class PriceRange(BaseModel):
    min: int
    max: int


class PriceFiltersResponse(BaseModel):
    price_units: list[str] = Field(alias="priceUnits")
    condition_categories: list[str] = Field(alias="conditionCategories")
    condition_types: list[str] = Field(alias="conditionTypes")
    price_range: PriceRange = Field(alias="priceRange")
    has_discount: bool = Field(alias="hasDiscount")

    model_config = ConfigDict(populate_by_name=True)


class CategoryStats(BaseModel):
    category: str | None = None
    count: int
    average_price: Decimal = Field(alias="averagePrice")

    model_config = ConfigDict(populate_by_name=True)


class PriceStatsResponse(BaseModel):
    total_strategies: int = Field(alias="totalStrategies")
    strategies_with_discount: int = Field(alias="strategiesWithDiscount")
    discount_ratio: Decimal = Field(alias="discountRatio")
    average_price: Decimal = Field(alias="averagePrice")
    by_category: list[CategoryStats] = Field(alias="byCategory")

    model_config = ConfigDict(populate_by_name=True)


class MarketAnalysis(BaseModel):
    main_price: int = Field(alias="mainPrice")
    average_price: Decimal = Field(alias="averagePrice")
    min_price: int = Field(alias="minPrice")
    max_price: int = Field(alias="maxPrice")
    price_difference_percent: Decimal = Field(alias="priceDifferencePercent")
    position: Literal["low", "competitive", "high"]
    market_coverage: Literal["premium", "mid_high", "mid_low", "budget"] = Field(alias="marketCoverage")
    confidence: float
    competitor_count: int = Field(alias="competitorCount")

    model_config = ConfigDict(populate_by_name=True)


class PricingRecommendation(BaseModel):
    type: Literal["price_reduction", "price_increase", "value_communication"]
    confidence: float
    suggested_price: int | None = Field(default=None, alias="suggestedPrice")
    reason: str
    expected_impact: str = Field(alias="expectedImpact")

    model_config = ConfigDict(populate_by_name=True)


class Competitor(BaseModel):
    product_id: int = Field(alias="productId")
    name: str
    brand: str | None = None
    price: int
    score: float

    model_config = ConfigDict(populate_by_name=True)


class CompetitiveAnalysisResponse(BaseModel):
    product_id: int = Field(alias="productId")
    status: Literal["ok", "no_competition"]
    analysis: MarketAnalysis | None = None
    recommendations: list[PricingRecommendation] = Field(default_factory=list)
    top_competitors: list[Competitor] = Field(default_factory=list, alias="topCompetitors")

    model_config = ConfigDict(populate_by_name=True)
