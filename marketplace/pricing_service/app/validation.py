"""Structural checks applied to a strategy before it is written."""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable, Sequence

from .conditions import (
    BulkOrderConfig,
    ConditionCategory,
    ConditionConfig,
    ConditionConfigError,
    ConditionType,
    resolve_category,
)
from .errors import StrategyValidationError
from .models import PricingStrategy

MIN_ADJUSTMENT_PERCENT = Decimal("-100")


@dataclass(frozen=True, slots=True)
class StrategyDraft:
    """Candidate state of a strategy, new (``id is None``) or patched."""

    product_id: int
    price_unit: str
    base_price_amount: int
    conversion_rate: Decimal = Decimal("1")
    condition_category: ConditionCategory | None = None
    condition_type: ConditionType | None = None
    custom_adjustment_percent: Decimal | None = None
    config: ConditionConfig | None = None
    is_primary: bool = False
    is_active: bool = True
    id: int | None = None

    @classmethod
    def from_model(cls, strategy: PricingStrategy) -> "StrategyDraft":
        return cls(
            id=strategy.id,
            product_id=strategy.product_id,
            price_unit=strategy.price_unit,
            base_price_amount=strategy.base_price_amount,
            conversion_rate=strategy.conversion_rate,
            condition_category=strategy.condition_category,
            condition_type=strategy.condition_type,
            custom_adjustment_percent=strategy.custom_adjustment_percent,
            config=strategy.config,
            is_primary=strategy.is_primary,
            is_active=strategy.is_active,
        )

    def with_changes(self, **changes) -> "StrategyDraft":
        return replace(self, **changes)

    @property
    def bulk_config(self) -> BulkOrderConfig | None:
        if self.condition_type is ConditionType.BULK_ORDER and isinstance(self.config, BulkOrderConfig):
            return self.config
        return None


def _others(existing: Iterable[PricingStrategy], candidate: StrategyDraft) -> list[PricingStrategy]:
    return [
        strategy
        for strategy in existing
        if strategy.product_id == candidate.product_id
        and strategy.is_active
        and (candidate.id is None or strategy.id != candidate.id)
    ]


def validate_quantity_range(config: BulkOrderConfig) -> None:
    if config.min_quantity < 1:
        raise StrategyValidationError(
            "volume discount min_quantity must be at least 1",
            code="invalid_quantity_range",
            min_quantity=config.min_quantity,
        )
    if config.max_quantity is not None and config.max_quantity <= config.min_quantity:
        raise StrategyValidationError(
            "volume discount max_quantity must be greater than min_quantity",
            code="invalid_quantity_range",
            min_quantity=config.min_quantity,
            max_quantity=config.max_quantity,
        )


def validate_strategy(existing: Sequence[PricingStrategy], candidate: StrategyDraft) -> None:
    """Reject ``candidate`` if it breaks a structural pricing rule.

    ``existing`` is the product's current strategy set; the candidate's own
    stored row, if any, is ignored for the overlap check.
    """

    if candidate.base_price_amount < 0:
        raise StrategyValidationError(
            "base_price_amount must not be negative",
            code="negative_price",
            base_price_amount=candidate.base_price_amount,
        )
    if candidate.conversion_rate <= 0:
        raise StrategyValidationError(
            "conversion_rate must be positive",
            code="invalid_conversion_rate",
            conversion_rate=str(candidate.conversion_rate),
        )
    adjustment = candidate.custom_adjustment_percent
    if adjustment is not None and adjustment < MIN_ADJUSTMENT_PERCENT:
        raise StrategyValidationError(
            "custom_adjustment_percent below -100 would produce a negative price",
            code="invalid_adjustment",
            custom_adjustment_percent=str(adjustment),
        )
    try:
        resolve_category(candidate.condition_type, candidate.condition_category)
    except ConditionConfigError as exc:
        raise StrategyValidationError(str(exc), code="invalid_condition") from exc

    if candidate.condition_type is not ConditionType.BULK_ORDER:
        return

    bulk = candidate.bulk_config
    if bulk is None:
        raise StrategyValidationError(
            "BULK_ORDER strategies require a quantity range", code="invalid_quantity_range"
        )
    validate_quantity_range(bulk)
    if not candidate.is_active:
        return
    for other in _others(existing, candidate):
        if not other.is_bulk_order:
            continue
        other_config = other.config
        if isinstance(other_config, BulkOrderConfig) and bulk.overlaps(other_config):
            raise StrategyValidationError(
                f"volume discount range {bulk.describe_range()} overlaps with existing rule "
                f"{other.id} {other_config.describe_range()}",
                code="overlapping_volume_discount",
                conflicting_strategy_id=other.id,
            )


def validate_volume_rules(rules: Sequence[BulkOrderConfig]) -> None:
    """Check a replacement set of volume discount ranges as a whole."""

    for rule in rules:
        validate_quantity_range(rule)
    for index, first in enumerate(rules):
        for second in rules[index + 1 :]:
            if first.overlaps(second):
                raise StrategyValidationError(
                    f"volume discount ranges {first.describe_range()} and {second.describe_range()} overlap",
                    code="overlapping_volume_discount",
                )


def find_duplicate(existing: Sequence[PricingStrategy], candidate: StrategyDraft) -> PricingStrategy | None:
    """Return an active strategy with the same unit and condition, if any.

    Volume discounts are exempt because several ranges legitimately share the
    ``BULK_ORDER`` condition.
    """

    if not candidate.is_active or candidate.condition_type is ConditionType.BULK_ORDER:
        return None
    for other in _others(existing, candidate):
        if other.price_unit == candidate.price_unit and other.condition_type == candidate.condition_type:
            return other
    return None
