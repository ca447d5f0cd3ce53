"""Price resolution over a product's active strategies."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence

from .calculator import final_price, percent_of
from .conditions import ADJUSTMENT_LABELS, CATEGORY_RANK, BulkOrderConfig, ConditionType
from .errors import NotFoundError
from .models import PricingStrategy

_LOGGER = logging.getLogger(__name__)
_MAX_EXTRA_DISCOUNT = Decimal("100")

SELECTION_MATCHED = "matched"
SELECTION_PRIMARY = "primary"
SELECTION_EARLIEST = "earliest"
DEFAULT_CACHE_TOKEN = "default"


@dataclass(frozen=True, slots=True)
class PricingConditions:
    """Runtime conditions supplied by cart, checkout or display callers."""

    payment_method: ConditionType | None = None
    delivery_method: ConditionType | None = None
    customer_type: ConditionType | None = None
    location_condition: ConditionType | None = None
    quantity: int | None = None

    def requested_types(self) -> dict[str, ConditionType]:
        candidates = {
            "payment_method": self.payment_method,
            "delivery_method": self.delivery_method,
            "customer_type": self.customer_type,
            "location_condition": self.location_condition,
        }
        return {name: value for name, value in candidates.items() if value is not None}

    @property
    def is_empty(self) -> bool:
        return not self.requested_types() and self.quantity is None

    def cache_token(self) -> str:
        if self.is_empty:
            return DEFAULT_CACHE_TOKEN
        payload = {name: value.value for name, value in sorted(self.requested_types().items())}
        payload["quantity"] = self.quantity
        encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
        return hashlib.sha1(encoded).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class AppliedStrategy:
    id: int
    condition_category: str | None
    condition_type: str | None
    final_price: int
    applied: bool


@dataclass(frozen=True, slots=True)
class PriceAdjustment:
    type: str
    percent: Decimal
    description: str


@dataclass(slots=True)
class PriceResolution:
    product_id: int
    price: int
    currency: str
    applied_strategy_id: int
    selection: str
    base_price: int
    primary_price: int
    applied_strategies: list[AppliedStrategy] = field(default_factory=list)
    adjustments: list[PriceAdjustment] = field(default_factory=list)
    applied_conditions: list[str] = field(default_factory=list)
    trace: list[str] = field(default_factory=list)

    @property
    def discount_amount(self) -> int:
        return self.primary_price - self.price

    @property
    def discount_percent(self) -> Decimal:
        return percent_of(self.discount_amount, self.primary_price)

    @property
    def final_calculation(self) -> str:
        return " -> ".join(self.trace)


def _format_amount(amount: int, currency: str) -> str:
    return f"{amount:,} {currency}"


def _adjustment_key(strategy: PricingStrategy) -> tuple[Decimal, int]:
    # Most negative adjustment first, then earliest created.
    adjustment = strategy.custom_adjustment_percent
    return (adjustment if adjustment is not None else Decimal("0"), strategy.id)


def matches(strategy: PricingStrategy, conditions: PricingConditions) -> bool:
    if strategy.condition_type is None:
        return False
    if strategy.condition_type in conditions.requested_types().values():
        return True
    if strategy.is_bulk_order and conditions.quantity is not None:
        config = strategy.config
        return isinstance(config, BulkOrderConfig) and config.contains(conditions.quantity)
    return False


def find_matching(strategies: Sequence[PricingStrategy], conditions: PricingConditions) -> list[PricingStrategy]:
    return [strategy for strategy in strategies if matches(strategy, conditions)]


def select_best(matching: Sequence[PricingStrategy]) -> PricingStrategy | None:
    if not matching:
        return None
    return min(matching, key=_adjustment_key)


def fallback_strategy(strategies: Sequence[PricingStrategy]) -> tuple[PricingStrategy, str]:
    primary = next((strategy for strategy in strategies if strategy.is_primary), None)
    if primary is not None:
        return primary, SELECTION_PRIMARY
    earliest = min(strategies, key=lambda strategy: strategy.id)
    _LOGGER.warning(
        "No primary strategy among %d active strategies of product %s; using strategy %s",
        len(strategies),
        earliest.product_id,
        earliest.id,
    )
    return earliest, SELECTION_EARLIEST


def promotion_candidate(strategies: Sequence[PricingStrategy]) -> PricingStrategy | None:
    """Pick the strategy that becomes primary when the product has none.

    Lowest condition-category rank wins (unconditional first); among equals the
    most recently created one.
    """

    if not strategies:
        return None
    return min(strategies, key=lambda strategy: (CATEGORY_RANK[strategy.condition_category], -strategy.id))


def bulk_extra_discount(strategy: PricingStrategy, quantity: int | None) -> tuple[Decimal, int]:
    """Return the per-unit stacked discount percent and the units it applies to."""

    if quantity is None or not strategy.is_bulk_order:
        return Decimal("0"), 0
    config = strategy.config
    if not isinstance(config, BulkOrderConfig) or not config.additional_discount_per_unit:
        return Decimal("0"), 0
    extra_units = quantity - config.min_quantity
    if extra_units <= 0:
        return Decimal("0"), 0
    percent = min(Decimal(extra_units) * config.additional_discount_per_unit, _MAX_EXTRA_DISCOUNT)
    return percent, extra_units


def _applied_conditions(
    matching: Sequence[PricingStrategy],
    selected: PricingStrategy | None,
    conditions: PricingConditions,
) -> list[str]:
    matched_types = {strategy.condition_type for strategy in matching}
    applied = [name for name, value in conditions.requested_types().items() if value in matched_types]
    if selected is not None and selected.is_bulk_order and conditions.quantity is not None:
        applied.append("volume_discount")
    return applied


def resolve(
    product_id: int,
    strategies: Sequence[PricingStrategy],
    conditions: PricingConditions,
    currency: str,
) -> PriceResolution:
    """Select the strategy that prices ``conditions`` and compute the final amount.

    Matching strategies compete on their adjustment (the deepest discount
    wins, ties go to the earliest created). Without a match the primary
    strategy applies, and without a primary the earliest created one.
    """

    active = [strategy for strategy in strategies if strategy.is_active]
    if not active:
        raise NotFoundError(
            f"product {product_id} has no active pricing strategies",
            code="no_active_strategies",
            product_id=product_id,
        )

    matching = find_matching(active, conditions)
    selected = select_best(matching)
    primary, primary_selection = fallback_strategy(active)
    if selected is None:
        chosen, selection = primary, primary_selection
    else:
        chosen, selection = selected, SELECTION_MATCHED

    trace = [f"base price {_format_amount(chosen.base_price_amount, currency)}"]
    adjustments: list[PriceAdjustment] = []
    adjustment = chosen.custom_adjustment_percent
    if adjustment is not None and adjustment != 0:
        kind = "discount" if adjustment < 0 else "surcharge"
        label = ADJUSTMENT_LABELS.get(chosen.condition_type, "special discount") if adjustment < 0 else "surcharge"
        adjustments.append(PriceAdjustment(type=kind, percent=abs(adjustment), description=label))
        trace.append(f"{abs(adjustment)}% {label} = {_format_amount(chosen.final_price_amount, currency)}")

    price = chosen.final_price_amount
    extra_percent, extra_units = bulk_extra_discount(chosen, conditions.quantity)
    if extra_percent > 0:
        price = final_price(price, -extra_percent)
        adjustments.append(
            PriceAdjustment(
                type="bulk_extra_discount",
                percent=extra_percent,
                description=f"additional volume discount for {extra_units} units above the range minimum",
            )
        )
        trace.append(f"extra {extra_percent}% for {extra_units} extra units = {_format_amount(price, currency)}")
    trace.append(f"final price {_format_amount(price, currency)}")

    return PriceResolution(
        product_id=product_id,
        price=price,
        currency=currency,
        applied_strategy_id=chosen.id,
        selection=selection,
        base_price=chosen.base_price_amount,
        primary_price=primary.final_price_amount,
        applied_strategies=[
            AppliedStrategy(
                id=strategy.id,
                condition_category=strategy.condition_category.value if strategy.condition_category else None,
                condition_type=strategy.condition_type.value if strategy.condition_type else None,
                final_price=strategy.final_price_amount,
                applied=strategy.id == chosen.id,
            )
            for strategy in matching
        ],
        adjustments=adjustments,
        applied_conditions=_applied_conditions(matching, selected, conditions),
        trace=trace,
    )
