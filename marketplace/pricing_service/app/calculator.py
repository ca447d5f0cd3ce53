"""Pure price arithmetic for pricing strategies.

Amounts are integers in the currency's smallest unit; adjustments are signed
percentages where negative values are discounts.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from .conditions import ConditionConfig

_HUNDRED = Decimal("100")


def _round_amount(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))


def final_price(base: int, adjustment_percent: Decimal | None) -> int:
    """Apply ``adjustment_percent`` to ``base`` with half-up rounding."""

    if adjustment_percent is None:
        return base
    factor = Decimal(1) + Decimal(adjustment_percent) / _HUNDRED
    return _round_amount(Decimal(base) * factor)


def has_discount(adjustment_percent: Decimal | None) -> bool:
    return adjustment_percent is not None and adjustment_percent < 0


def min_effective_price(final_amount: int, config: ConditionConfig | None) -> int:
    if config is not None and config.min_price is not None:
        return min(final_amount, config.min_price)
    return final_amount


def max_effective_price(final_amount: int, config: ConditionConfig | None) -> int:
    if config is not None and config.max_price is not None:
        return max(final_amount, config.max_price)
    return final_amount


def normalized_price(final_amount: int, conversion_rate: Decimal) -> Decimal:
    """Price expressed in the product's canonical unit."""

    return (Decimal(final_amount) / Decimal(conversion_rate)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def percent_of(part: int, whole: int) -> Decimal:
    if whole <= 0:
        return Decimal("0")
    return (Decimal(part) * _HUNDRED / Decimal(whole)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
