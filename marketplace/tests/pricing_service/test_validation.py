from decimal import Decimal
from typing import Any

import pytest

from marketplace.pricing_service.app.calculator import final_price
from marketplace.pricing_service.app.conditions import (
    CATEGORY_OF_TYPE,
    BulkOrderConfig,
    ConditionCategory,
    ConditionType,
)
from marketplace.pricing_service.app.errors import StrategyValidationError
from marketplace.pricing_service.app.models import PricingStrategy
from marketplace.pricing_service.app.validation import (
    StrategyDraft,
    find_duplicate,
    validate_strategy,
    validate_volume_rules,
)


def _strategy(
    strategy_id: int,
    *,
    condition_type: ConditionType | None = None,
    config: dict[str, Any] | None = None,
    adjustment: Decimal | None = None,
    is_active: bool = True,
    price_unit: str = "unit",
) -> PricingStrategy:
    amount = final_price(1000, adjustment)
    return PricingStrategy(
        id=strategy_id,
        product_id=1,
        condition_category=CATEGORY_OF_TYPE[condition_type] if condition_type else None,
        condition_type=condition_type,
        price_unit=price_unit,
        conversion_rate=Decimal("1"),
        base_price_amount=1000,
        custom_adjustment_percent=adjustment,
        condition_config=config,
        final_price_amount=amount,
        has_discount=adjustment is not None and adjustment < 0,
        is_primary=False,
        is_active=is_active,
        min_effective_price=amount,
        max_effective_price=amount,
    )


def _bulk(strategy_id: int, low: int, high: int | None, *, is_active: bool = True) -> PricingStrategy:
    config: dict[str, Any] = {"min_quantity": low}
    if high is not None:
        config["max_quantity"] = high
    return _strategy(
        strategy_id,
        condition_type=ConditionType.BULK_ORDER,
        config=config,
        adjustment=Decimal("-10"),
        is_active=is_active,
    )


def _bulk_draft(low: int, high: int | None, *, strategy_id: int | None = None) -> StrategyDraft:
    return StrategyDraft(
        id=strategy_id,
        product_id=1,
        price_unit="unit",
        base_price_amount=1000,
        condition_category=ConditionCategory.ORDER_CONDITION,
        condition_type=ConditionType.BULK_ORDER,
        custom_adjustment_percent=Decimal("-10"),
        config=BulkOrderConfig(min_quantity=low, max_quantity=high),
    )


def test_overlapping_volume_range_is_rejected() -> None:
    existing = [_bulk(1, 1, 10), _bulk(2, 11, 20)]

    with pytest.raises(StrategyValidationError) as excinfo:
        validate_strategy(existing, _bulk_draft(5, 15))

    assert excinfo.value.code == "overlapping_volume_discount"
    assert "overlaps with existing rule" in excinfo.value.message
    assert excinfo.value.context["conflicting_strategy_id"] == 1

    validate_strategy(existing, _bulk_draft(21, 30))


def test_open_ended_range_overlaps_everything_above_its_minimum() -> None:
    existing = [_bulk(1, 50, None)]

    with pytest.raises(StrategyValidationError):
        validate_strategy(existing, _bulk_draft(100, 200))
    validate_strategy(existing, _bulk_draft(10, 49))


def test_overlap_ignores_inactive_rules_and_the_row_being_updated() -> None:
    existing = [_bulk(1, 1, 10), _bulk(2, 11, 20, is_active=False)]

    validate_strategy(existing, _bulk_draft(11, 20))
    validate_strategy(existing, _bulk_draft(1, 8, strategy_id=1))


@pytest.mark.parametrize(
    ("low", "high"),
    [(0, 10), (10, 10), (10, 5)],
)
def test_invalid_quantity_ranges(low: int, high: int) -> None:
    with pytest.raises(StrategyValidationError) as excinfo:
        validate_strategy([], _bulk_draft(low, high))
    assert excinfo.value.code == "invalid_quantity_range"


def test_scalar_rules() -> None:
    draft = StrategyDraft(product_id=1, price_unit="unit", base_price_amount=1000)
    validate_strategy([], draft.with_changes(custom_adjustment_percent=Decimal("-100")))

    cases = {
        "negative_price": draft.with_changes(base_price_amount=-1),
        "invalid_conversion_rate": draft.with_changes(conversion_rate=Decimal("0")),
        "invalid_adjustment": draft.with_changes(custom_adjustment_percent=Decimal("-100.5")),
        "invalid_condition": draft.with_changes(
            condition_type=ConditionType.CASH_PAYMENT,
            condition_category=ConditionCategory.DELIVERY_METHOD,
        ),
    }
    for code, candidate in cases.items():
        with pytest.raises(StrategyValidationError) as excinfo:
            validate_strategy([], candidate)
        assert excinfo.value.code == code


def test_volume_rule_set_is_checked_pairwise() -> None:
    validate_volume_rules(
        [
            BulkOrderConfig(min_quantity=10, max_quantity=49),
            BulkOrderConfig(min_quantity=50),
        ]
    )
    with pytest.raises(StrategyValidationError) as excinfo:
        validate_volume_rules(
            [
                BulkOrderConfig(min_quantity=10, max_quantity=60),
                BulkOrderConfig(min_quantity=50),
            ]
        )
    assert excinfo.value.code == "overlapping_volume_discount"


def test_find_duplicate_matches_unit_and_condition() -> None:
    existing = [
        _strategy(1),
        _strategy(2, condition_type=ConditionType.CASH_PAYMENT, adjustment=Decimal("-5")),
        _strategy(3, condition_type=ConditionType.LOYAL_CUSTOMER, is_active=False),
        _bulk(4, 1, 10),
    ]
    cash = StrategyDraft(
        product_id=1,
        price_unit="unit",
        base_price_amount=1000,
        condition_type=ConditionType.CASH_PAYMENT,
    )

    duplicate = find_duplicate(existing, cash)
    assert duplicate is not None and duplicate.id == 2
    assert find_duplicate(existing, cash.with_changes(price_unit="box")) is None
    assert find_duplicate(existing, cash.with_changes(id=2)) is None
    assert find_duplicate(existing, cash.with_changes(condition_type=ConditionType.LOYAL_CUSTOMER)) is None
    assert find_duplicate(existing, cash.with_changes(condition_type=None)).id == 1
    assert find_duplicate(existing, _bulk_draft(11, 20)) is None
