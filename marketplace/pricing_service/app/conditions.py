"""Condition taxonomy and typed condition configuration for pricing strategies.

Every strategy is either unconditional (no category, no type) or bound to one
``ConditionType``; each type belongs to exactly one ``ConditionCategory``.
The free-form ``condition_config`` payload is parsed into a config model chosen
by the condition type, so range rules are checked once, when the strategy is
built, instead of wherever the payload is read.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, model_validator


class ConditionCategory(str, Enum):
    PAYMENT_SETTLEMENT = "PAYMENT_SETTLEMENT"
    DELIVERY_METHOD = "DELIVERY_METHOD"
    CUSTOMER_TYPE = "CUSTOMER_TYPE"
    TIME_CONDITION = "TIME_CONDITION"
    ORDER_CONDITION = "ORDER_CONDITION"
    LOCATION_CONDITION = "LOCATION_CONDITION"
    SPECIAL_OFFER = "SPECIAL_OFFER"


class ConditionType(str, Enum):
    CASH_PAYMENT = "CASH_PAYMENT"
    INSTALLMENT_PAYMENT = "INSTALLMENT_PAYMENT"
    CREDIT_PAYMENT = "CREDIT_PAYMENT"
    EXPRESS_DELIVERY = "EXPRESS_DELIVERY"
    STANDARD_DELIVERY = "STANDARD_DELIVERY"
    IN_STORE_PICKUP = "IN_STORE_PICKUP"
    CORPORATE_CUSTOMER = "CORPORATE_CUSTOMER"
    LOYAL_CUSTOMER = "LOYAL_CUSTOMER"
    WHOLESALE_CUSTOMER = "WHOLESALE_CUSTOMER"
    SEASONAL = "SEASONAL"
    HOLIDAY = "HOLIDAY"
    BULK_ORDER = "BULK_ORDER"
    FIRST_ORDER = "FIRST_ORDER"
    LOCAL_AREA = "LOCAL_AREA"
    REMOTE_AREA = "REMOTE_AREA"
    CLEARANCE = "CLEARANCE"


CATEGORY_OF_TYPE: dict[ConditionType, ConditionCategory] = {
    ConditionType.CASH_PAYMENT: ConditionCategory.PAYMENT_SETTLEMENT,
    ConditionType.INSTALLMENT_PAYMENT: ConditionCategory.PAYMENT_SETTLEMENT,
    ConditionType.CREDIT_PAYMENT: ConditionCategory.PAYMENT_SETTLEMENT,
    ConditionType.EXPRESS_DELIVERY: ConditionCategory.DELIVERY_METHOD,
    ConditionType.STANDARD_DELIVERY: ConditionCategory.DELIVERY_METHOD,
    ConditionType.IN_STORE_PICKUP: ConditionCategory.DELIVERY_METHOD,
    ConditionType.CORPORATE_CUSTOMER: ConditionCategory.CUSTOMER_TYPE,
    ConditionType.LOYAL_CUSTOMER: ConditionCategory.CUSTOMER_TYPE,
    ConditionType.WHOLESALE_CUSTOMER: ConditionCategory.CUSTOMER_TYPE,
    ConditionType.SEASONAL: ConditionCategory.TIME_CONDITION,
    ConditionType.HOLIDAY: ConditionCategory.TIME_CONDITION,
    ConditionType.BULK_ORDER: ConditionCategory.ORDER_CONDITION,
    ConditionType.FIRST_ORDER: ConditionCategory.ORDER_CONDITION,
    ConditionType.LOCAL_AREA: ConditionCategory.LOCATION_CONDITION,
    ConditionType.REMOTE_AREA: ConditionCategory.LOCATION_CONDITION,
    ConditionType.CLEARANCE: ConditionCategory.SPECIAL_OFFER,
}

# Unconditional strategies rank ahead of every category.
CATEGORY_RANK: dict[ConditionCategory | None, int] = {None: 0}
CATEGORY_RANK.update({category: index + 1 for index, category in enumerate(ConditionCategory)})

ADJUSTMENT_LABELS: dict[ConditionType, str] = {
    ConditionType.CASH_PAYMENT: "cash payment discount",
    ConditionType.BULK_ORDER: "volume discount",
    ConditionType.CORPORATE_CUSTOMER: "corporate customer discount",
    ConditionType.LOYAL_CUSTOMER: "loyal customer discount",
}


class ConditionConfigError(ValueError):
    """Raised when a condition payload does not fit its condition type."""


class ConditionConfig(BaseModel):
    """Parameters shared by every condition type: an optional effective price window."""

    min_price: PositiveInt | None = None
    max_price: PositiveInt | None = None
    description: str | None = Field(default=None, max_length=255)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_price_window(self) -> "ConditionConfig":
        if self.min_price is not None and self.max_price is not None and self.max_price < self.min_price:
            raise ValueError("max_price must not be lower than min_price")
        return self

    def to_payload(self) -> dict[str, Any] | None:
        payload = self.model_dump(mode="json", exclude_none=True)
        return payload or None


class BulkOrderConfig(ConditionConfig):
    """Quantity window of a volume discount.

    ``max_quantity`` of ``None`` means the range is open-ended.
    ``additional_discount_per_unit`` is a percentage applied per unit above
    ``min_quantity`` at resolution time.
    """

    min_quantity: int
    max_quantity: int | None = None
    additional_discount_per_unit: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=7, decimal_places=3)

    def contains(self, quantity: int) -> bool:
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity

    def overlaps(self, other: "BulkOrderConfig") -> bool:
        """Two ranges overlap unless one ends strictly before the other begins."""

        self_max = self.max_quantity if self.max_quantity is not None else float("inf")
        other_max = other.max_quantity if other.max_quantity is not None else float("inf")
        return not (self_max < other.min_quantity or other_max < self.min_quantity)

    def describe_range(self) -> str:
        upper = "∞" if self.max_quantity is None else str(self.max_quantity)
        return f"[{self.min_quantity}, {upper}]"


def config_model_for(condition_type: ConditionType | None) -> type[ConditionConfig]:
    if condition_type is ConditionType.BULK_ORDER:
        return BulkOrderConfig
    return ConditionConfig


def parse_condition_config(
    condition_type: ConditionType | None,
    raw: Mapping[str, Any] | ConditionConfig | None,
) -> ConditionConfig | None:
    """Build the typed config for ``condition_type`` from a raw payload.

    Bulk orders always require a config because their quantity window is the
    condition itself; for other types an empty payload yields ``None``.
    """

    model = config_model_for(condition_type)
    if isinstance(raw, ConditionConfig):
        raw = raw.model_dump(exclude_none=True)
    if not raw:
        if model is BulkOrderConfig:
            raise ConditionConfigError("BULK_ORDER strategies require condition_config.min_quantity")
        return None
    try:
        return model.model_validate(dict(raw))
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'condition_config'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConditionConfigError(problems) from exc


def resolve_category(
    condition_type: ConditionType | None,
    condition_category: ConditionCategory | None,
) -> ConditionCategory | None:
    """Return the category implied by ``condition_type``, rejecting mismatches."""

    if condition_type is None:
        if condition_category is not None:
            raise ConditionConfigError(
                f"condition_category {condition_category.value} requires a condition_type"
            )
        return None
    expected = CATEGORY_OF_TYPE[condition_type]
    if condition_category is not None and condition_category is not expected:
        raise ConditionConfigError(
            f"condition_type {condition_type.value} belongs to {expected.value}, "
            f"not {condition_category.value}"
        )
    return expected
