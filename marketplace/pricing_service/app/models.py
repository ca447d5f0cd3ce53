"""SQLAlchemy models for the pricing service."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .conditions import ConditionCategory, ConditionConfig, ConditionType, parse_condition_config


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for pricing ORM models."""


class Product(Base):
    """Product identity, ownership and the denormalized price summary.

    The summary columns are written only by the summary maintainer. ``version``
    is bumped on every summary write so racing pricing mutations on the same
    product fail instead of committing a torn summary.
    """

    __tablename__ = "products"
    __table_args__ = (
        Index("ix_products_category_active", "category", "is_active"),
        Index("ix_products_calculated_min_price", "calculated_min_price"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")
    total_views: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    base_min_price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    base_max_price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    calculated_min_price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    calculated_max_price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    has_any_discount: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    best_discount_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 3), nullable=True)
    price_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}


class AccountMember(Base):
    __tablename__ = "account_members"
    __table_args__ = (UniqueConstraint("account_id", "user_id", name="uq_account_member"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)


class PricingStrategy(Base):
    __tablename__ = "pricing_strategies"
    __table_args__ = (
        Index("ix_pricing_strategies_product_active", "product_id", "is_active"),
        Index(
            "uq_pricing_strategies_active_primary",
            "product_id",
            unique=True,
            sqlite_where=text("is_primary = 1 AND is_active = 1"),
            postgresql_where=text("is_primary AND is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    condition_category: Mapped[ConditionCategory | None] = mapped_column(
        Enum(ConditionCategory, native_enum=False, length=32), nullable=True
    )
    condition_type: Mapped[ConditionType | None] = mapped_column(
        Enum(ConditionType, native_enum=False, length=32), nullable=True
    )
    price_unit: Mapped[str] = mapped_column(String(32), nullable=False)
    conversion_rate: Mapped[Decimal] = mapped_column(
        Numeric(12, 6), nullable=False, default=Decimal("1"), server_default="1"
    )
    base_price_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    custom_adjustment_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 3), nullable=True)
    condition_config: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    final_price_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    has_discount: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")
    min_effective_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    max_effective_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    @property
    def config(self) -> ConditionConfig | None:
        """Typed view of ``condition_config``; stored payloads were validated on write."""

        return parse_condition_config(self.condition_type, self.condition_config)

    @property
    def is_bulk_order(self) -> bool:
        return self.condition_type is ConditionType.BULK_ORDER
