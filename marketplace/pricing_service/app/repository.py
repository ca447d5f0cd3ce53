"""Data access helpers for the pricing service."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .conditions import ConditionCategory, ConditionType
from .models import AccountMember, PricingStrategy, Product

PRODUCT_SORTS = {
    "newest": (Product.created_at.desc(), Product.id.desc()),
    "oldest": (Product.created_at.asc(), Product.id.asc()),
    "price_low": (Product.calculated_min_price.asc(), Product.id.asc()),
    "price_high": (Product.calculated_min_price.desc(), Product.id.desc()),
    "best_discount": (Product.best_discount_percent.asc(), Product.id.asc()),
}


@dataclass(slots=True)
class StrategyFilters:
    product_id: int | None = None
    condition_category: ConditionCategory | None = None
    condition_type: ConditionType | None = None
    price_unit: str | None = None
    min_price: int | None = None
    max_price: int | None = None
    has_discount: bool | None = None
    active_only: bool = True

    def clauses(self) -> list[Any]:
        clauses: list[Any] = []
        if self.product_id is not None:
            clauses.append(PricingStrategy.product_id == self.product_id)
        if self.condition_category is not None:
            clauses.append(PricingStrategy.condition_category == self.condition_category)
        if self.condition_type is not None:
            clauses.append(PricingStrategy.condition_type == self.condition_type)
        if self.price_unit:
            clauses.append(PricingStrategy.price_unit == self.price_unit)
        # Effective bounds let a price window match without re-running resolution.
        if self.min_price is not None:
            clauses.append(PricingStrategy.max_effective_price >= self.min_price)
        if self.max_price is not None:
            clauses.append(PricingStrategy.min_effective_price <= self.max_price)
        if self.has_discount is not None:
            clauses.append(PricingStrategy.has_discount.is_(self.has_discount))
        if self.active_only:
            clauses.append(PricingStrategy.is_active.is_(True))
        return clauses


class PricingRepository:
    """Persistence helpers for products, memberships and pricing strategies."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_product(self, **fields: Any) -> Product:
        product = Product(**fields)
        self.session.add(product)
        await self.session.flush()
        return product

    async def get_product(self, product_id: int) -> Product | None:
        return await self.session.get(Product, product_id)

    async def list_products(
        self,
        *,
        limit: int,
        offset: int,
        category: str | None = None,
        has_discount: bool | None = None,
        min_price: int | None = None,
        max_price: int | None = None,
        sort: str = "newest",
        active_only: bool = True,
    ) -> tuple[list[Product], int]:
        base: Select[tuple[Product]] = select(Product)
        count: Select[tuple[int]] = select(func.count(Product.id))

        filters = []
        if active_only:
            filters.append(Product.is_active.is_(True))
        if category:
            filters.append(Product.category == category)
        if has_discount is not None:
            filters.append(Product.has_any_discount.is_(has_discount))
        if min_price is not None:
            filters.append(Product.calculated_max_price >= min_price)
        if max_price is not None:
            filters.append(Product.calculated_min_price <= max_price)

        if filters:
            base = base.where(and_(*filters))
            count = count.where(and_(*filters))

        if sort == "best_discount":
            # Products without any discount sort last.
            base = base.order_by(Product.best_discount_percent.is_(None), *PRODUCT_SORTS[sort])
        else:
            base = base.order_by(*PRODUCT_SORTS.get(sort, PRODUCT_SORTS["newest"]))

        total_result = await self.session.execute(count)
        total = total_result.scalar_one()
        products_result = await self.session.execute(base.offset(offset).limit(limit))
        return list(products_result.scalars()), total

    async def add_member(self, *, account_id: int, user_id: int, role: str) -> AccountMember:
        member = AccountMember(account_id=account_id, user_id=user_id, role=role)
        self.session.add(member)
        await self.session.flush()
        return member

    async def get_membership(self, account_id: int, user_id: int) -> AccountMember | None:
        result = await self.session.execute(
            select(AccountMember).where(AccountMember.account_id == account_id, AccountMember.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_strategy(self, strategy_id: int) -> PricingStrategy | None:
        result = await self.session.execute(
            select(PricingStrategy)
            .where(PricingStrategy.id == strategy_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_strategies(self, product_id: int, *, active_only: bool = False) -> list[PricingStrategy]:
        query = select(PricingStrategy).where(PricingStrategy.product_id == product_id)
        if active_only:
            query = query.where(PricingStrategy.is_active.is_(True))
        result = await self.session.execute(
            query.order_by(PricingStrategy.id.asc()).execution_options(populate_existing=True)
        )
        return list(result.scalars())

    async def add_strategy(self, strategy: PricingStrategy) -> PricingStrategy:
        self.session.add(strategy)
        await self.session.flush()
        return strategy

    async def delete_strategy(self, strategy: PricingStrategy) -> None:
        await self.session.delete(strategy)
        await self.session.flush()

    async def demote_primaries(self, product_id: int, *, keep_id: int | None = None) -> int:
        """Clear ``is_primary`` on every strategy of the product except ``keep_id``."""

        statement = update(PricingStrategy).where(
            PricingStrategy.product_id == product_id,
            PricingStrategy.is_primary.is_(True),
        )
        if keep_id is not None:
            statement = statement.where(PricingStrategy.id != keep_id)
        result = await self.session.execute(statement.values(is_primary=False))
        return result.rowcount or 0

    async def search_strategies(
        self,
        filters: StrategyFilters,
        *,
        limit: int,
        offset: int,
    ) -> tuple[list[PricingStrategy], int]:
        clauses = filters.clauses()
        base = select(PricingStrategy)
        count = select(func.count(PricingStrategy.id))
        if clauses:
            base = base.where(and_(*clauses))
            count = count.where(and_(*clauses))
        base = base.order_by(PricingStrategy.final_price_amount.asc(), PricingStrategy.id.asc())

        total_result = await self.session.execute(count)
        total = total_result.scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars()), total

    async def price_filters(self, product_id: int | None) -> dict[str, Any]:
        clauses = StrategyFilters(product_id=product_id).clauses()
        units_result = await self.session.execute(
            select(PricingStrategy.price_unit).where(*clauses).distinct().order_by(PricingStrategy.price_unit)
        )
        categories_result = await self.session.execute(
            select(PricingStrategy.condition_category)
            .where(*clauses, PricingStrategy.condition_category.is_not(None))
            .distinct()
        )
        types_result = await self.session.execute(
            select(PricingStrategy.condition_type)
            .where(*clauses, PricingStrategy.condition_type.is_not(None))
            .distinct()
        )
        bounds_result = await self.session.execute(
            select(
                func.min(PricingStrategy.final_price_amount),
                func.max(PricingStrategy.final_price_amount),
                func.max(case((PricingStrategy.has_discount.is_(True), 1), else_=0)),
            ).where(*clauses)
        )
        min_price, max_price, any_discount = bounds_result.one()
        return {
            "price_units": list(units_result.scalars()),
            "condition_categories": sorted(category.value for category in categories_result.scalars()),
            "condition_types": sorted(condition.value for condition in types_result.scalars()),
            "min_price": min_price or 0,
            "max_price": max_price or 0,
            "has_discount": bool(any_discount),
        }

    async def price_stats(self, product_id: int | None) -> dict[str, Any]:
        clauses = StrategyFilters(product_id=product_id).clauses()
        totals_result = await self.session.execute(
            select(
                func.count(PricingStrategy.id),
                func.sum(case((PricingStrategy.has_discount.is_(True), 1), else_=0)),
                func.avg(PricingStrategy.final_price_amount),
            ).where(*clauses)
        )
        total, discounted, average = totals_result.one()
        grouped_result = await self.session.execute(
            select(
                PricingStrategy.condition_category,
                func.count(PricingStrategy.id),
                func.avg(PricingStrategy.final_price_amount),
            )
            .where(*clauses)
            .group_by(PricingStrategy.condition_category)
        )
        by_category = [
            {
                "category": category.value if category is not None else None,
                "count": count,
                "average_price": Decimal(str(avg or 0)),
            }
            for category, count, avg in grouped_result.all()
        ]
        by_category.sort(key=lambda row: (row["category"] is not None, row["category"] or ""))
        return {
            "total": total or 0,
            "discounted": discounted or 0,
            "average_price": Decimal(str(average or 0)),
            "by_category": by_category,
        }

    async def find_peer_prices(
        self,
        product: Product,
        *,
        min_price: int,
        max_price: int,
        same_brand: bool,
        limit: int,
    ) -> list[tuple[Product, int]]:
        """Return active peers in the product's category with their primary price."""

        query = (
            select(Product, PricingStrategy.final_price_amount)
            .join(
                PricingStrategy,
                and_(
                    PricingStrategy.product_id == Product.id,
                    PricingStrategy.is_primary.is_(True),
                    PricingStrategy.is_active.is_(True),
                ),
            )
            .where(
                Product.id != product.id,
                Product.is_active.is_(True),
                PricingStrategy.final_price_amount.between(min_price, max_price),
            )
        )
        if product.category is not None:
            query = query.where(Product.category == product.category)
        else:
            query = query.where(Product.category.is_(None))
        if same_brand and product.brand:
            query = query.where(Product.brand == product.brand)
        query = query.order_by(Product.total_views.desc(), Product.id.asc()).limit(limit)
        result = await self.session.execute(query)
        return [(peer, price) for peer, price in result.all()]
