"""Domain services for pricing operations."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from decimal import ROUND_HALF_UP, Decimal
from time import perf_counter
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from marketplace.common import bind_product_id, start_span, unit_of_work

from .calculator import final_price, has_discount, max_effective_price, min_effective_price, normalized_price
from .competition import CompetitionOptions, PeerPrice, build_report, price_band
from .conditions import (
    BulkOrderConfig,
    ConditionCategory,
    ConditionConfig,
    ConditionConfigError,
    ConditionType,
    config_model_for,
    parse_condition_config,
    resolve_category,
)
from .errors import (
    BadRequestError,
    ConcurrentPricingUpdate,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StrategyValidationError,
)
from .events import PricingEventPublisher
from .metrics import (
    PRICING_MUTATION_CONFLICTS_TOTAL,
    PRICING_PRIMARY_PROMOTIONS_TOTAL,
    PRICING_RESOLUTIONS_TOTAL,
    PRICING_RESOLVE_SECONDS,
    PRICING_STRATEGY_MUTATIONS_TOTAL,
    PRICING_VALIDATION_FAILURES_TOTAL,
    normalise_operation,
)
from .models import PricingStrategy, Product
from .order_references import NoOrderReferences, OrderReferenceLookup
from .price_cache import PriceCacheProtocol
from .repository import PricingRepository, StrategyFilters
from .resolver import PriceResolution, PricingConditions, promotion_candidate, resolve
from .schemas import (
    AppliedStrategyResponse,
    CategoryStats,
    CompetitiveAnalysisResponse,
    DeleteStrategyResponse,
    DiscountInfo,
    PriceAdjustmentResponse,
    PriceBreakdown,
    PriceFiltersResponse,
    PriceRange,
    PriceResolutionResponse,
    PriceStatsResponse,
    PriceSummaryResponse,
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    StrategyCreate,
    StrategyListItem,
    StrategyListResponse,
    StrategyResponse,
    StrategySearchResponse,
    StrategyUpdate,
    VolumeDiscountRequest,
    VolumeDiscountResponse,
    VolumeDiscountRule,
)
from .summary import recompute
from .validation import StrategyDraft, find_duplicate, validate_strategy, validate_volume_rules

_LOGGER = logging.getLogger(__name__)

PRICING_ROLES = frozenset({"OWNER", "MANAGER", "PRODUCT_MANAGER"})
UNCONDITIONAL_GROUP = "primary"
_CENT = Decimal("0.01")


def _parse_config(condition_type: ConditionType | None, raw: Any) -> ConditionConfig | None:
    try:
        return parse_condition_config(condition_type, raw)
    except ConditionConfigError as exc:
        raise StrategyValidationError(str(exc), code="invalid_condition_config") from exc


def _category_for(
    condition_type: ConditionType | None,
    condition_category: ConditionCategory | None,
) -> ConditionCategory | None:
    try:
        return resolve_category(condition_type, condition_category)
    except ConditionConfigError as exc:
        raise StrategyValidationError(str(exc), code="invalid_condition") from exc


def _pick(changes: dict[str, Any], name: str, current: Any, *, nullable: bool = False) -> Any:
    if name not in changes:
        return current
    value = changes[name]
    if value is None and not nullable:
        return current
    return value


def _apply_draft(strategy: PricingStrategy, draft: StrategyDraft) -> PricingStrategy:
    """Copy ``draft`` onto ``strategy`` and derive every computed column."""

    amount = final_price(draft.base_price_amount, draft.custom_adjustment_percent)
    strategy.product_id = draft.product_id
    strategy.price_unit = draft.price_unit
    strategy.conversion_rate = draft.conversion_rate
    strategy.base_price_amount = draft.base_price_amount
    strategy.condition_category = draft.condition_category
    strategy.condition_type = draft.condition_type
    strategy.custom_adjustment_percent = draft.custom_adjustment_percent
    strategy.condition_config = draft.config.to_payload() if draft.config is not None else None
    strategy.final_price_amount = amount
    strategy.has_discount = has_discount(draft.custom_adjustment_percent)
    strategy.min_effective_price = min_effective_price(amount, draft.config)
    strategy.max_effective_price = max_effective_price(amount, draft.config)
    strategy.is_primary = draft.is_primary
    strategy.is_active = draft.is_active
    return strategy


def _discount_info(strategy: PricingStrategy) -> DiscountInfo:
    adjustment = strategy.custom_adjustment_percent
    if not adjustment:
        return DiscountInfo(percent=Decimal("0"), amount=0, type="none")
    return DiscountInfo(
        percent=abs(adjustment),
        amount=abs(strategy.base_price_amount - strategy.final_price_amount),
        type="discount" if adjustment < 0 else "surcharge",
    )


def _list_item(strategy: PricingStrategy) -> StrategyListItem:
    base = StrategyResponse.model_validate(strategy).model_dump()
    return StrategyListItem.model_validate(
        {
            **base,
            "discount_info": _discount_info(strategy),
            "normalized_price": normalized_price(strategy.final_price_amount, strategy.conversion_rate),
        }
    )


def _resolution_response(resolution: PriceResolution) -> PriceResolutionResponse:
    return PriceResolutionResponse(
        product_id=resolution.product_id,
        price=resolution.price,
        currency=resolution.currency,
        applied_strategy_id=resolution.applied_strategy_id,
        applied_strategies=[AppliedStrategyResponse.model_validate(item) for item in resolution.applied_strategies],
        breakdown=PriceBreakdown(
            selection=resolution.selection,
            base_price=resolution.base_price,
            adjustments=[PriceAdjustmentResponse.model_validate(item) for item in resolution.adjustments],
            discount_amount=resolution.discount_amount,
            discount_percent=resolution.discount_percent,
            applied_conditions=resolution.applied_conditions,
            trace=resolution.trace,
            final_calculation=resolution.final_calculation,
        ),
    )


class PricingService:
    """Application service orchestrating strategy mutations and price reads.

    Every mutation runs in one unit of work that re-validates against the
    latest committed strategy set, writes, keeps exactly one active primary
    and recomputes the product summary once. The price-changed event is
    published only after the commit succeeded.
    """

    def __init__(
        self,
        repository: PricingRepository,
        *,
        currency: str = "IRR",
        event_publisher: PricingEventPublisher | None = None,
        price_cache: PriceCacheProtocol | None = None,
        order_references: OrderReferenceLookup | None = None,
        competition: CompetitionOptions | None = None,
    ) -> None:
        self.repository = repository
        self.session = repository.session
        self.currency = currency
        self.event_publisher = event_publisher
        self.price_cache = price_cache
        self.order_references = order_references or NoOrderReferences()
        self.competition = competition or CompetitionOptions()

    # Products

    async def create_product(self, owner_id: int | None, payload: ProductCreate) -> ProductResponse:
        if owner_id is None:
            raise ForbiddenError("caller identity is required", code="unauthenticated")
        if payload.account_id is not None:
            await self._require_member(payload.account_id, owner_id)

        inputs = payload.strategies or [
            StrategyCreate(price_unit=payload.unit, base_price_amount=payload.base_price, is_primary=True)
        ]
        async with self._transaction("create_product"):
            product = await self.repository.create_product(
                owner_id=owner_id,
                account_id=payload.account_id,
                name=payload.name,
                category=payload.category,
                brand=payload.brand,
                unit=payload.unit,
                currency=payload.currency or self.currency,
            )
            with bind_product_id(product.id):
                created: list[PricingStrategy] = []
                for strategy_input in inputs:
                    draft = self._draft_from_create(product.id, strategy_input)
                    self._check(created, draft)
                    if draft.is_primary:
                        await self.repository.demote_primaries(product.id)
                    created.append(await self.repository.add_strategy(_apply_draft(PricingStrategy(), draft)))
                await self._ensure_primary(product)
                await recompute(self.session, product)
                _LOGGER.info("Created product %s with %d pricing strategies", product.id, len(created))
        await self._price_changed(product.id, "create_product")
        return ProductResponse.model_validate(product)

    async def get_product(self, product_id: int) -> ProductResponse:
        product = await self._require_product(product_id)
        return ProductResponse.model_validate(product)

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
    ) -> ProductListResponse:
        products, total = await self.repository.list_products(
            limit=limit,
            offset=offset,
            category=category,
            has_discount=has_discount,
            min_price=min_price,
            max_price=max_price,
            sort=sort,
        )
        return ProductListResponse(items=[ProductResponse.model_validate(product) for product in products], total=total)

    # Strategy mutations

    async def create_strategy(self, product_id: int, user_id: int | None, payload: StrategyCreate) -> StrategyResponse:
        product = await self._require_product(product_id)
        with bind_product_id(product.id):
            async with self._transaction("create", product_id=product.id):
                await self._authorize(product, user_id)
                existing = await self.repository.list_strategies(product.id)
                draft = self._draft_from_create(product.id, payload)
                self._check(existing, draft)
                if draft.is_primary:
                    await self.repository.demote_primaries(product.id)
                strategy = await self.repository.add_strategy(_apply_draft(PricingStrategy(), draft))
                await self._ensure_primary(product)
                await recompute(self.session, product)
                condition = draft.condition_type.value if draft.condition_type else "unconditional"
                _LOGGER.info("Created pricing strategy %s (%s)", strategy.id, condition)
            await self._price_changed(product.id, "create")
        return StrategyResponse.model_validate(strategy)

    async def update_strategy(self, strategy_id: int, user_id: int | None, payload: StrategyUpdate) -> StrategyResponse:
        strategy = await self._require_strategy(strategy_id)
        product = await self._require_product(strategy.product_id)
        with bind_product_id(product.id):
            async with self._transaction("update", product_id=product.id):
                await self._authorize(product, user_id)
                existing = await self.repository.list_strategies(product.id)
                draft = self._draft_from_update(strategy, payload)
                self._check(existing, draft)
                others_active = [item for item in existing if item.is_active and item.id != strategy.id]
                if strategy.is_active and not draft.is_active and not others_active:
                    raise ConflictError(
                        f"cannot deactivate the only active strategy of product {product.id}",
                        code="last_active_strategy",
                        product_id=product.id,
                    )
                if draft.is_primary and not strategy.is_primary:
                    await self.repository.demote_primaries(product.id, keep_id=strategy.id)
                _apply_draft(strategy, draft)
                await self._ensure_primary(product)
                await recompute(self.session, product)
                _LOGGER.info("Updated pricing strategy %s", strategy.id)
            await self._price_changed(product.id, "update")
        return StrategyResponse.model_validate(strategy)

    async def delete_strategy(self, strategy_id: int, user_id: int | None) -> DeleteStrategyResponse:
        strategy = await self._require_strategy(strategy_id)
        product = await self._require_product(strategy.product_id)
        with bind_product_id(product.id):
            async with self._transaction("delete", product_id=product.id):
                await self._authorize(product, user_id)
                existing = await self.repository.list_strategies(product.id, active_only=True)
                if strategy.is_active and len(existing) == 1:
                    raise ConflictError(
                        f"cannot delete the only active strategy of product {product.id}",
                        code="last_active_strategy",
                        product_id=product.id,
                    )
                mode = await self._retire(strategy)
                promoted = await self._ensure_primary(product)
                await recompute(self.session, product)
                _LOGGER.info("Pricing strategy %s %s", strategy_id, mode)
            await self._price_changed(product.id, "delete")
        return DeleteStrategyResponse(
            success=True,
            mode=mode,
            promoted_strategy_id=promoted.id if promoted is not None else None,
        )

    async def set_primary_strategy(self, product_id: int, strategy_id: int, user_id: int | None) -> StrategyResponse:
        product = await self._require_product(product_id)
        with bind_product_id(product.id):
            async with self._transaction("set_primary", product_id=product.id):
                await self._authorize(product, user_id)
                strategy = await self.repository.get_strategy(strategy_id)
                if strategy is None or strategy.product_id != product.id:
                    raise NotFoundError(
                        f"strategy {strategy_id} not found for product {product.id}",
                        code="strategy_not_found",
                        strategy_id=strategy_id,
                    )
                if not strategy.is_active:
                    raise BadRequestError(
                        f"strategy {strategy_id} is inactive and cannot become primary",
                        code="inactive_strategy",
                        strategy_id=strategy_id,
                    )
                if not strategy.is_primary:
                    await self.repository.demote_primaries(product.id, keep_id=strategy.id)
                    strategy.is_primary = True
                await recompute(self.session, product)
            await self._price_changed(product.id, "set_primary")
        return StrategyResponse.model_validate(strategy)

    async def set_volume_discounts(
        self,
        product_id: int,
        user_id: int | None,
        payload: VolumeDiscountRequest,
    ) -> VolumeDiscountResponse:
        """Replace the product's volume discounts with ``payload.rules`` as one set.

        Rules whose quantity range already exists reuse that strategy row;
        the rest are created and leftover ranges are retired.
        """

        product = await self._require_product(product_id)
        configs = self._volume_configs(payload.rules)
        with bind_product_id(product.id):
            async with self._transaction("volume_discounts", product_id=product.id):
                await self._authorize(product, user_id)
                existing = await self.repository.list_strategies(product.id, active_only=True)
                primary = next((item for item in existing if item.is_primary), None)
                if primary is None or primary.is_bulk_order:
                    raise BadRequestError(
                        f"product {product.id} needs a non volume primary strategy to derive discounts from",
                        code="primary_required",
                        product_id=product.id,
                    )

                by_range: dict[tuple[int, int | None], PricingStrategy] = {}
                leftovers: list[PricingStrategy] = []
                for item in existing:
                    if not item.is_bulk_order:
                        continue
                    config = item.config
                    key = (config.min_quantity, config.max_quantity) if isinstance(config, BulkOrderConfig) else None
                    if key is None or key in by_range:
                        leftovers.append(item)
                    else:
                        by_range[key] = item

                plan: list[tuple[VolumeDiscountRule, BulkOrderConfig, PricingStrategy | None]] = []
                for rule, config in zip(payload.rules, configs):
                    plan.append((rule, config, by_range.pop((config.min_quantity, config.max_quantity), None)))
                leftovers.extend(by_range.values())

                for leftover in leftovers:
                    await self._retire(leftover)

                created = updated = 0
                written: list[PricingStrategy] = []
                for rule, config, match in plan:
                    draft = StrategyDraft(
                        id=match.id if match is not None else None,
                        product_id=product.id,
                        price_unit=primary.price_unit,
                        base_price_amount=primary.base_price_amount,
                        conversion_rate=primary.conversion_rate,
                        condition_category=ConditionCategory.ORDER_CONDITION,
                        condition_type=ConditionType.BULK_ORDER,
                        custom_adjustment_percent=-rule.discount_percent if rule.discount_percent else None,
                        config=config,
                    )
                    if match is not None:
                        written.append(_apply_draft(match, draft))
                        updated += 1
                    else:
                        written.append(await self.repository.add_strategy(_apply_draft(PricingStrategy(), draft)))
                        created += 1
                await self._ensure_primary(product)
                await recompute(self.session, product)
                _LOGGER.info(
                    "Replaced volume discounts: %d created, %d updated, %d removed",
                    created,
                    updated,
                    len(leftovers),
                )
            await self._price_changed(product.id, "volume_discounts")
        return VolumeDiscountResponse(
            created=created,
            updated=updated,
            removed=len(leftovers),
            strategies=[StrategyResponse.model_validate(item) for item in written],
            summary=PriceSummaryResponse.model_validate(product),
        )

    # Reads

    async def get_strategy(self, strategy_id: int) -> StrategyResponse:
        strategy = await self._require_strategy(strategy_id)
        return StrategyResponse.model_validate(strategy)

    async def list_strategies(self, product_id: int, *, active_only: bool = True) -> StrategyListResponse:
        product = await self._require_product(product_id)
        strategies = await self.repository.list_strategies(product.id, active_only=active_only)
        items = [_list_item(strategy) for strategy in strategies]
        grouped: dict[str, list[StrategyListItem]] = {}
        for strategy, item in zip(strategies, items):
            key = strategy.condition_category.value if strategy.condition_category else UNCONDITIONAL_GROUP
            grouped.setdefault(key, []).append(item)
        return StrategyListResponse(
            product_id=product.id,
            strategies=items,
            grouped=grouped,
            summary=PriceSummaryResponse.model_validate(product),
        )

    async def resolve_price(self, product_id: int, conditions: PricingConditions) -> PriceResolutionResponse:
        with bind_product_id(product_id), start_span("pricing.resolve", product_id=product_id):
            token = conditions.cache_token()
            if self.price_cache is not None:
                cached = await self.price_cache.get(product_id, token)
                if cached is not None:
                    return PriceResolutionResponse.model_validate(cached)

            started = perf_counter()
            product = await self._require_product(product_id)
            strategies = await self.repository.list_strategies(product.id, active_only=True)
            resolution = resolve(product.id, strategies, conditions, product.currency)
            PRICING_RESOLVE_SECONDS.observe(perf_counter() - started)
            PRICING_RESOLUTIONS_TOTAL.labels(selection=resolution.selection).inc()
            response = _resolution_response(resolution)
            if self.price_cache is not None:
                await self.price_cache.store(product_id, token, response.model_dump(mode="json", by_alias=True))
            return response

    async def search_strategies(self, filters: StrategyFilters, *, limit: int, offset: int) -> StrategySearchResponse:
        strategies, total = await self.repository.search_strategies(filters, limit=limit, offset=offset)
        return StrategySearchResponse(
            items=[StrategyResponse.model_validate(strategy) for strategy in strategies],
            total=total,
        )

    async def price_filters(self, product_id: int | None = None) -> PriceFiltersResponse:
        if product_id is not None:
            await self._require_product(product_id)
        data = await self.repository.price_filters(product_id)
        return PriceFiltersResponse(
            price_units=data["price_units"],
            condition_categories=data["condition_categories"],
            condition_types=data["condition_types"],
            price_range=PriceRange(min=data["min_price"], max=data["max_price"]),
            has_discount=data["has_discount"],
        )

    async def price_stats(self, product_id: int | None = None) -> PriceStatsResponse:
        if product_id is not None:
            await self._require_product(product_id)
        data = await self.repository.price_stats(product_id)
        total = data["total"]
        ratio = Decimal(data["discounted"]) / Decimal(total) if total else Decimal("0")
        return PriceStatsResponse(
            total_strategies=total,
            strategies_with_discount=data["discounted"],
            discount_ratio=ratio.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
            average_price=data["average_price"].quantize(_CENT, rounding=ROUND_HALF_UP),
            by_category=[
                CategoryStats(
                    category=row["category"],
                    count=row["count"],
                    average_price=row["average_price"].quantize(_CENT, rounding=ROUND_HALF_UP),
                )
                for row in data["by_category"]
            ],
        )

    async def analyze_competitive_pricing(
        self,
        product_id: int,
        options: CompetitionOptions | None = None,
    ) -> CompetitiveAnalysisResponse:
        options = options or self.competition
        product = await self._require_product(product_id)
        with bind_product_id(product.id), start_span("pricing.competitive_analysis", product_id=product.id):
            strategies = await self.repository.list_strategies(product.id, active_only=True)
            if not strategies:
                return build_report(product.id, None, [])
            main_price = resolve(product.id, strategies, PricingConditions(), product.currency).price
            low, high = price_band(main_price, options.price_band_percent)
            rows = await self.repository.find_peer_prices(
                product,
                min_price=low,
                max_price=high,
                same_brand=options.same_brand,
                limit=options.similar_products_count,
            )
            peers = [
                PeerPrice(
                    product_id=peer.id,
                    name=peer.name,
                    brand=peer.brand,
                    price=price,
                    total_views=peer.total_views,
                    total_likes=peer.total_likes,
                )
                for peer, price in rows
            ]
            report = build_report(product.id, main_price, peers)
            _LOGGER.debug("Competitive analysis over %d peers: %s", len(peers), report.status)
            return report

    # Helpers

    @asynccontextmanager
    async def _transaction(self, operation: str, *, product_id: int | None = None) -> AsyncIterator[None]:
        with start_span(f"pricing.{operation}", product_id=product_id):
            try:
                async with unit_of_work(self.session):
                    yield
            except StaleDataError as exc:
                PRICING_MUTATION_CONFLICTS_TOTAL.inc()
                raise ConcurrentPricingUpdate(
                    "pricing of this product was changed concurrently; retry the request",
                    product_id=product_id,
                ) from exc
            except IntegrityError as exc:
                PRICING_MUTATION_CONFLICTS_TOTAL.inc()
                raise ConcurrentPricingUpdate(
                    "conflicting pricing write for this product; retry the request",
                    product_id=product_id,
                ) from exc
            except StrategyValidationError as exc:
                PRICING_VALIDATION_FAILURES_TOTAL.labels(code=exc.code).inc()
                raise
        PRICING_STRATEGY_MUTATIONS_TOTAL.labels(operation=normalise_operation(operation)).inc()

    async def _price_changed(self, product_id: int, operation: str) -> None:
        if self.event_publisher is None:
            return
        await self.event_publisher.price_changed(product_id, operation=operation)

    async def _require_product(self, product_id: int) -> Product:
        product = await self.repository.get_product(product_id)
        if product is None:
            raise NotFoundError(f"product {product_id} not found", code="product_not_found", product_id=product_id)
        return product

    async def _require_strategy(self, strategy_id: int) -> PricingStrategy:
        strategy = await self.repository.get_strategy(strategy_id)
        if strategy is None:
            raise NotFoundError(
                f"pricing strategy {strategy_id} not found",
                code="strategy_not_found",
                strategy_id=strategy_id,
            )
        return strategy

    async def _require_member(self, account_id: int, user_id: int) -> None:
        member = await self.repository.get_membership(account_id, user_id)
        if member is None or member.role.upper() not in PRICING_ROLES:
            raise ForbiddenError(
                f"user {user_id} may not manage pricing for account {account_id}",
                user_id=user_id,
                account_id=account_id,
            )

    async def _authorize(self, product: Product, user_id: int | None) -> None:
        if user_id is None:
            raise ForbiddenError("caller identity is required", code="unauthenticated")
        if product.owner_id == user_id:
            return
        if product.account_id is None:
            raise ForbiddenError(
                f"user {user_id} does not own product {product.id}",
                user_id=user_id,
                product_id=product.id,
            )
        await self._require_member(product.account_id, user_id)

    def _draft_from_create(self, product_id: int, payload: StrategyCreate) -> StrategyDraft:
        draft = StrategyDraft(
            product_id=product_id,
            price_unit=payload.price_unit,
            base_price_amount=payload.base_price_amount,
            conversion_rate=payload.conversion_rate,
            condition_category=_category_for(payload.condition_type, payload.condition_category),
            condition_type=payload.condition_type,
            custom_adjustment_percent=payload.custom_adjustment_percent,
            config=_parse_config(payload.condition_type, payload.condition_config),
            is_primary=payload.is_primary,
            is_active=payload.is_active,
        )
        if draft.is_primary and not draft.is_active:
            raise BadRequestError("an inactive strategy cannot be primary", code="inactive_primary")
        return draft

    def _draft_from_update(self, strategy: PricingStrategy, payload: StrategyUpdate) -> StrategyDraft:
        changes = payload.model_dump(exclude_unset=True)
        type_changed = "condition_type" in changes
        condition_type = changes["condition_type"] if type_changed else strategy.condition_type
        if "condition_category" in changes:
            category = changes["condition_category"]
        elif type_changed:
            category = None
        else:
            category = strategy.condition_category
        if "condition_config" in changes:
            raw_config = changes["condition_config"]
        elif type_changed and config_model_for(condition_type) is not config_model_for(strategy.condition_type):
            # The stored payload belongs to the previous type's config shape.
            raw_config = None
        else:
            raw_config = strategy.condition_config

        is_active = _pick(changes, "is_active", strategy.is_active)
        requested_primary = changes.get("is_primary")
        if requested_primary and not is_active:
            raise BadRequestError("an inactive strategy cannot be primary", code="inactive_primary")
        if requested_primary is False and strategy.is_primary and is_active:
            raise BadRequestError(
                "assign another primary strategy instead of unsetting the current one",
                code="primary_required",
                strategy_id=strategy.id,
            )
        is_primary = bool(requested_primary) if requested_primary is not None else strategy.is_primary
        if not is_active:
            is_primary = False

        return StrategyDraft(
            id=strategy.id,
            product_id=strategy.product_id,
            price_unit=_pick(changes, "price_unit", strategy.price_unit),
            base_price_amount=_pick(changes, "base_price_amount", strategy.base_price_amount),
            conversion_rate=_pick(changes, "conversion_rate", strategy.conversion_rate),
            condition_category=_category_for(condition_type, category),
            condition_type=condition_type,
            custom_adjustment_percent=_pick(
                changes, "custom_adjustment_percent", strategy.custom_adjustment_percent, nullable=True
            ),
            config=_parse_config(condition_type, raw_config),
            is_primary=is_primary,
            is_active=is_active,
        )

    def _check(self, existing: Sequence[PricingStrategy], draft: StrategyDraft) -> None:
        validate_strategy(existing, draft)
        duplicate = find_duplicate(existing, draft)
        if duplicate is not None:
            condition = draft.condition_type.value if draft.condition_type else "unconditional"
            raise ConflictError(
                f"strategy {duplicate.id} already prices {draft.price_unit} for {condition}",
                code="duplicate_strategy",
                existing_strategy_id=duplicate.id,
            )

    def _volume_configs(self, rules: Sequence[VolumeDiscountRule]) -> list[BulkOrderConfig]:
        configs: list[BulkOrderConfig] = []
        for index, rule in enumerate(rules):
            if not Decimal("0") <= rule.discount_percent <= Decimal("100"):
                raise BadRequestError(
                    f"rule {index}: discountPercent must be within [0, 100]",
                    code="invalid_volume_discount",
                    rule_index=index,
                )
            try:
                configs.append(
                    BulkOrderConfig(
                        min_quantity=rule.min_quantity,
                        max_quantity=rule.max_quantity,
                        additional_discount_per_unit=rule.additional_discount_per_unit,
                        description=rule.description,
                    )
                )
            except ValidationError as exc:
                raise BadRequestError(
                    f"rule {index}: {exc.errors()[0]['msg']}",
                    code="invalid_volume_discount",
                    rule_index=index,
                ) from exc
        try:
            validate_volume_rules(configs)
        except StrategyValidationError as exc:
            raise BadRequestError(exc.message, code=exc.code, **exc.context) from exc
        return configs

    async def _retire(self, strategy: PricingStrategy) -> str:
        """Delete ``strategy`` or, when orders reference it, deactivate it."""

        if await self.order_references.is_referenced(strategy.id):
            strategy.is_primary = False
            strategy.is_active = False
            await self.session.flush()
            return "deactivated"
        await self.repository.delete_strategy(strategy)
        return "deleted"

    async def _ensure_primary(self, product: Product) -> PricingStrategy | None:
        """Promote a replacement when the product has active strategies but no primary."""

        await self.session.flush()
        active = await self.repository.list_strategies(product.id, active_only=True)
        if not active or any(strategy.is_primary for strategy in active):
            return None
        replacement = promotion_candidate(active)
        replacement.is_primary = True
        PRICING_PRIMARY_PROMOTIONS_TOTAL.inc()
        _LOGGER.info("Promoted strategy %s to primary for product %s", replacement.id, product.id)
        return replacement
