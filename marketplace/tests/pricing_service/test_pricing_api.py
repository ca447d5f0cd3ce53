from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, cast

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY

from marketplace.common import EventConsumer, ServiceSettings, create_engine, dispose_engines
from marketplace.common.cache import RedisType
from marketplace.pricing_service.app.calculator import final_price
from marketplace.pricing_service.app.event_handlers import PriceChangeHandler
from marketplace.pricing_service.app.events import PRICE_CHANGED_TOPIC
from marketplace.pricing_service.app.main import create_app
from marketplace.pricing_service.app.models import Base
from marketplace.pricing_service.app.price_cache import ResolvedPriceCache

OWNER_HEADERS = {"X-User-Id": "10"}


def _product_payload(name: str = "Galaxy A55", **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"name": name, "category": "phones", "brand": "samsung", "basePrice": 1000}
    payload.update(overrides)
    return payload


def _strategy_payload(condition_type: str | None = None, adjustment: float | None = None, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"priceUnit": "unit", "basePriceAmount": 1000}
    if condition_type is not None:
        payload["conditionType"] = condition_type
    if adjustment is not None:
        payload["customAdjustmentPercent"] = adjustment
    payload.update(overrides)
    return payload


def _run(coro):
    return asyncio.run(coro)


class _MemoryRedis:
    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._sets: dict[str, set[str]] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:  # noqa: ARG002 - TTL ignored in stub
        self._store[key] = value

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._store.pop(key, None)
            self._sets.pop(key, None)

    async def sadd(self, key: str, *members: str) -> None:
        self._sets.setdefault(key, set()).update(members)

    async def smembers(self, key: str) -> set[str]:
        return set(self._sets.get(key, set()))

    async def expire(self, key: str, seconds: int) -> None:  # noqa: ARG002
        return None


class _MetricTracker:
    def __init__(self, name: str, labels: dict[str, str] | None = None) -> None:
        self.name = name
        self.labels = labels or {}
        baseline = REGISTRY.get_sample_value(name, self.labels)
        self._baseline = baseline if baseline is not None else 0.0

    def delta(self) -> float:
        current = REGISTRY.get_sample_value(self.name, self.labels)
        value = current if current is not None else 0.0
        return value - self._baseline


async def _prepare_app(tmp_path) -> FastAPI:
    db_file = tmp_path / "pricing.db"
    database_url = f"sqlite+aiosqlite:///{db_file}"

    engine = create_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    settings = ServiceSettings(
        app_name="Pricing Service Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=database_url,
    )
    return create_app(settings)


async def _create_product(client: AsyncClient, **overrides: Any) -> dict[str, Any]:
    response = await client.post("/products", json=_product_payload(**overrides), headers=OWNER_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


async def _create_strategy(client: AsyncClient, product_id: int, payload: dict[str, Any]) -> dict[str, Any]:
    response = await client.post(f"/products/{product_id}/strategies", json=payload, headers=OWNER_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_product_and_resolve_conditional_price(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                product = await _create_product(client)
                assert product["ownerId"] == 10
                assert product["currency"] == "IRR"
                assert product["calculatedMinPrice"] == 1000
                assert product["hasAnyDiscount"] is False

                cash = await _create_strategy(client, product["id"], _strategy_payload("CASH_PAYMENT", -10))
                assert cash["conditionCategory"] == "PAYMENT_SETTLEMENT"
                assert cash["finalPriceAmount"] == 900
                assert cash["hasDiscount"] is True
                assert cash["isPrimary"] is False

                listing = await client.get(f"/products/{product['id']}/strategies")
                assert listing.status_code == 200
                listed = listing.json()
                assert set(listed["grouped"]) == {"primary", "PAYMENT_SETTLEMENT"}
                cash_item = listed["grouped"]["PAYMENT_SETTLEMENT"][0]
                assert cash_item["discountInfo"]["type"] == "discount"
                assert cash_item["discountInfo"]["amount"] == 100
                assert Decimal(cash_item["discountInfo"]["percent"]) == Decimal("10")
                assert Decimal(cash_item["normalizedPrice"]) == Decimal("900")
                assert listed["summary"]["calculatedMinPrice"] == 900
                assert Decimal(listed["summary"]["bestDiscountPercent"]) == Decimal("-10")

                resolved = await client.get(
                    f"/products/{product['id']}/price",
                    params={"paymentMethod": "CASH_PAYMENT", "customerType": "LOYAL_CUSTOMER"},
                )
                assert resolved.status_code == 200
                payload = resolved.json()
                assert payload["price"] == 900
                assert payload["appliedStrategyId"] == cash["id"]
                breakdown = payload["breakdown"]
                assert breakdown["selection"] == "matched"
                assert breakdown["basePrice"] == 1000
                assert breakdown["discountAmount"] == 100
                assert Decimal(breakdown["discountPercent"]) == Decimal("10")
                assert breakdown["appliedConditions"] == ["payment_method"]
                assert breakdown["adjustments"][0]["description"] == "cash payment discount"
                assert breakdown["finalCalculation"].endswith("final price 900 IRR")

    _run(body())
    _run(dispose_engines())


def test_volume_range_falls_back_to_primary_below_minimum(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                product = await _create_product(client)
                bulk = await _create_strategy(
                    client,
                    product["id"],
                    _strategy_payload("BULK_ORDER", -10, conditionConfig={"min_quantity": 50}),
                )
                assert bulk["conditionCategory"] == "ORDER_CONDITION"

                small = await client.get(f"/products/{product['id']}/price", params={"quantity": 10})
                assert small.json()["price"] == 1000
                assert small.json()["breakdown"]["selection"] == "primary"

                large = await client.get(f"/products/{product['id']}/price", params={"quantity": 60})
                assert large.json()["price"] == 900
                assert large.json()["appliedStrategyId"] == bulk["id"]
                assert large.json()["breakdown"]["appliedConditions"] == ["volume_discount"]

                invalid = await client.get(f"/products/{product['id']}/price", params={"quantity": 0})
                assert invalid.status_code == 422

    _run(body())
    _run(dispose_engines())


def test_identity_and_lookup_errors(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                anonymous = await client.post("/products", json=_product_payload())
                assert anonymous.status_code == 403
                assert anonymous.json()["code"] == "unauthenticated"

                priceless = await client.post(
                    "/products", json={"name": "No price"}, headers=OWNER_HEADERS
                )
                assert priceless.status_code == 422

                missing = await client.get("/products/999")
                assert missing.status_code == 404
                assert missing.json()["code"] == "product_not_found"

                missing_strategy = await client.get("/strategies/999")
                assert missing_strategy.status_code == 404

                product = await _create_product(client)
                foreign = await client.post(
                    f"/products/{product['id']}/strategies",
                    json=_strategy_payload("CASH_PAYMENT", -10),
                    headers={"X-User-Id": "55"},
                )
                assert foreign.status_code == 403
                assert foreign.json()["code"] == "forbidden"

                mismatched = await client.post(
                    f"/products/{product['id']}/strategies",
                    json=_strategy_payload("CASH_PAYMENT", -10, conditionCategory="CUSTOMER_TYPE"),
                    headers=OWNER_HEADERS,
                )
                assert mismatched.status_code == 422
                assert mismatched.json()["code"] == "invalid_condition"

    _run(body())
    _run(dispose_engines())


def test_delete_keeps_one_active_primary(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                product = await _create_product(client)
                listing = await client.get(f"/products/{product['id']}/strategies")
                primary_id = listing.json()["strategies"][0]["id"]

                sole = await client.delete(f"/strategies/{primary_id}", headers=OWNER_HEADERS)
                assert sole.status_code == 409
                assert sole.json()["code"] == "last_active_strategy"

                loyal = await _create_strategy(client, product["id"], _strategy_payload("LOYAL_CUSTOMER", -5))
                removed = await client.delete(f"/strategies/{primary_id}", headers=OWNER_HEADERS)
                assert removed.status_code == 200
                assert removed.json() == {"success": True, "mode": "deleted", "promotedStrategyId": loyal["id"]}

                promoted = await client.get(f"/strategies/{loyal['id']}")
                assert promoted.json()["isPrimary"] is True

                refreshed = await client.get(f"/products/{product['id']}")
                assert refreshed.json()["calculatedMinPrice"] == 950
                assert refreshed.json()["calculatedMaxPrice"] == 950

    _run(body())
    _run(dispose_engines())


def test_patch_recomputes_prices_and_summary(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                product = await _create_product(client)
                seasonal = await _create_strategy(client, product["id"], _strategy_payload("SEASONAL", -10))

                deeper = await client.patch(
                    f"/strategies/{seasonal['id']}",
                    json={"customAdjustmentPercent": -25, "conditionConfig": {"min_price": 700, "max_price": 1100}},
                    headers=OWNER_HEADERS,
                )
                assert deeper.status_code == 200
                assert deeper.json()["finalPriceAmount"] == 750
                assert deeper.json()["minEffectivePrice"] == 700
                assert deeper.json()["maxEffectivePrice"] == 1100

                summary = (await client.get(f"/products/{product['id']}")).json()
                assert summary["calculatedMinPrice"] == 750
                assert Decimal(summary["bestDiscountPercent"]) == Decimal("-25")
                assert summary["version"] > product["version"]

                cleared = await client.patch(
                    f"/strategies/{seasonal['id']}",
                    json={"customAdjustmentPercent": None},
                    headers=OWNER_HEADERS,
                )
                assert cleared.json()["finalPriceAmount"] == 1000
                assert cleared.json()["hasDiscount"] is False

                summary = (await client.get(f"/products/{product['id']}")).json()
                assert summary["hasAnyDiscount"] is False
                assert summary["bestDiscountPercent"] is None

    _run(body())
    _run(dispose_engines())


def test_adjustments_are_limited_to_stored_precision(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                product = await _create_product(client)
                too_precise = await client.post(
                    f"/products/{product['id']}/strategies",
                    json=_strategy_payload("CASH_PAYMENT", None, basePriceAmount=100_000_000, customAdjustmentPercent="-10.0004"),
                    headers=OWNER_HEADERS,
                )
                assert too_precise.status_code == 422

                cash = await _create_strategy(
                    client,
                    product["id"],
                    _strategy_payload("CASH_PAYMENT", None, basePriceAmount=100_000_000, customAdjustmentPercent="-10.125"),
                )
                assert cash["finalPriceAmount"] == 89_875_000

                stored = (await client.get(f"/strategies/{cash['id']}")).json()
                adjustment = Decimal(stored["customAdjustmentPercent"])
                assert adjustment == Decimal("-10.125")
                assert stored["finalPriceAmount"] == final_price(stored["basePriceAmount"], adjustment)

                patched = await client.patch(
                    f"/strategies/{cash['id']}",
                    json={"customAdjustmentPercent": "-5.5555"},
                    headers=OWNER_HEADERS,
                )
                assert patched.status_code == 422
                oversized = await client.patch(
                    f"/strategies/{cash['id']}",
                    json={"customAdjustmentPercent": "12345"},
                    headers=OWNER_HEADERS,
                )
                assert oversized.status_code == 422

                rules = await client.put(
                    f"/products/{product['id']}/volume-discounts",
                    json={"rules": [{"minQuantity": 10, "discountPercent": "5.0001"}]},
                    headers=OWNER_HEADERS,
                )
                assert rules.status_code == 422

    _run(body())
    _run(dispose_engines())


def test_changing_condition_type_drops_config_of_previous_type(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                product = await _create_product(client)
                bulk = await _create_strategy(
                    client,
                    product["id"],
                    _strategy_payload("BULK_ORDER", -10, conditionConfig={"min_quantity": 10, "max_quantity": 50}),
                )

                cash = await client.patch(
                    f"/strategies/{bulk['id']}", json={"conditionType": "CASH_PAYMENT"}, headers=OWNER_HEADERS
                )
                assert cash.status_code == 200, cash.text
                assert cash.json()["conditionType"] == "CASH_PAYMENT"
                assert cash.json()["conditionCategory"] == "PAYMENT_SETTLEMENT"
                assert cash.json()["conditionConfig"] is None
                assert cash.json()["finalPriceAmount"] == 900

                back_to_bulk = await client.patch(
                    f"/strategies/{bulk['id']}", json={"conditionType": "BULK_ORDER"}, headers=OWNER_HEADERS
                )
                assert back_to_bulk.status_code == 422
                assert back_to_bulk.json()["code"] == "invalid_condition_config"

                windowed = await client.patch(
                    f"/strategies/{bulk['id']}",
                    json={"conditionConfig": {"min_price": 800}},
                    headers=OWNER_HEADERS,
                )
                assert windowed.status_code == 200
                loyal = await client.patch(
                    f"/strategies/{bulk['id']}", json={"conditionType": "LOYAL_CUSTOMER"}, headers=OWNER_HEADERS
                )
                assert loyal.status_code == 200
                assert loyal.json()["conditionConfig"] == {"min_price": 800}

    _run(body())
    _run(dispose_engines())


def test_volume_discount_rules_over_http(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                product = await _create_product(client)
                url = f"/products/{product['id']}/volume-discounts"

                created = await client.put(
                    url,
                    json={
                        "rules": [
                            {"minQuantity": 10, "maxQuantity": 49, "discountPercent": 5},
                            {"minQuantity": 50, "discountPercent": 10, "additionalDiscountPerUnit": 0.5},
                        ]
                    },
                    headers=OWNER_HEADERS,
                )
                assert created.status_code == 200, created.text
                assert created.json()["created"] == 2
                assert created.json()["summary"]["calculatedMinPrice"] == 900

                overlapping = await client.put(
                    url,
                    json={
                        "rules": [
                            {"minQuantity": 10, "maxQuantity": 60, "discountPercent": 5},
                            {"minQuantity": 50, "discountPercent": 10},
                        ]
                    },
                    headers=OWNER_HEADERS,
                )
                assert overlapping.status_code == 400
                assert overlapping.json()["code"] == "overlapping_volume_discount"

                single = await client.post(
                    f"/products/{product['id']}/strategies",
                    json=_strategy_payload("BULK_ORDER", -7, conditionConfig={"min_quantity": 40, "max_quantity": 45}),
                    headers=OWNER_HEADERS,
                )
                assert single.status_code == 422
                assert single.json()["code"] == "overlapping_volume_discount"
                assert "overlaps with existing rule" in single.json()["detail"]

                stacked = await client.get(f"/products/{product['id']}/price", params={"quantity": 60})
                assert stacked.json()["price"] == 855

    _run(body())
    _run(dispose_engines())


def test_search_filters_and_stats(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                phone = await _create_product(client)
                laptop = await _create_product(client, name="ThinkPad X1", category="laptops", basePrice=2000)
                cash = await _create_strategy(client, phone["id"], _strategy_payload("CASH_PAYMENT", -10))

                discounted = await client.get("/strategies", params={"hasDiscount": "true"})
                assert discounted.status_code == 200
                assert discounted.json()["total"] == 1
                assert discounted.json()["items"][0]["id"] == cash["id"]

                pricey = await client.get("/strategies", params={"minPrice": 1500})
                assert [item["productId"] for item in pricey.json()["items"]] == [laptop["id"]]

                by_product = await client.get("/strategies", params={"productId": phone["id"]})
                assert [item["finalPriceAmount"] for item in by_product.json()["items"]] == [900, 1000]

                filters = await client.get("/strategies/filters", params={"productId": phone["id"]})
                assert filters.json() == {
                    "priceUnits": ["unit"],
                    "conditionCategories": ["PAYMENT_SETTLEMENT"],
                    "conditionTypes": ["CASH_PAYMENT"],
                    "priceRange": {"min": 900, "max": 1000},
                    "hasDiscount": True,
                }

                stats = (await client.get("/strategies/stats")).json()
                assert stats["totalStrategies"] == 3
                assert stats["strategiesWithDiscount"] == 1
                assert Decimal(stats["discountRatio"]) == Decimal("0.3333")
                assert Decimal(stats["averagePrice"]) == Decimal("1300")
                assert [row["category"] for row in stats["byCategory"]] == [None, "PAYMENT_SETTLEMENT"]
                assert stats["byCategory"][0]["count"] == 2

                products = (await client.get("/products", params={"sort": "price_high"})).json()
                assert [item["id"] for item in products["items"]] == [laptop["id"], phone["id"]]

                missing = await client.get("/strategies/stats", params={"productId": 999})
                assert missing.status_code == 404

    _run(body())
    _run(dispose_engines())


def test_competitive_analysis_compares_category_peers(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                main = await _create_product(client)
                cheaper = await _create_product(client, name="Redmi 13", brand="xiaomi", basePrice=800)
                similar = await _create_product(client, name="Pixel 8a", brand="google", basePrice=900)
                pricier = await _create_product(client, name="Galaxy S24", basePrice=1200)
                await _create_product(client, name="iPhone 16 Pro", brand="apple", basePrice=5000)
                await _create_product(client, name="Tab S9", category="tablets", basePrice=1000)

                report = await client.get(f"/products/{main['id']}/competitive-analysis")
                assert report.status_code == 200
                payload = report.json()
                assert payload["status"] == "ok"
                assert payload["analysis"]["competitorCount"] == 3
                assert payload["analysis"]["position"] == "competitive"
                assert payload["analysis"]["mainPrice"] == 1000
                assert {item["productId"] for item in payload["topCompetitors"]} == {
                    cheaper["id"],
                    similar["id"],
                    pricier["id"],
                }

                branded = await client.get(
                    f"/products/{main['id']}/competitive-analysis", params={"sameBrand": "true"}
                )
                assert [item["productId"] for item in branded.json()["topCompetitors"]] == [pricier["id"]]

                lonely = await _create_product(client, name="E-reader", category="readers")
                alone = await client.get(f"/products/{lonely['id']}/competitive-analysis")
                assert alone.json()["status"] == "no_competition"
                assert alone.json()["analysis"] is None

    _run(body())
    _run(dispose_engines())


def test_resolved_prices_are_cached_until_pricing_changes(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            cache = ResolvedPriceCache(cast(RedisType, _MemoryRedis()), 300)
            app.state.price_cache = cache
            consumer = EventConsumer(
                [PRICE_CHANGED_TOPIC], PriceChangeHandler(cache).handle, bus=app.state.event_bus
            )
            await consumer.start()
            hits = _MetricTracker("pricing_cache_events_total", {"event": "hit"})
            invalidations = _MetricTracker("pricing_cache_events_total", {"event": "invalidate"})

            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                product = await _create_product(client)
                cash = await _create_strategy(client, product["id"], _strategy_payload("CASH_PAYMENT", -10))
                url = f"/products/{product['id']}/price"
                params = {"paymentMethod": "CASH_PAYMENT"}

                first = await client.get(url, params=params)
                second = await client.get(url, params=params)
                assert first.json()["price"] == 900
                assert second.json() == first.json()
                assert hits.delta() == 1

                health = await client.get("/health")
                assert health.json() == {"status": "ok", "priceCache": "enabled"}

                patched = await client.patch(
                    f"/strategies/{cash['id']}",
                    json={"customAdjustmentPercent": -20},
                    headers=OWNER_HEADERS,
                )
                assert patched.status_code == 200
                assert invalidations.delta() >= 1

                third = await client.get(url, params=params)
                assert third.json()["price"] == 800
                assert hits.delta() == 1

            await consumer.stop()

    _run(body())
    _run(dispose_engines())


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield
