"""Redis cache for resolved prices, keyed per product and condition set."""

from __future__ import annotations

import json
import logging
from contextlib import suppress
from typing import Any, Protocol

from marketplace.common.cache import RedisType, cache_key

from .metrics import PRICING_CACHE_EVENTS_TOTAL

_LOGGER = logging.getLogger(__name__)
_NAMESPACE = "pricing:resolved"


class PriceCacheProtocol(Protocol):
    async def get(self, product_id: int, token: str) -> dict[str, Any] | None: ...

    async def store(self, product_id: int, token: str, payload: dict[str, Any]) -> None: ...

    async def invalidate(self, product_id: int) -> int: ...


class ResolvedPriceCache:
    """Caches serialized resolution responses.

    Every key written for a product is recorded in a per-product index set so
    an invalidation can evict all condition variants without key scans.
    Redis failures are counted and treated as misses.
    """

    def __init__(self, redis: RedisType | None, ttl_seconds: int) -> None:
        self._redis = redis
        self._ttl = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self._redis is not None and self._ttl > 0

    async def get(self, product_id: int, token: str) -> dict[str, Any] | None:
        if not self.enabled:
            return None
        key = self._entry_key(product_id, token)
        try:
            cached = await self._redis.get(key)
        except Exception:
            _LOGGER.warning("Price cache read failed for product %s", product_id, exc_info=True)
            PRICING_CACHE_EVENTS_TOTAL.labels(event="error").inc()
            PRICING_CACHE_EVENTS_TOTAL.labels(event="miss").inc()
            return None
        if not cached:
            PRICING_CACHE_EVENTS_TOTAL.labels(event="miss").inc()
            return None
        try:
            data = json.loads(cached)
        except json.JSONDecodeError:
            with suppress(Exception):
                await self._redis.delete(key)
            PRICING_CACHE_EVENTS_TOTAL.labels(event="miss").inc()
            return None
        PRICING_CACHE_EVENTS_TOTAL.labels(event="hit").inc()
        return data

    async def store(self, product_id: int, token: str, payload: dict[str, Any]) -> None:
        if not self.enabled:
            return
        key = self._entry_key(product_id, token)
        try:
            await self._redis.set(key, json.dumps(payload, default=str), ex=self._ttl)
            await self._redis.sadd(self._index_key(product_id), key)
            await self._redis.expire(self._index_key(product_id), self._ttl)
        except Exception:
            _LOGGER.warning("Price cache write failed for product %s", product_id, exc_info=True)
            PRICING_CACHE_EVENTS_TOTAL.labels(event="error").inc()
            return
        PRICING_CACHE_EVENTS_TOTAL.labels(event="write").inc()

    async def invalidate(self, product_id: int) -> int:
        """Evict every cached resolution of ``product_id``; return the number of entries."""

        if not self.enabled:
            return 0
        index_key = self._index_key(product_id)
        try:
            keys = list(await self._redis.smembers(index_key))
            await self._redis.delete(index_key, *keys)
        except Exception:
            _LOGGER.warning("Price cache invalidation failed for product %s", product_id, exc_info=True)
            PRICING_CACHE_EVENTS_TOTAL.labels(event="error").inc()
            return 0
        PRICING_CACHE_EVENTS_TOTAL.labels(event="invalidate").inc()
        return len(keys)

    @staticmethod
    def _entry_key(product_id: int, token: str) -> str:
        return cache_key(_NAMESPACE, product_id, token)

    @staticmethod
    def _index_key(product_id: int) -> str:
        return cache_key(_NAMESPACE, product_id, "index")
