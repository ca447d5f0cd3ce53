"""Background event handlers for pricing cache maintenance."""

from __future__ import annotations

import logging
from typing import Any

from .events import PRICE_CHANGED_TOPIC
from .price_cache import PriceCacheProtocol

_LOGGER = logging.getLogger(__name__)


def _coerce_product_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


class PriceChangeHandler:
    """Evicts cached resolutions of a product when its pricing changes."""

    def __init__(self, cache: PriceCacheProtocol) -> None:
        self._cache = cache

    async def handle(self, topic: str, payload: dict[str, Any]) -> None:
        if topic != PRICE_CHANGED_TOPIC:
            return
        product_id = _coerce_product_id(payload.get("productId"))
        if product_id is None:
            # Nothing to evict without a product reference.
            return
        evicted = await self._cache.invalidate(product_id)
        _LOGGER.debug("Evicted %d cached prices for product %s", evicted, product_id)
