"""Event publishing helpers for the pricing service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from marketplace.common.events import EventProducer

PRICE_CHANGED_TOPIC = "pricing.product.price_changed.v1"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PricingEventPublisher:
    """Announces committed pricing changes so caches keyed by product can evict."""

    def __init__(self, producer: EventProducer | None) -> None:
        self._producer = producer

    async def _emit(self, topic: str, payload: dict[str, Any]) -> None:
        if self._producer is None:
            return
        envelope = {
            "eventType": topic,
            "occurredAt": _now_iso(),
            **payload,
        }
        await self._producer.send(topic, envelope)

    async def price_changed(self, product_id: int, *, operation: str) -> None:
        await self._emit(
            PRICE_CHANGED_TOPIC,
            {
                "productId": product_id,
                "operation": operation,
            },
        )
