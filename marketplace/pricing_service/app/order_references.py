"""Lookups into order history deciding between hard delete and soft disable."""

from __future__ import annotations

import json
import logging
from typing import Protocol

import httpx

_LOGGER = logging.getLogger(__name__)


class OrderReferenceLookup(Protocol):
    async def is_referenced(self, strategy_id: int) -> bool:
        ...


class NoOrderReferences:
    """Lookup used when no order service is configured: nothing is referenced."""

    async def is_referenced(self, strategy_id: int) -> bool:  # noqa: ARG002
        return False


class HttpOrderReferenceLookup:
    """Asks the order service whether any order line was priced by a strategy.

    An unreachable or malformed answer counts as referenced, so the strategy is
    deactivated rather than deleted.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def close(self) -> None:
        await self._client.aclose()

    async def is_referenced(self, strategy_id: int) -> bool:
        url = f"{self._base_url}/orders/pricing-strategies/{strategy_id}/references"
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, json.JSONDecodeError):
            _LOGGER.warning("Order reference lookup failed for strategy %s", strategy_id, exc_info=True)
            return True
        if isinstance(payload, dict):
            if "referenced" in payload:
                return bool(payload["referenced"])
            if "total" in payload:
                try:
                    return int(payload["total"] or 0) > 0
                except (TypeError, ValueError):
                    _LOGGER.warning("Order reference total for strategy %s is not a number", strategy_id)
                    return True
        return True
