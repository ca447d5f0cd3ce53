"""Prometheus metrics for the pricing service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram


PRICING_STRATEGY_MUTATIONS_TOTAL: Final = Counter(
    "pricing_strategy_mutations_total",
    "Number of committed pricing strategy mutations.",
    labelnames=("operation",),
)

PRICING_MUTATION_CONFLICTS_TOTAL: Final = Counter(
    "pricing_mutation_conflicts_total",
    "Number of pricing mutations rejected by optimistic concurrency.",
)

PRICING_VALIDATION_FAILURES_TOTAL: Final = Counter(
    "pricing_validation_failures_total",
    "Number of strategy writes rejected by validation.",
    labelnames=("code",),
)

PRICING_RESOLUTIONS_TOTAL: Final = Counter(
    "pricing_resolutions_total",
    "Number of price resolutions by selection outcome.",
    labelnames=("selection",),
)

PRICING_RESOLVE_SECONDS: Final = Histogram(
    "pricing_resolve_seconds",
    "Latency to resolve a product price.",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5),
)

PRICING_PRIMARY_PROMOTIONS_TOTAL: Final = Counter(
    "pricing_primary_promotions_total",
    "Number of automatic primary strategy promotions.",
)

PRICING_CACHE_EVENTS_TOTAL: Final = Counter(
    "pricing_cache_events_total",
    "Count of resolved price cache interactions.",
    labelnames=("event",),
)


def normalise_operation(value: str | None) -> str:
    if not value:
        return "unknown"
    return value.strip().lower() or "unknown"
