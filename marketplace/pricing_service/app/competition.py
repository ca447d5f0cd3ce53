"""Advisory comparison of a product's primary price against its peers."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from .schemas import CompetitiveAnalysisResponse, Competitor, MarketAnalysis, PricingRecommendation

TOP_COMPETITORS = 5
_CONFIDENT_PEER_COUNT = 10
_CENT = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class CompetitionOptions:
    similar_products_count: int = 10
    price_band_percent: float = 50.0
    same_brand: bool = False


@dataclass(frozen=True, slots=True)
class PeerPrice:
    product_id: int
    name: str
    brand: str | None
    price: int
    total_views: int = 0
    total_likes: int = 0


def price_band(main_price: int, band_percent: float) -> tuple[int, int]:
    """Inclusive price window of ``band_percent`` around ``main_price``."""

    spread = Decimal(main_price) * Decimal(str(band_percent)) / Decimal(100)
    low = (Decimal(main_price) - spread).to_integral_value(rounding=ROUND_HALF_UP)
    high = (Decimal(main_price) + spread).to_integral_value(rounding=ROUND_HALF_UP)
    return max(int(low), 0), int(high)


def market_coverage(main_price: int, peer_prices: Sequence[int]) -> str:
    cheaper = sum(1 for price in peer_prices if price < main_price)
    share = cheaper * 100 / len(peer_prices)
    if share < 20:
        return "premium"
    if share < 50:
        return "mid_high"
    if share < 80:
        return "mid_low"
    return "budget"


def analyze_market(main_price: int, peers: Sequence[PeerPrice]) -> MarketAnalysis | None:
    prices = [peer.price for peer in peers if peer.price > 0]
    if not prices:
        return None
    average = Decimal(sum(prices)) / Decimal(len(prices))
    lowest, highest = min(prices), max(prices)
    difference = ((Decimal(main_price) - average) / average * Decimal(100)).quantize(_CENT, rounding=ROUND_HALF_UP)

    position = "competitive"
    if main_price < lowest * Decimal("0.9"):
        position = "low"
    elif main_price > highest * Decimal("1.1"):
        position = "high"

    return MarketAnalysis(
        main_price=main_price,
        average_price=average.quantize(_CENT, rounding=ROUND_HALF_UP),
        min_price=lowest,
        max_price=highest,
        price_difference_percent=difference,
        position=position,
        market_coverage=market_coverage(main_price, prices),
        confidence=min(1.0, len(prices) / _CONFIDENT_PEER_COUNT),
        competitor_count=len(prices),
    )


def recommend(analysis: MarketAnalysis) -> list[PricingRecommendation]:
    recommendations: list[PricingRecommendation] = []
    if analysis.position == "high" and analysis.price_difference_percent > 10:
        target = int((analysis.average_price * Decimal("1.05")).to_integral_value(rounding=ROUND_HALF_UP))
        recommendations.append(
            PricingRecommendation(
                type="price_reduction",
                confidence=analysis.confidence,
                suggested_price=target,
                reason=f"lower the price to about {target:,} to compete with similar products",
                expected_impact="higher sales and competitiveness",
            )
        )
    elif analysis.position == "low" and analysis.price_difference_percent < -15:
        target = int((analysis.average_price * Decimal("0.95")).to_integral_value(rounding=ROUND_HALF_UP))
        recommendations.append(
            PricingRecommendation(
                type="price_increase",
                confidence=analysis.confidence,
                suggested_price=target,
                reason=f"raise the price to about {target:,} to improve margin",
                expected_impact="more profit without hurting sales",
            )
        )
    if analysis.market_coverage == "premium":
        recommendations.append(
            PricingRecommendation(
                type="value_communication",
                confidence=0.8,
                reason="emphasise quality and benefits in product marketing",
                expected_impact="justifies the higher price to customers",
            )
        )
    return recommendations


def competitor_score(peer: PeerPrice) -> float:
    score = 0.0
    if peer.price:
        score += 30
    if peer.total_views:
        score += math.log(peer.total_views + 1) * 10
    if peer.total_likes:
        score += peer.total_likes * 2
    return round(score, 2)


def top_competitors(peers: Sequence[PeerPrice], count: int = TOP_COMPETITORS) -> list[Competitor]:
    ranked = sorted(peers, key=lambda peer: (-competitor_score(peer), peer.product_id))
    return [
        Competitor(
            product_id=peer.product_id,
            name=peer.name,
            brand=peer.brand,
            price=peer.price,
            score=competitor_score(peer),
        )
        for peer in ranked[:count]
    ]


def build_report(product_id: int, main_price: int | None, peers: Sequence[PeerPrice]) -> CompetitiveAnalysisResponse:
    """Assemble the analysis; a missing main price or peer set degrades to ``no_competition``."""

    analysis = analyze_market(main_price, peers) if main_price else None
    if analysis is None:
        return CompetitiveAnalysisResponse(product_id=product_id, status="no_competition")
    return CompetitiveAnalysisResponse(
        product_id=product_id,
        status="ok",
        analysis=analysis,
        recommendations=recommend(analysis),
        top_competitors=top_competitors(peers),
    )
