"""Trust score calculation service.

Trust Score (0-100) is a composite metric starting from a base of 50:
- Shop age (up to +30, one point per day)
- Completed order volume (up to +30, half a point per order)
- Dispute rate penalty (-20 above 5%, -40 above 10%)
- Refund rate penalty (-15 above the configured threshold)
- Fulfillment speed (+10 under 48h, -10 over a week)
- Average review rating (+10 per star)

The score is always derived fresh from orders/disputes/reviews and written to
`trust_scores` (one row per shop).
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shopguard.errors import NotFoundError
from shopguard.models import Dispute, Order, OrderStatus, Review, Shop, TrustScoreRecord
from shopguard.models.order import FULFILLED_ORDER_STATUSES
from shopguard.settings import get_settings
from shopguard.timeutil import age_in_days, hours_between, utcnow

logger = logging.getLogger("uvicorn.error")

BASE_SCORE = 50

# Caps
_MAX_AGE_POINTS = 30
_MAX_VOLUME_POINTS = 30
_POINTS_PER_COMPLETED_ORDER = 0.5
_POINTS_PER_RATING_STAR = 10

# Dispute rate bands (rate -> penalty), checked highest first
_DISPUTE_RATE_HIGH = 0.10
_DISPUTE_RATE_ELEVATED = 0.05

# Fulfillment speed (hours)
_FAST_FULFILLMENT_HOURS = 48
_SLOW_FULFILLMENT_HOURS = 168

# Score adjustments
_ADJUSTMENTS = {
    "high_dispute_rate": -40,
    "elevated_dispute_rate": -20,
    "high_refund_rate": -15,
    "fast_fulfillment": +10,
    "slow_fulfillment": -10,
}


@dataclass
class TrustMetrics:
    """Aggregated shop history feeding the trust score."""

    shop_age_days: int = 0
    total_orders: int = 0
    completed_orders: int = 0
    dispute_count: int = 0
    refund_count: int = 0
    avg_fulfillment_hours: float = 0.0
    avg_rating: float = 0.0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_from_metrics(
    metrics: TrustMetrics,
    *,
    refund_rate_threshold: float | None = None,
) -> tuple[int, list[str]]:
    """Calculate trust score and return compact reason codes.

    Reason codes are stable strings intended for persistence / explainability.
    """
    if refund_rate_threshold is None:
        refund_rate_threshold = get_settings().refund_rate_threshold

    score: float = BASE_SCORE
    reasons: list[str] = []

    age_points = min(max(metrics.shop_age_days, 0), _MAX_AGE_POINTS)
    if age_points:
        score += age_points
        reasons.append("AGE_CREDIT")

    volume_points = min(max(metrics.completed_orders, 0) * _POINTS_PER_COMPLETED_ORDER, _MAX_VOLUME_POINTS)
    if volume_points:
        score += volume_points
        reasons.append("VOLUME_CREDIT")

    if metrics.total_orders > 0:
        dispute_rate = metrics.dispute_count / metrics.total_orders
        if dispute_rate > _DISPUTE_RATE_HIGH:
            score += _ADJUSTMENTS["high_dispute_rate"]
            reasons.append("HIGH_DISPUTE_RATE")
        elif dispute_rate > _DISPUTE_RATE_ELEVATED:
            score += _ADJUSTMENTS["elevated_dispute_rate"]
            reasons.append("ELEVATED_DISPUTE_RATE")

        refund_rate = metrics.refund_count / metrics.total_orders
        if refund_rate > refund_rate_threshold:
            score += _ADJUSTMENTS["high_refund_rate"]
            reasons.append("HIGH_REFUND_RATE")

    if metrics.avg_fulfillment_hours < _FAST_FULFILLMENT_HOURS:
        score += _ADJUSTMENTS["fast_fulfillment"]
        reasons.append("FAST_FULFILLMENT")
    elif metrics.avg_fulfillment_hours > _SLOW_FULFILLMENT_HOURS:
        score += _ADJUSTMENTS["slow_fulfillment"]
        reasons.append("SLOW_FULFILLMENT")

    if metrics.avg_rating > 0:
        score += metrics.avg_rating * _POINTS_PER_RATING_STAR
        reasons.append("RATING_BONUS")

    # Clamp to 0-100
    clamped = max(0.0, min(100.0, score))
    if clamped != score:
        reasons.append("CLAMPED")
    return _round_half_up(clamped), reasons


async def get_trust_metrics(*, session: AsyncSession, shop: Shop) -> TrustMetrics:
    """Aggregate order, dispute, refund and rating history for a shop."""
    fulfilled_rows = (
        await session.execute(
            select(Order.status, Order.created_at, Order.updated_at).where(
                Order.shop_id == shop.id,
                Order.status.in_(FULFILLED_ORDER_STATUSES),
            )
        )
    ).all()

    total_orders = len(fulfilled_rows)
    completed_orders = sum(1 for row in fulfilled_rows if row.status == OrderStatus.COMPLETED)
    avg_fulfillment_hours = 0.0
    if fulfilled_rows:
        avg_fulfillment_hours = sum(
            hours_between(row.created_at, row.updated_at) for row in fulfilled_rows
        ) / total_orders

    dispute_count = (
        await session.execute(select(func.count(Dispute.id)).where(Dispute.shop_id == shop.id))
    ).scalar() or 0

    refund_count = (
        await session.execute(
            select(func.count(Order.id)).where(
                Order.shop_id == shop.id,
                Order.status == OrderStatus.REFUNDED,
            )
        )
    ).scalar() or 0

    avg_rating = (
        await session.execute(select(func.avg(Review.rating)).where(Review.shop_id == shop.id))
    ).scalar()

    return TrustMetrics(
        shop_age_days=age_in_days(shop.created_at),
        total_orders=total_orders,
        completed_orders=completed_orders,
        dispute_count=int(dispute_count),
        refund_count=int(refund_count),
        avg_fulfillment_hours=float(avg_fulfillment_hours),
        avg_rating=float(avg_rating or 0.0),
    )


async def _get_shop(session: AsyncSession, shop_id: int) -> Shop:
    shop = await session.get(Shop, shop_id)
    if shop is None:
        raise NotFoundError("Shop not found", detail={"shop_id": shop_id})
    return shop


async def calculate_trust_score(*, session: AsyncSession, shop_id: int) -> int:
    """Recompute a shop's trust score and upsert the cached record.

    Args:
        session: DB session (caller controls commit/rollback).
        shop_id: Shop to score.

    Returns:
        Trust score (0-100).

    Raises:
        NotFoundError: If the shop does not exist.
    """
    shop = await _get_shop(session, shop_id)
    metrics = await get_trust_metrics(session=session, shop=shop)
    score, reasons = score_from_metrics(metrics)

    record = (
        await session.execute(select(TrustScoreRecord).where(TrustScoreRecord.shop_id == shop_id))
    ).scalar_one_or_none()
    if record is None:
        record = TrustScoreRecord(shop_id=shop_id, score=score)
        session.add(record)

    record.score = score
    record.total_orders = metrics.total_orders
    record.completed_orders = metrics.completed_orders
    record.dispute_count = metrics.dispute_count
    record.refund_count = metrics.refund_count
    record.avg_fulfillment_hours = metrics.avg_fulfillment_hours
    record.avg_rating = metrics.avg_rating
    record.last_calculated_at = utcnow()
    await session.flush()

    logger.info(f"Trust score for shop {shop_id}: {score} ({','.join(reasons) or 'BASE'})")
    return score


# ============================================================
# Public trust levels
# ============================================================

TRUST_LEVEL_TRUSTED = "trusted"
TRUST_LEVEL_ESTABLISHED = "established"
TRUST_LEVEL_NEW = "new"
TRUST_LEVEL_CAUTION = "caution"

_LEVEL_INDICATORS: dict[str, list[str]] = {
    TRUST_LEVEL_TRUSTED: ["High trust score", "Established seller", "Fast shipping"],
    TRUST_LEVEL_ESTABLISHED: ["Good track record", "Regular seller"],
    TRUST_LEVEL_NEW: ["New seller", "Building reputation"],
    TRUST_LEVEL_CAUTION: ["New to platform", "Exercise caution"],
}

_LEVEL_DESCRIPTIONS: dict[str, str] = {
    TRUST_LEVEL_TRUSTED: "This shop has an excellent track record with fast shipping and minimal disputes.",
    TRUST_LEVEL_ESTABLISHED: "This shop has been operating successfully and has a good reputation.",
    TRUST_LEVEL_NEW: "This is a newer shop building their reputation. Payouts may have longer delays.",
    TRUST_LEVEL_CAUTION: "This shop is very new or has limited activity. Exercise caution with large orders.",
}


def trust_level(score: int) -> str:
    """Map a trust score to its public level."""
    if score >= 80:
        return TRUST_LEVEL_TRUSTED
    if score >= 60:
        return TRUST_LEVEL_ESTABLISHED
    if score >= 40:
        return TRUST_LEVEL_NEW
    return TRUST_LEVEL_CAUTION


def seller_tier(shop_age_days: int) -> str:
    """Age-based tier shown next to the score: new, growing, established or veteran."""
    settings = get_settings()
    if shop_age_days < settings.new_seller_days:
        return "new"
    if shop_age_days < settings.established_seller_days:
        return "growing"
    if shop_age_days < settings.trusted_seller_days:
        return "established"
    return "veteran"


def public_indicators(score: int) -> list[str]:
    return list(_LEVEL_INDICATORS[trust_level(score)])


def badge_description(level: str) -> str:
    return _LEVEL_DESCRIPTIONS.get(level, "Trust level unknown.")


@dataclass
class ShopTrustSummary:
    shop_id: int
    trust_score: int
    trust_level: str
    seller_tier: str
    payout_delay_days: int
    indicators: list[str]


async def get_shop_trust_summary(*, session: AsyncSession, shop_id: int) -> ShopTrustSummary:
    """Fresh score plus what buyers are shown about a shop.

    Raises:
        NotFoundError: If the shop does not exist.
    """
    # escrow imports this module for scoring
    from shopguard.services.escrow import payout_delay_days

    shop = await _get_shop(session, shop_id)
    score = await calculate_trust_score(session=session, shop_id=shop_id)
    age = age_in_days(shop.created_at)
    return ShopTrustSummary(
        shop_id=shop_id,
        trust_score=score,
        trust_level=trust_level(score),
        seller_tier=seller_tier(age),
        payout_delay_days=payout_delay_days(score, age),
        indicators=public_indicators(score),
    )
