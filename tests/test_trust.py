"""Tests for trust scoring, levels and seller tiers."""

import pytest
from sqlalchemy import func, select

from shopguard.errors import NotFoundError
from shopguard.models import Dispute, DisputeStatus, OrderStatus, TrustScoreRecord
from shopguard.services.trust import (
    TrustMetrics,
    badge_description,
    calculate_trust_score,
    public_indicators,
    score_from_metrics,
    seller_tier,
    trust_level,
)


def test_fresh_shop_scores_base_plus_fast_fulfillment() -> None:
    score, reasons = score_from_metrics(TrustMetrics(), refund_rate_threshold=0.1)
    assert score == 60
    assert reasons == ["FAST_FULFILLMENT"]


def test_score_clamps_at_100() -> None:
    score, reasons = score_from_metrics(
        TrustMetrics(shop_age_days=400, total_orders=200, completed_orders=200, avg_rating=5.0),
        refund_rate_threshold=0.1,
    )
    assert score == 100
    assert "CLAMPED" in reasons
    assert "AGE_CREDIT" in reasons
    assert "VOLUME_CREDIT" in reasons
    assert "RATING_BONUS" in reasons


def test_score_clamps_at_zero() -> None:
    score, reasons = score_from_metrics(
        TrustMetrics(
            total_orders=10,
            dispute_count=5,
            refund_count=5,
            avg_fulfillment_hours=200,
        ),
        refund_rate_threshold=0.1,
    )
    assert score == 0
    assert reasons == ["HIGH_DISPUTE_RATE", "HIGH_REFUND_RATE", "SLOW_FULFILLMENT", "CLAMPED"]


def test_elevated_dispute_band() -> None:
    # 6% disputes: above 5%, not above 10%
    score, reasons = score_from_metrics(
        TrustMetrics(total_orders=100, dispute_count=6, avg_fulfillment_hours=100),
        refund_rate_threshold=0.1,
    )
    assert "ELEVATED_DISPUTE_RATE" in reasons
    assert "HIGH_DISPUTE_RATE" not in reasons
    assert score == 30


def test_half_points_round_half_up() -> None:
    score, _ = score_from_metrics(
        TrustMetrics(total_orders=1, completed_orders=1),
        refund_rate_threshold=0.1,
    )
    assert score == 61


@pytest.mark.parametrize(
    "score,level",
    [(100, "trusted"), (80, "trusted"), (79, "established"), (60, "established"), (40, "new"), (39, "caution")],
)
def test_trust_levels(score: int, level: str) -> None:
    assert trust_level(score) == level
    assert public_indicators(score)
    assert badge_description(level) != "Trust level unknown."


@pytest.mark.parametrize(
    "age,tier",
    [(0, "new"), (6, "new"), (7, "growing"), (29, "growing"), (30, "established"), (90, "veteran")],
)
def test_seller_tiers(age: int, tier: str) -> None:
    assert seller_tier(age) == tier


@pytest.mark.asyncio
async def test_calculate_trust_score_from_history(session, seed) -> None:
    shop = await seed.shop(age_days=10)
    for _ in range(4):
        await seed.order(shop, status=OrderStatus.COMPLETED, fulfillment_hours=24, shipped=True)
    refunded = await seed.order(shop, status=OrderStatus.REFUNDED, fulfillment_hours=24)
    session.add(
        Dispute(
            order_id=refunded.id,
            buyer_id=100,
            shop_id=shop.id,
            reason="Item never received at all",
            status=DisputeStatus.REFUNDED,
        )
    )
    await seed.review(shop, 4)
    await seed.review(shop, 5)

    # 50 + 10 age + 2 volume - 40 disputes - 15 refunds + 10 fast + 45 rating
    score = await calculate_trust_score(session=session, shop_id=shop.id)
    assert score == 62

    record = (
        await session.execute(select(TrustScoreRecord).where(TrustScoreRecord.shop_id == shop.id))
    ).scalar_one()
    assert record.score == 62
    assert record.total_orders == 5
    assert record.completed_orders == 4
    assert record.dispute_count == 1
    assert record.refund_count == 1
    assert record.avg_rating == pytest.approx(4.5)


@pytest.mark.asyncio
async def test_pending_and_cancelled_orders_are_not_counted(session, seed) -> None:
    shop = await seed.shop(age_days=0)
    await seed.order(shop, status=OrderStatus.PENDING, fulfillment_hours=500)
    await seed.order(shop, status=OrderStatus.CANCELLED, fulfillment_hours=500)

    score = await calculate_trust_score(session=session, shop_id=shop.id)
    assert score == 60


@pytest.mark.asyncio
async def test_recalculation_keeps_one_record_per_shop(session, seed) -> None:
    shop = await seed.shop(age_days=5)

    first = await calculate_trust_score(session=session, shop_id=shop.id)
    second = await calculate_trust_score(session=session, shop_id=shop.id)

    assert first == second == 65
    count = (
        await session.execute(select(func.count(TrustScoreRecord.id)).where(TrustScoreRecord.shop_id == shop.id))
    ).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_unknown_shop_raises_not_found(session) -> None:
    with pytest.raises(NotFoundError):
        await calculate_trust_score(session=session, shop_id=999)
