"""Tests for dispute filing, auto-resolution and shop freezes."""

import pytest
from sqlalchemy import select

from shopguard.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from shopguard.models import (
    Dispute,
    DisputeStatus,
    EscrowStatus,
    OrderStatus,
    ShopStatus,
    Violation,
)
from shopguard.services import notifications
from shopguard.services.disputes import (
    RESOLUTION_FRAUD_REPORTED,
    RESOLUTION_NOT_SHIPPED,
    attempt_auto_resolve,
    check_and_freeze_shop,
    create_dispute,
    get_shop_dispute_stats,
    has_fraud_keywords,
    list_buyer_disputes,
    list_shop_disputes,
)
from shopguard.services.escrow import get_escrow_by_order_id


@pytest.fixture
def sent_emails(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    sent: list[dict] = []

    async def fake_send_email(*, to: str, subject: str, text: str) -> None:
        sent.append({"to": to, "subject": subject, "text": text})

    monkeypatch.setattr(notifications, "send_email", fake_send_email)
    return sent


def test_fraud_keywords_are_case_insensitive() -> None:
    assert has_fraud_keywords("This is a SCAM")
    assert has_fraud_keywords("Item Not As Described at all")
    assert not has_fraud_keywords("Arrived late but fine")


@pytest.mark.asyncio
async def test_unshipped_overdue_order_is_refunded(session, seed, sent_emails) -> None:
    shop = await seed.shop(age_days=60)
    order = await seed.order(shop, age_days=10)
    await seed.escrow(order)

    dispute = await create_dispute(
        session=session,
        order_id=order.id,
        buyer_id=100,
        reason="  Still waiting for my parcel  ",
    )

    assert dispute.status == DisputeStatus.REFUNDED
    assert dispute.resolution == RESOLUTION_NOT_SHIPPED
    assert dispute.resolved_at is not None
    assert dispute.reason == "Still waiting for my parcel"

    escrow = await get_escrow_by_order_id(session=session, order_id=order.id)
    assert escrow.status == EscrowStatus.REFUNDED
    await session.refresh(order)
    assert order.status == OrderStatus.REFUNDED

    assert sent_emails[0]["to"] == "buyer@example.com"
    assert sent_emails[0]["text"] == RESOLUTION_NOT_SHIPPED
    assert sent_emails[1]["to"] == "user:1"
    assert sent_emails[1]["text"] == RESOLUTION_NOT_SHIPPED


@pytest.mark.asyncio
async def test_fraud_report_on_unshipped_order_is_refunded(session, seed, sent_emails) -> None:
    shop = await seed.shop(age_days=60)
    order = await seed.order(shop, age_days=1)
    await seed.escrow(order)

    dispute = await create_dispute(
        session=session,
        order_id=order.id,
        buyer_id=100,
        reason="I think this shop is a scam",
    )

    assert dispute.status == DisputeStatus.REFUNDED
    assert dispute.resolution == RESOLUTION_FRAUD_REPORTED


@pytest.mark.asyncio
async def test_fraud_report_on_shipped_order_stays_open(session, seed, sent_emails) -> None:
    shop = await seed.shop(age_days=60)
    order = await seed.order(shop, status=OrderStatus.SHIPPED, age_days=10, shipped=True)
    await seed.escrow(order)

    dispute = await create_dispute(
        session=session,
        order_id=order.id,
        buyer_id=100,
        reason="The item I got is fake",
    )

    assert dispute.status == DisputeStatus.OPEN
    assert dispute.resolution is None
    escrow = await get_escrow_by_order_id(session=session, order_id=order.id)
    assert escrow.status == EscrowStatus.HELD
    assert sent_emails == []


@pytest.mark.asyncio
async def test_refund_before_escrow_exists_closes_outbox(session, seed, sent_emails) -> None:
    from shopguard.models import PendingEscrow
    from shopguard.services.escrow import enqueue_escrow

    shop = await seed.shop(age_days=60)
    order = await seed.order(shop, age_days=9)
    enqueue_escrow(session=session, order_id=order.id, amount=order.total_amount)

    dispute = await create_dispute(session=session, order_id=order.id, buyer_id=100, reason="Never arrived here")

    assert dispute.status == DisputeStatus.REFUNDED
    await session.refresh(order)
    assert order.status == OrderStatus.REFUNDED
    pending = (
        await session.execute(select(PendingEscrow).where(PendingEscrow.order_id == order.id))
    ).scalar_one()
    assert pending.processed_at is not None


@pytest.mark.asyncio
async def test_short_reason_is_rejected(session, seed) -> None:
    shop = await seed.shop()
    order = await seed.order(shop)

    with pytest.raises(ValidationError):
        await create_dispute(session=session, order_id=order.id, buyer_id=100, reason="  bad     ")


@pytest.mark.asyncio
async def test_dispute_for_missing_order(session) -> None:
    with pytest.raises(NotFoundError):
        await create_dispute(session=session, order_id=404, buyer_id=100, reason="Where is my order?")


@pytest.mark.asyncio
async def test_only_the_buyer_can_dispute(session, seed) -> None:
    shop = await seed.shop()
    order = await seed.order(shop, buyer_id=100)

    with pytest.raises(ForbiddenError):
        await create_dispute(session=session, order_id=order.id, buyer_id=200, reason="Where is my order?")


@pytest.mark.asyncio
async def test_cancelled_order_cannot_be_disputed(session, seed) -> None:
    shop = await seed.shop()
    order = await seed.order(shop, status=OrderStatus.CANCELLED)

    with pytest.raises(BadRequestError):
        await create_dispute(session=session, order_id=order.id, buyer_id=100, reason="Where is my order?")


@pytest.mark.asyncio
async def test_refunded_order_cannot_be_disputed_again(session, seed, sent_emails) -> None:
    """Repeat disputes on one refunded order neither refund again nor freeze the shop."""
    shop = await seed.shop(age_days=60)
    order = await seed.order(shop, age_days=1)
    await seed.escrow(order)

    first = await create_dispute(session=session, order_id=order.id, buyer_id=100, reason="this is a scam #0")
    assert first.status == DisputeStatus.REFUNDED

    for attempt in range(1, 5):
        with pytest.raises(BadRequestError):
            await create_dispute(
                session=session,
                order_id=order.id,
                buyer_id=100,
                reason=f"this is a scam #{attempt}",
            )

    refunded = (
        await session.execute(
            select(Dispute).where(Dispute.order_id == order.id, Dispute.status == DisputeStatus.REFUNDED)
        )
    ).scalars().all()
    assert len(refunded) == 1
    await session.refresh(shop)
    assert shop.status == ShopStatus.ACTIVE


@pytest.mark.asyncio
async def test_dispute_on_released_escrow_stays_open(session, seed, sent_emails) -> None:
    """A matching rule does not claim a refund once the escrow has been paid out."""
    shop = await seed.shop(age_days=60)
    order = await seed.order(shop, age_days=10)
    await seed.escrow(order, status=EscrowStatus.RELEASED)

    dispute = await create_dispute(session=session, order_id=order.id, buyer_id=100, reason="Never received the goods")

    assert dispute.status == DisputeStatus.OPEN
    assert dispute.resolution is None
    escrow = await get_escrow_by_order_id(session=session, order_id=order.id)
    assert escrow.status == EscrowStatus.RELEASED
    await session.refresh(order)
    assert order.status == OrderStatus.PAID
    assert sent_emails == []


@pytest.mark.asyncio
async def test_second_open_dispute_conflicts(session, seed) -> None:
    shop = await seed.shop(age_days=60)
    order = await seed.order(shop, status=OrderStatus.SHIPPED, shipped=True)

    first = await create_dispute(session=session, order_id=order.id, buyer_id=100, reason="Wrong colour was sent")
    assert first.status == DisputeStatus.OPEN

    with pytest.raises(ConflictError):
        await create_dispute(session=session, order_id=order.id, buyer_id=100, reason="Wrong colour was sent")


@pytest.mark.asyncio
async def test_resolved_dispute_is_returned_unchanged(session, seed, sent_emails) -> None:
    shop = await seed.shop(age_days=60)
    order = await seed.order(shop, age_days=10)
    await seed.escrow(order)
    dispute = await create_dispute(session=session, order_id=order.id, buyer_id=100, reason="Nothing arrived yet")

    again = await attempt_auto_resolve(session=session, dispute_id=dispute.id)
    assert again.status == DisputeStatus.REFUNDED
    assert len(sent_emails) == 2


@pytest.mark.asyncio
async def test_first_refund_on_six_orders_freezes_shop(session, seed, sent_emails) -> None:
    shop = await seed.shop(age_days=60, owner_id=7)
    disputed = await seed.order(shop, age_days=10)
    await seed.escrow(disputed)
    for _ in range(5):
        await seed.order(shop, status=OrderStatus.COMPLETED, shipped=True)

    await create_dispute(session=session, order_id=disputed.id, buyer_id=100, reason="Still waiting for it")

    await session.refresh(shop)
    assert shop.status == ShopStatus.FROZEN

    violation = (await session.execute(select(Violation).where(Violation.shop_id == shop.id))).scalar_one()
    assert violation.type == "high_dispute_rate"
    assert violation.action_taken == "payout_frozen"
    assert violation.details["reason"] == "High dispute rate: 16.7%"
    assert any(mail["to"] == "user:7" and "frozen" in mail["subject"] for mail in sent_emails)


@pytest.mark.asyncio
async def test_five_refunded_disputes_freeze_small_shop(session, seed, sent_emails) -> None:
    shop = await seed.shop(age_days=60)
    for _ in range(4):
        order = await seed.order(shop, status=OrderStatus.REFUNDED, age_days=10)
        session.add(
            Dispute(
                order_id=order.id,
                buyer_id=100,
                shop_id=shop.id,
                reason="Never received the goods",
                status=DisputeStatus.REFUNDED,
            )
        )
    last = await seed.order(shop, age_days=10)
    await seed.escrow(last)
    await session.flush()

    assert await check_and_freeze_shop(session=session, shop_id=shop.id) is False

    await create_dispute(session=session, order_id=last.id, buyer_id=100, reason="Never received the goods")

    await session.refresh(shop)
    assert shop.status == ShopStatus.FROZEN
    violation = (await session.execute(select(Violation).where(Violation.shop_id == shop.id))).scalar_one()
    assert violation.details["reason"] == "Too many refunded disputes: 5"


@pytest.mark.asyncio
async def test_suspended_shop_is_not_frozen(session, seed, sent_emails) -> None:
    shop = await seed.shop(age_days=60, status=ShopStatus.SUSPENDED)
    order = await seed.order(shop, age_days=10)
    await seed.escrow(order)

    await create_dispute(session=session, order_id=order.id, buyer_id=100, reason="Still waiting for it")

    await session.refresh(shop)
    assert shop.status == ShopStatus.SUSPENDED
    violations = (await session.execute(select(Violation).where(Violation.shop_id == shop.id))).scalars().all()
    assert violations == []


@pytest.mark.asyncio
async def test_dispute_listings_and_stats(session, seed, sent_emails) -> None:
    shop = await seed.shop(age_days=60, owner_id=7)
    refunded = await seed.order(shop, age_days=10)
    await seed.escrow(refunded)
    shipped = await seed.order(shop, status=OrderStatus.SHIPPED, shipped=True)
    await seed.order(shop, status=OrderStatus.COMPLETED, buyer_id=300)
    await seed.order(shop, status=OrderStatus.COMPLETED, buyer_id=300)

    await create_dispute(session=session, order_id=refunded.id, buyer_id=100, reason="Still waiting for it")
    await create_dispute(session=session, order_id=shipped.id, buyer_id=100, reason="Box arrived damaged")

    disputes, total = await list_buyer_disputes(session=session, buyer_id=100, page=1, limit=1)
    assert total == 2
    assert len(disputes) == 1

    disputes, total = await list_shop_disputes(session=session, shop_id=shop.id, owner_id=7)
    assert total == 2
    with pytest.raises(ForbiddenError):
        await list_shop_disputes(session=session, shop_id=shop.id, owner_id=8)

    stats = await get_shop_dispute_stats(session=session, shop_id=shop.id)
    assert (stats.total, stats.open, stats.refunded, stats.rejected) == (2, 1, 1, 0)
    assert stats.dispute_rate == pytest.approx(0.5)
