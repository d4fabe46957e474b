"""Tests for escrow creation, release, refund and the pending-escrow outbox."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from shopguard.errors import ConflictError, NotFoundError
from shopguard.models import EscrowStatus, EscrowTransaction, Order, OrderStatus, PendingEscrow
from shopguard.services import escrow as escrow_service
from shopguard.services.escrow import (
    close_pending_escrow,
    create_escrow,
    enqueue_escrow,
    fulfill_pending_escrow,
    get_escrow_by_order_id,
    payout_delay_days,
    process_pending_escrows,
    refund_escrow,
    release_escrow,
    to_money,
)
from shopguard.timeutil import as_utc, utcnow


@pytest.mark.parametrize(
    "score,age,delay",
    [
        (95, 3, 14),
        (85, 40, 3),
        (80, 7, 3),
        (65, 40, 7),
        (60, 40, 7),
        (40, 40, 14),
    ],
)
def test_payout_delay_table(score: int, age: int, delay: int) -> None:
    assert payout_delay_days(score, age) == delay


def test_to_money_quantizes() -> None:
    assert str(to_money(10)) == "10.00"
    assert str(to_money("19.999")) == "20.00"


@pytest.mark.asyncio
async def test_create_escrow_for_trusted_shop(session, seed) -> None:
    # 40-day-old shop without history scores 90
    shop = await seed.shop(age_days=40)
    order = await seed.order(shop, amount="120.50")

    before = utcnow()
    escrow = await create_escrow(session=session, order_id=order.id, amount=order.total_amount)

    assert escrow.status == EscrowStatus.HELD
    assert escrow.amount == to_money("120.50")
    assert escrow.shop_id == shop.id
    eligible_at = as_utc(escrow.payout_eligible_at)
    assert before + timedelta(days=3) <= eligible_at <= utcnow() + timedelta(days=3)


@pytest.mark.asyncio
async def test_create_escrow_for_new_shop_waits_longest(session, seed) -> None:
    shop = await seed.shop(age_days=3)
    order = await seed.order(shop)

    escrow = await create_escrow(session=session, order_id=order.id, amount=order.total_amount)

    assert as_utc(escrow.payout_eligible_at) > utcnow() + timedelta(days=13)


@pytest.mark.asyncio
async def test_second_escrow_for_order_conflicts(session, seed) -> None:
    shop = await seed.shop(age_days=10)
    order = await seed.order(shop)
    await create_escrow(session=session, order_id=order.id, amount=order.total_amount)

    with pytest.raises(ConflictError):
        await create_escrow(session=session, order_id=order.id, amount=order.total_amount)


@pytest.mark.asyncio
async def test_create_escrow_for_missing_order(session) -> None:
    with pytest.raises(NotFoundError):
        await create_escrow(session=session, order_id=12345, amount=10)


@pytest.mark.asyncio
async def test_release_then_refund_is_rejected(session, seed) -> None:
    shop = await seed.shop(age_days=10)
    order = await seed.order(shop)
    await seed.escrow(order)

    released = await release_escrow(session=session, order_id=order.id)
    assert released.status == EscrowStatus.RELEASED
    assert released.released_at is not None
    await session.refresh(order)
    assert order.escrow_released is True

    with pytest.raises(NotFoundError, match="already processed"):
        await refund_escrow(session=session, order_id=order.id)

    escrow = await get_escrow_by_order_id(session=session, order_id=order.id)
    assert escrow.status == EscrowStatus.RELEASED


@pytest.mark.asyncio
async def test_refund_moves_order_to_refunded(session, seed) -> None:
    shop = await seed.shop(age_days=10)
    order = await seed.order(shop)
    await seed.escrow(order)

    refunded = await refund_escrow(session=session, order_id=order.id)
    assert refunded.status == EscrowStatus.REFUNDED

    await session.refresh(order)
    assert order.status == OrderStatus.REFUNDED

    with pytest.raises(NotFoundError):
        await release_escrow(session=session, order_id=order.id)


@pytest.mark.asyncio
async def test_release_without_escrow(session, seed) -> None:
    shop = await seed.shop(age_days=10)
    order = await seed.order(shop)

    with pytest.raises(NotFoundError):
        await release_escrow(session=session, order_id=order.id)


@pytest.mark.asyncio
async def test_failed_escrow_creation_is_recorded_and_retried(
    session,
    session_factory,
    seed,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    shop = await seed.shop(age_days=10)
    order = await seed.order(shop, status=OrderStatus.PENDING)
    enqueue_escrow(session=session, order_id=order.id, amount=order.total_amount)
    await session.commit()

    async def broken_create_escrow(**kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(escrow_service, "create_escrow", broken_create_escrow)
    assert await fulfill_pending_escrow(session_factory=session_factory, order_id=order.id) is None

    async with session_factory() as check:
        pending = (
            await check.execute(select(PendingEscrow).where(PendingEscrow.order_id == order.id))
        ).scalar_one()
        assert pending.attempts == 1
        assert pending.processed_at is None
        assert "ledger unavailable" in pending.last_error
        # The order stands even though its escrow is missing
        assert await check.get(Order, order.id) is not None

    monkeypatch.undo()
    stats = await process_pending_escrows(session_factory=session_factory)
    assert (stats.scanned, stats.created, stats.closed, stats.failed) == (1, 1, 0, 0)

    async with session_factory() as check:
        escrow = (
            await check.execute(select(EscrowTransaction).where(EscrowTransaction.order_id == order.id))
        ).scalar_one()
        assert escrow.status == EscrowStatus.HELD
        pending = (
            await check.execute(select(PendingEscrow).where(PendingEscrow.order_id == order.id))
        ).scalar_one()
        assert pending.processed_at is not None
        assert pending.attempts == 2


@pytest.mark.asyncio
async def test_retry_closes_rows_of_cancelled_orders(session, session_factory, seed) -> None:
    shop = await seed.shop(age_days=10)
    order = await seed.order(shop, status=OrderStatus.CANCELLED)
    enqueue_escrow(session=session, order_id=order.id, amount=order.total_amount)
    await session.commit()

    stats = await process_pending_escrows(session_factory=session_factory)
    assert (stats.scanned, stats.created, stats.closed) == (1, 0, 1)

    async with session_factory() as check:
        escrow = (
            await check.execute(select(EscrowTransaction).where(EscrowTransaction.order_id == order.id))
        ).scalar_one_or_none()
        assert escrow is None


@pytest.mark.asyncio
async def test_close_pending_escrow_only_once(session, seed) -> None:
    shop = await seed.shop(age_days=10)
    order = await seed.order(shop)
    enqueue_escrow(session=session, order_id=order.id, amount=order.total_amount)
    await session.flush()

    assert await close_pending_escrow(session=session, order_id=order.id, note="cancelled") is True
    assert await close_pending_escrow(session=session, order_id=order.id, note="cancelled") is False
