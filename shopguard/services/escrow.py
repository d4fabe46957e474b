"""Escrow ledger.

Lifecycle per order:
1. create_escrow: `held`, with payout_eligible_at sized by trust score and shop age
2. release_escrow (order completed) or refund_escrow (dispute / cancellation)
3. Released funds are later swept into payouts (see payouts.py)

Release and refund are conditional updates on `status = 'held'`; whichever runs
first wins and the other observes zero rows and raises NotFoundError.

Checkout writes a PendingEscrow outbox row together with the order and creates
the escrow after commit. A failure there is logged on the outbox row and
retried by process_pending_escrows; the order itself always stands.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopguard.errors import ConflictError, NotFoundError
from shopguard.models import EscrowStatus, EscrowTransaction, Order, OrderStatus, PendingEscrow, Shop
from shopguard.services.trust import calculate_trust_score
from shopguard.settings import get_settings
from shopguard.stores.postgres import session_scope
from shopguard.timeutil import age_in_days, utcnow

logger = logging.getLogger("uvicorn.error")

TRUSTED_SCORE = 80
ESTABLISHED_SCORE = 60

_CENTS = Decimal("0.01")


def to_money(amount: Decimal | float | int | str) -> Decimal:
    """Normalize an amount to a two-decimal Decimal."""
    return Decimal(str(amount)).quantize(_CENTS)


def payout_delay_days(trust_score: int, shop_age_days: int) -> int:
    """Days between escrow creation and payout eligibility.

    New shops always wait the longest, regardless of trust score.
    """
    settings = get_settings()
    if shop_age_days < settings.new_seller_days:
        return settings.payout_delay_new_seller_days
    if trust_score >= TRUSTED_SCORE:
        return settings.payout_delay_trusted_days
    if trust_score >= ESTABLISHED_SCORE:
        return settings.payout_delay_established_days
    return settings.payout_delay_new_seller_days


async def create_escrow(
    *,
    session: AsyncSession,
    order_id: int,
    amount: Decimal | float,
) -> EscrowTransaction:
    """Open a held escrow transaction for an order.

    Args:
        session: DB session (caller controls commit/rollback).
        order_id: Order being paid for.
        amount: Amount to hold.

    Raises:
        NotFoundError: If the order or its shop cannot be resolved.
        ConflictError: If the order already has an escrow transaction.
    """
    row = (
        await session.execute(
            select(Order, Shop).join(Shop, Order.shop_id == Shop.id).where(Order.id == order_id)
        )
    ).first()
    if row is None:
        raise NotFoundError("Order not found", detail={"order_id": order_id})
    order, shop = row

    existing = (
        await session.execute(select(EscrowTransaction.id).where(EscrowTransaction.order_id == order_id))
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(
            "Escrow transaction already exists for this order",
            detail={"order_id": order_id, "escrow_id": existing},
        )

    trust_score = await calculate_trust_score(session=session, shop_id=shop.id)
    delay = payout_delay_days(trust_score, age_in_days(shop.created_at))
    now = utcnow()

    escrow = EscrowTransaction(
        order_id=order.id,
        shop_id=shop.id,
        amount=to_money(amount),
        status=EscrowStatus.HELD,
        payout_eligible_at=now + timedelta(days=delay),
        created_at=now,
    )
    session.add(escrow)
    await session.flush()

    logger.info(
        f"Escrow created for order {order_id}: {escrow.amount}, "
        f"eligible at {escrow.payout_eligible_at.isoformat()} (trust={trust_score}, delay={delay}d)"
    )
    return escrow


async def _transition_held(
    session: AsyncSession,
    order_id: int,
    new_status: EscrowStatus,
) -> EscrowTransaction:
    result = await session.execute(
        update(EscrowTransaction)
        .where(
            EscrowTransaction.order_id == order_id,
            EscrowTransaction.status == EscrowStatus.HELD,
        )
        .values(status=new_status, released_at=utcnow())
        .returning(EscrowTransaction.id)
    )
    escrow_id = result.scalar_one_or_none()
    if escrow_id is None:
        raise NotFoundError(
            "Escrow transaction not found or already processed",
            detail={"order_id": order_id},
        )
    return (
        await session.execute(
            select(EscrowTransaction)
            .where(EscrowTransaction.id == escrow_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()


async def release_escrow(*, session: AsyncSession, order_id: int) -> EscrowTransaction:
    """Move a held escrow to `released` and flag the order.

    Raises:
        NotFoundError: If no held escrow exists (never created or already processed).
    """
    escrow = await _transition_held(session, order_id, EscrowStatus.RELEASED)
    await session.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(escrow_released=True)
        .execution_options(synchronize_session="fetch")
    )
    logger.info(f"Escrow released for order {order_id}")
    return escrow


async def refund_escrow(*, session: AsyncSession, order_id: int) -> EscrowTransaction:
    """Move a held escrow to `refunded` and force the order to `refunded`.

    Raises:
        NotFoundError: If no held escrow exists (never created or already processed).
    """
    escrow = await _transition_held(session, order_id, EscrowStatus.REFUNDED)
    await session.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(status=OrderStatus.REFUNDED, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    logger.info(f"Escrow refunded for order {order_id}")
    return escrow


async def get_escrow_by_order_id(*, session: AsyncSession, order_id: int) -> EscrowTransaction:
    escrow = (
        await session.execute(select(EscrowTransaction).where(EscrowTransaction.order_id == order_id))
    ).scalar_one_or_none()
    if escrow is None:
        raise NotFoundError("Escrow transaction not found", detail={"order_id": order_id})
    return escrow


# ============================================================
# Pending escrow outbox
# ============================================================


@dataclass
class EscrowRetryStats:
    scanned: int = 0
    created: int = 0
    closed: int = 0
    failed: int = 0


def enqueue_escrow(*, session: AsyncSession, order_id: int, amount: Decimal) -> PendingEscrow:
    """Add the outbox row for an order (same transaction as the order insert)."""
    pending = PendingEscrow(order_id=order_id, amount=to_money(amount), created_at=utcnow())
    session.add(pending)
    return pending


async def close_pending_escrow(*, session: AsyncSession, order_id: int, note: str) -> bool:
    """Mark an order's outbox row processed without creating an escrow."""
    result = await session.execute(
        update(PendingEscrow)
        .where(PendingEscrow.order_id == order_id, PendingEscrow.processed_at.is_(None))
        .values(processed_at=utcnow(), last_error=note)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount > 0


async def fulfill_pending_escrow(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    order_id: int,
) -> EscrowTransaction | None:
    """Create the escrow owed by an outbox row in its own transaction.

    Failures are logged and recorded on the outbox row; they never propagate,
    since the order has already been committed.

    Returns:
        The escrow, or None if creation failed or nothing was pending.
    """
    try:
        async with session_scope(session_factory) as session:
            pending = (
                await session.execute(
                    select(PendingEscrow).where(
                        PendingEscrow.order_id == order_id,
                        PendingEscrow.processed_at.is_(None),
                    )
                )
            ).scalar_one_or_none()
            if pending is None:
                return None
            escrow = await create_escrow(session=session, order_id=order_id, amount=pending.amount)
            pending.attempts += 1
            pending.processed_at = utcnow()
            pending.last_error = None
            return escrow
    except Exception as e:
        logger.exception(f"Failed to create escrow for order {order_id}")
        await _record_escrow_failure(session_factory, order_id, e)
        return None


async def _record_escrow_failure(
    session_factory: async_sessionmaker[AsyncSession],
    order_id: int,
    error: Exception,
) -> None:
    try:
        async with session_scope(session_factory) as session:
            pending = (
                await session.execute(select(PendingEscrow).where(PendingEscrow.order_id == order_id))
            ).scalar_one_or_none()
            if pending is not None:
                pending.attempts += 1
                pending.last_error = f"{type(error).__name__}: {error}"[:1000]
    except Exception:
        logger.exception(f"Failed to record escrow failure for order {order_id}")


async def process_pending_escrows(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    limit: int = 100,
) -> EscrowRetryStats:
    """Retry escrow creation for outstanding outbox rows.

    Rows whose order is already terminal (refunded/cancelled) are closed
    instead of creating an escrow.
    """
    stats = EscrowRetryStats()
    async with session_scope(session_factory) as session:
        rows = (
            await session.execute(
                select(PendingEscrow.order_id, Order.status)
                .join(Order, PendingEscrow.order_id == Order.id)
                .where(PendingEscrow.processed_at.is_(None))
                .order_by(PendingEscrow.created_at.asc())
                .limit(limit)
            )
        ).all()

    for order_id, order_status in rows:
        stats.scanned += 1
        if order_status in (OrderStatus.REFUNDED, OrderStatus.CANCELLED):
            async with session_scope(session_factory) as session:
                await close_pending_escrow(
                    session=session,
                    order_id=order_id,
                    note=f"Order {order_status.value} before escrow was created",
                )
            stats.closed += 1
            continue

        escrow = await fulfill_pending_escrow(session_factory=session_factory, order_id=order_id)
        if escrow is None:
            stats.failed += 1
        else:
            stats.created += 1

    logger.info(
        f"Pending escrow retry: scanned={stats.scanned} created={stats.created} "
        f"closed={stats.closed} failed={stats.failed}"
    )
    return stats
