"""Payout batching service.

process_payouts sweeps `released` escrow transactions whose payout_eligible_at
has passed and which no payout covers yet, groups them per shop and inserts one
`pending` payout per shop. Each covered transaction is linked to its payout and
listed in the payout's transaction_ids, so re-running the sweep never pays a
transaction twice.

The scheduled variant (require_active_shop=True) re-checks the shop status
right before counting each transaction; funds of frozen/suspended shops stay
released but unpaid.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shopguard.errors import NotFoundError
from shopguard.models import EscrowStatus, EscrowTransaction, Payout, PayoutStatus, Shop, ShopStatus
from shopguard.services.escrow import to_money
from shopguard.timeutil import as_utc, utcnow

logger = logging.getLogger("uvicorn.error")


@dataclass
class PayoutRunStats:
    processed: int = 0  # payouts created
    total_shops: int = 0
    total_transactions: int = 0
    skipped: int = 0  # transactions of non-active shops
    failed: int = 0  # shops whose payout could not be written
    total_amount: Decimal = Decimal("0.00")
    payout_ids: list[int] = field(default_factory=list)


@dataclass
class PayoutScheduleEntry:
    eligible_on: date
    transaction_count: int
    total_amount: Decimal


@dataclass
class Earnings:
    paid: Decimal
    pending: Decimal


class _IncompleteBatch(RuntimeError):
    pass


async def _already_paid_ids(session: AsyncSession, shop_ids: set[int]) -> set[int]:
    """Escrow ids listed in any existing payout of these shops."""
    if not shop_ids:
        return set()
    rows = (
        await session.execute(select(Payout.transaction_ids).where(Payout.shop_id.in_(shop_ids)))
    ).scalars().all()
    paid: set[int] = set()
    for ids in rows:
        paid.update(int(x) for x in ids or [])
    return paid


async def _shop_is_active(session: AsyncSession, shop_id: int) -> bool:
    status = (await session.execute(select(Shop.status).where(Shop.id == shop_id))).scalar_one_or_none()
    return status == ShopStatus.ACTIVE


async def process_payouts(
    *,
    session: AsyncSession,
    require_active_shop: bool = False,
) -> PayoutRunStats:
    """Batch eligible released escrow transactions into per-shop payouts.

    Args:
        session: DB session (caller controls commit/rollback).
        require_active_shop: Skip transactions whose shop is no longer active.

    Returns:
        Run statistics; `processed` is the number of payouts created.
    """
    stats = PayoutRunStats()
    now = utcnow()

    eligible = (
        await session.execute(
            select(EscrowTransaction)
            .where(
                EscrowTransaction.status == EscrowStatus.RELEASED,
                EscrowTransaction.payout_eligible_at <= now,
                EscrowTransaction.payout_id.is_(None),
            )
            .order_by(EscrowTransaction.shop_id.asc(), EscrowTransaction.payout_eligible_at.asc())
        )
    ).scalars().all()

    if not eligible:
        logger.info("No eligible payouts to process")
        return stats

    paid_ids = await _already_paid_ids(session, {tx.shop_id for tx in eligible})

    by_shop: dict[int, list[EscrowTransaction]] = defaultdict(list)
    for tx in eligible:
        if tx.id in paid_ids:
            continue
        if require_active_shop and not await _shop_is_active(session, tx.shop_id):
            logger.warning(f"Skipping escrow {tx.id}: shop {tx.shop_id} is not active")
            stats.skipped += 1
            continue
        by_shop[tx.shop_id].append(tx)

    for shop_id, transactions in by_shop.items():
        transaction_ids = [tx.id for tx in transactions]
        total_amount = to_money(sum((tx.amount for tx in transactions), Decimal("0")))
        try:
            async with session.begin_nested():
                payout = Payout(
                    shop_id=shop_id,
                    amount=total_amount,
                    transaction_ids=transaction_ids,
                    status=PayoutStatus.PENDING,
                    created_at=now,
                )
                session.add(payout)
                await session.flush()

                linked = await session.execute(
                    update(EscrowTransaction)
                    .where(
                        EscrowTransaction.id.in_(transaction_ids),
                        EscrowTransaction.status == EscrowStatus.RELEASED,
                        EscrowTransaction.payout_id.is_(None),
                    )
                    .values(payout_id=payout.id)
                    .execution_options(synchronize_session="fetch")
                )
                if linked.rowcount != len(transaction_ids):
                    raise _IncompleteBatch(
                        f"linked {linked.rowcount} of {len(transaction_ids)} transactions"
                    )
        except Exception:
            stats.failed += 1
            logger.exception(f"Failed to create payout for shop {shop_id}")
            continue

        stats.processed += 1
        stats.total_transactions += len(transaction_ids)
        stats.total_amount += total_amount
        stats.payout_ids.append(payout.id)
        logger.info(
            f"Payout created for shop {shop_id}: {total_amount} from {len(transaction_ids)} transactions"
        )

    stats.total_shops = stats.processed
    logger.info(
        f"Payout run complete: {stats.processed} payouts, {stats.total_transactions} transactions, "
        f"{stats.skipped} skipped, {stats.failed} failed, total amount {stats.total_amount}"
    )
    return stats


# ============================================================
# Payout queries
# ============================================================


async def list_payouts(
    *,
    session: AsyncSession,
    shop_id: int,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Payout], int]:
    total = (
        await session.execute(select(func.count(Payout.id)).where(Payout.shop_id == shop_id))
    ).scalar() or 0
    payouts = (
        await session.execute(
            select(Payout)
            .where(Payout.shop_id == shop_id)
            .order_by(Payout.created_at.desc(), Payout.id.desc())
            .limit(limit)
            .offset(offset)
        )
    ).scalars().all()
    return list(payouts), int(total)


async def list_pending_payouts(*, session: AsyncSession, shop_id: int) -> list[Payout]:
    payouts = (
        await session.execute(
            select(Payout)
            .where(Payout.shop_id == shop_id, Payout.status == PayoutStatus.PENDING)
            .order_by(Payout.created_at.desc(), Payout.id.desc())
        )
    ).scalars().all()
    return list(payouts)


async def mark_payout_processed(*, session: AsyncSession, payout_id: int) -> Payout:
    """Mark a pending payout as processed (the transfer itself is simulated).

    Raises:
        NotFoundError: If the payout does not exist or was already processed.
    """
    result = await session.execute(
        update(Payout)
        .where(Payout.id == payout_id, Payout.status == PayoutStatus.PENDING)
        .values(status=PayoutStatus.PROCESSED, processed_at=utcnow())
        .returning(Payout.id)
    )
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Payout not found or already processed", detail={"payout_id": payout_id})

    payout = (
        await session.execute(
            select(Payout).where(Payout.id == payout_id).execution_options(populate_existing=True)
        )
    ).scalar_one()
    logger.info(f"Payout {payout_id} marked as processed")
    return payout


async def get_payout_schedule(*, session: AsyncSession, shop_id: int) -> list[PayoutScheduleEntry]:
    """Released funds not yet eligible for payout, grouped by eligibility day."""
    rows = (
        await session.execute(
            select(EscrowTransaction.payout_eligible_at, EscrowTransaction.amount)
            .where(
                EscrowTransaction.shop_id == shop_id,
                EscrowTransaction.status == EscrowStatus.RELEASED,
                EscrowTransaction.payout_eligible_at > utcnow(),
            )
            .order_by(EscrowTransaction.payout_eligible_at.asc())
        )
    ).all()

    grouped: dict[date, list[Decimal]] = defaultdict(list)
    for eligible_at, amount in rows:
        grouped[as_utc(eligible_at).date()].append(amount)

    return [
        PayoutScheduleEntry(
            eligible_on=day,
            transaction_count=len(amounts),
            total_amount=to_money(sum(amounts, Decimal("0"))),
        )
        for day, amounts in sorted(grouped.items())
    ]


async def get_total_earnings(*, session: AsyncSession, shop_id: int) -> Earnings:
    rows = (
        await session.execute(
            select(Payout.status, func.coalesce(func.sum(Payout.amount), 0))
            .where(Payout.shop_id == shop_id)
            .group_by(Payout.status)
        )
    ).all()
    totals = {status: to_money(amount) for status, amount in rows}
    return Earnings(
        paid=totals.get(PayoutStatus.PROCESSED, to_money(0)),
        pending=totals.get(PayoutStatus.PENDING, to_money(0)),
    )
