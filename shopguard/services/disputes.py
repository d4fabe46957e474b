"""Dispute resolution service.

CRITICAL: there is no manual review step. Disputes are evaluated by ordered
rules right after they are filed; the first matching rule wins:

1. Order not shipped within `expected_shipment_days` -> refund
2. Fraud keywords in the reason and order never shipped -> refund

A refund also runs the shop freeze check. Disputes matching no rule, or
whose order can no longer be refunded, stay `open` with no further automatic
transition.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shopguard.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from shopguard.models import (
    Dispute,
    DisputeStatus,
    EscrowStatus,
    EscrowTransaction,
    Order,
    OrderStatus,
    Shop,
    ShopStatus,
    ViolationSeverity,
)
from shopguard.services import notifications
from shopguard.services.escrow import close_pending_escrow, refund_escrow
from shopguard.services.restrictions import VIOLATION_HIGH_DISPUTE_RATE, append_violation
from shopguard.settings import get_settings
from shopguard.timeutil import age_in_days, utcnow

logger = logging.getLogger("uvicorn.error")

MIN_REASON_LENGTH = 10

FRAUD_KEYWORDS = ("never received", "fake", "scam", "counterfeit", "not as described")

RESOLUTION_NOT_SHIPPED = (
    "Auto-resolved: Order was not shipped within the expected timeframe. Refund issued."
)
RESOLUTION_FRAUD_REPORTED = (
    "Auto-resolved: Order was not shipped and buyer reported issues. Refund issued."
)


@dataclass
class DisputeStats:
    total: int = 0
    open: int = 0
    refunded: int = 0
    rejected: int = 0
    dispute_rate: float = 0.0


def has_fraud_keywords(reason: str) -> bool:
    reason_lower = reason.lower()
    return any(keyword in reason_lower for keyword in FRAUD_KEYWORDS)


async def create_dispute(
    *,
    session: AsyncSession,
    order_id: int,
    buyer_id: int,
    reason: str,
) -> Dispute:
    """File a dispute and run auto-resolution before returning.

    Args:
        session: DB session (caller controls commit/rollback).
        order_id: Disputed order.
        buyer_id: Acting buyer; must own the order.
        reason: Free text, at least 10 characters after trimming.

    Returns:
        The dispute after auto-resolution (refunded, or still open).

    Raises:
        ValidationError: Reason too short.
        NotFoundError: Order missing.
        ForbiddenError: Buyer does not own the order.
        BadRequestError: Order cancelled or already refunded.
        ConflictError: An open dispute already exists for the order.
    """
    reason = (reason or "").strip()
    if len(reason) < MIN_REASON_LENGTH:
        raise ValidationError(
            f"Please provide a detailed reason (at least {MIN_REASON_LENGTH} characters)",
            detail={"min_length": MIN_REASON_LENGTH},
        )

    order = await session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found", detail={"order_id": order_id})

    if order.buyer_id != buyer_id:
        raise ForbiddenError("You can only dispute your own orders", detail={"order_id": order_id})

    if order.status == OrderStatus.CANCELLED:
        raise BadRequestError("Cannot dispute a cancelled order", detail={"order_id": order_id})
    if order.status == OrderStatus.REFUNDED:
        raise BadRequestError("This order has already been refunded", detail={"order_id": order_id})

    existing = (
        await session.execute(
            select(Dispute.id).where(
                Dispute.order_id == order_id,
                Dispute.status == DisputeStatus.OPEN,
            )
        )
    ).first()
    if existing is not None:
        raise ConflictError(
            "There is already an open dispute for this order",
            detail={"order_id": order_id, "dispute_id": existing.id},
        )

    dispute = Dispute(
        order_id=order_id,
        buyer_id=buyer_id,
        shop_id=order.shop_id,
        reason=reason,
        status=DisputeStatus.OPEN,
        created_at=utcnow(),
    )
    session.add(dispute)
    await session.flush()
    logger.info(f"Dispute {dispute.id} created for order {order_id} by user {buyer_id}")

    return await attempt_auto_resolve(session=session, dispute_id=dispute.id)


async def attempt_auto_resolve(*, session: AsyncSession, dispute_id: int) -> Dispute:
    """Evaluate auto-resolution rules for an open dispute.

    Terminal disputes are returned unchanged.

    Raises:
        NotFoundError: If the dispute does not exist.
    """
    dispute = await session.get(Dispute, dispute_id)
    if dispute is None:
        raise NotFoundError("Dispute not found", detail={"dispute_id": dispute_id})
    if dispute.status != DisputeStatus.OPEN:
        return dispute

    order = await session.get(Order, dispute.order_id)
    if order is None:
        raise NotFoundError("Order not found", detail={"order_id": dispute.order_id})

    settings = get_settings()
    never_shipped = order.shipped_at is None
    order_age_days = age_in_days(order.created_at)

    resolution: str | None = None
    if never_shipped and order_age_days > settings.expected_shipment_days:
        resolution = RESOLUTION_NOT_SHIPPED
    elif never_shipped and has_fraud_keywords(dispute.reason):
        resolution = RESOLUTION_FRAUD_REPORTED

    if resolution is None:
        logger.info(f"Dispute {dispute_id} requires further evaluation - keeping open")
        return dispute

    if not await _refund_order(session, order):
        logger.warning(f"Dispute {dispute_id}: order {order.id} cannot be refunded - keeping open")
        return dispute

    await resolve_dispute(
        session=session,
        dispute_id=dispute_id,
        status=DisputeStatus.REFUNDED,
        resolution=resolution,
    )
    await check_and_freeze_shop(session=session, shop_id=dispute.shop_id)

    owner_id = (await session.execute(select(Shop.owner_id).where(Shop.id == dispute.shop_id))).scalar_one()
    await notifications.notify_dispute_refunded(
        buyer_email=order.buyer_email,
        buyer_phone=order.buyer_phone,
        owner_id=owner_id,
        order_id=order.id,
        resolution=resolution,
    )

    await session.refresh(dispute)
    return dispute


async def resolve_dispute(
    *,
    session: AsyncSession,
    dispute_id: int,
    status: DisputeStatus,
    resolution: str,
) -> None:
    """Set status, resolution and resolved_at unconditionally."""
    await session.execute(
        update(Dispute)
        .where(Dispute.id == dispute_id)
        .values(status=status, resolution=resolution, resolved_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    logger.info(f"Dispute {dispute_id} resolved with status: {status.value}")


async def _refund_order(session: AsyncSession, order: Order) -> bool:
    """Refund the order through its escrow, or directly while the escrow is still owed.

    Returns False when the money already moved (escrow released or refunded).
    """
    if order.status == OrderStatus.REFUNDED:
        return False

    escrow = (
        await session.execute(select(EscrowTransaction).where(EscrowTransaction.order_id == order.id))
    ).scalar_one_or_none()

    if escrow is not None and escrow.status == EscrowStatus.HELD:
        await refund_escrow(session=session, order_id=order.id)
    elif escrow is None:
        # Escrow still owed by the outbox: refund the order and cancel the pending escrow
        order.status = OrderStatus.REFUNDED
        order.updated_at = utcnow()
        await close_pending_escrow(
            session=session,
            order_id=order.id,
            note="Order refunded by dispute before escrow was created",
        )
        logger.info(f"Order {order.id} refunded without escrow")
    else:
        logger.warning(f"Escrow for order {order.id} already {escrow.status.value}; nothing to refund")
        return False

    await session.refresh(order)
    return True


async def check_and_freeze_shop(*, session: AsyncSession, shop_id: int) -> bool:
    """Freeze a shop whose refunded-dispute rate or count is too high.

    Returns:
        True if the shop was frozen by this call.
    """
    settings = get_settings()

    refunded_disputes = (
        await session.execute(
            select(func.count(Dispute.id)).where(
                Dispute.shop_id == shop_id,
                Dispute.status == DisputeStatus.REFUNDED,
            )
        )
    ).scalar() or 0
    total_orders = (
        await session.execute(
            select(func.count(Order.id)).where(
                Order.shop_id == shop_id,
                Order.status != OrderStatus.CANCELLED,
            )
        )
    ).scalar() or 0

    reason: str | None = None
    # Rate only once the shop has some history
    if total_orders > 5:
        dispute_rate = refunded_disputes / total_orders
        if dispute_rate > settings.high_dispute_rate_threshold:
            reason = f"High dispute rate: {dispute_rate * 100:.1f}%"
    if reason is None and refunded_disputes >= settings.max_refunded_disputes_before_freeze:
        reason = f"Too many refunded disputes: {refunded_disputes}"

    if reason is None:
        return False

    return await freeze_shop(
        session=session,
        shop_id=shop_id,
        reason=reason,
        details={"refunded_disputes": int(refunded_disputes), "total_orders": int(total_orders)},
    )


async def freeze_shop(
    *,
    session: AsyncSession,
    shop_id: int,
    reason: str,
    details: dict | None = None,
) -> bool:
    """Freeze an active shop and log a high_dispute_rate violation.

    Frozen or suspended shops are left as they are.
    """
    result = await session.execute(
        update(Shop)
        .where(Shop.id == shop_id, Shop.status == ShopStatus.ACTIVE)
        .values(status=ShopStatus.FROZEN, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        return False

    await append_violation(
        session=session,
        shop_id=shop_id,
        violation_type=VIOLATION_HIGH_DISPUTE_RATE,
        severity=ViolationSeverity.MEDIUM,
        details={"reason": reason, **(details or {})},
    )
    logger.warning(f"Shop {shop_id} frozen: {reason}")

    owner_id = (await session.execute(select(Shop.owner_id).where(Shop.id == shop_id))).scalar_one()
    await notifications.notify_shop_frozen(shop_id=shop_id, owner_id=owner_id, reason=reason)
    return True


# ============================================================
# Listings and stats
# ============================================================


async def list_buyer_disputes(
    *,
    session: AsyncSession,
    buyer_id: int,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Dispute], int]:
    """Disputes filed by a buyer, newest first, with the total count."""
    offset = (max(page, 1) - 1) * limit
    total = (
        await session.execute(select(func.count(Dispute.id)).where(Dispute.buyer_id == buyer_id))
    ).scalar() or 0
    disputes = (
        await session.execute(
            select(Dispute)
            .where(Dispute.buyer_id == buyer_id)
            .order_by(Dispute.created_at.desc(), Dispute.id.desc())
            .limit(limit)
            .offset(offset)
        )
    ).scalars().all()
    return list(disputes), int(total)


async def list_shop_disputes(
    *,
    session: AsyncSession,
    shop_id: int,
    owner_id: int,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Dispute], int]:
    """Disputes against a shop; only its owner may list them."""
    shop = await session.get(Shop, shop_id)
    if shop is None or shop.owner_id != owner_id:
        raise ForbiddenError("Not authorized to view this shop's disputes", detail={"shop_id": shop_id})

    offset = (max(page, 1) - 1) * limit
    total = (
        await session.execute(select(func.count(Dispute.id)).where(Dispute.shop_id == shop_id))
    ).scalar() or 0
    disputes = (
        await session.execute(
            select(Dispute)
            .where(Dispute.shop_id == shop_id)
            .order_by(Dispute.created_at.desc(), Dispute.id.desc())
            .limit(limit)
            .offset(offset)
        )
    ).scalars().all()
    return list(disputes), int(total)


async def get_shop_dispute_stats(*, session: AsyncSession, shop_id: int) -> DisputeStats:
    rows = (
        await session.execute(
            select(Dispute.status, func.count(Dispute.id))
            .where(Dispute.shop_id == shop_id)
            .group_by(Dispute.status)
        )
    ).all()
    by_status = {status: int(count) for status, count in rows}

    order_count = (
        await session.execute(
            select(func.count(Order.id)).where(
                Order.shop_id == shop_id,
                Order.status != OrderStatus.CANCELLED,
            )
        )
    ).scalar() or 0

    total = sum(by_status.values())
    return DisputeStats(
        total=total,
        open=by_status.get(DisputeStatus.OPEN, 0),
        refunded=by_status.get(DisputeStatus.REFUNDED, 0),
        rejected=by_status.get(DisputeStatus.REJECTED, 0),
        dispute_rate=(total / order_count) if order_count else 0.0,
    )
