"""Notification collaborator (email/SMS).

Delivery is simulated: messages are written to the log. The notify_* helpers
are fire-and-forget; a delivery failure is logged and never reaches the
money-moving code that triggered it.
"""

import logging

logger = logging.getLogger("uvicorn.error")


async def send_email(*, to: str, subject: str, text: str) -> None:
    """Send an email (log-only delivery)."""
    logger.info(f"[EMAIL] to={to} subject={subject!r} body={text!r}")


async def send_sms(*, to: str, message: str) -> None:
    """Send an SMS (log-only delivery)."""
    logger.info(f"[SMS] to={to} message={message!r}")


async def notify_dispute_refunded(
    *,
    buyer_email: str,
    buyer_phone: str | None,
    owner_id: int,
    order_id: int,
    resolution: str,
) -> None:
    try:
        await send_email(
            to=buyer_email,
            subject=f"Your dispute for order #{order_id} was resolved",
            text=resolution,
        )
        if buyer_phone:
            await send_sms(to=buyer_phone, message=f"Order #{order_id}: refund issued.")
    except Exception:
        logger.exception(f"Dispute notification for order {order_id} failed")

    try:
        await send_email(
            to=f"user:{owner_id}",
            subject=f"Order #{order_id} was refunded after a dispute",
            text=resolution,
        )
    except Exception:
        logger.exception(f"Seller dispute notification for order {order_id} failed")


async def notify_shop_frozen(*, shop_id: int, owner_id: int, reason: str) -> None:
    # Owner contact details live with the account service; address by user id
    try:
        await send_email(
            to=f"user:{owner_id}",
            subject="Your shop has been frozen",
            text=f"Payouts are on hold. Reason: {reason}",
        )
    except Exception:
        logger.exception(f"Freeze notification for shop {shop_id} failed")
