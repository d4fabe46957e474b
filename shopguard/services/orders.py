"""Order placement and seller status updates.

Checkout writes the order, its items, the inventory decrements and the escrow
outbox row in one transaction. The escrow itself is created after commit and
may fail independently (see escrow.fulfill_pending_escrow).
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopguard.errors import BadRequestError, ForbiddenError, NotFoundError
from shopguard.models import (
    EscrowStatus,
    EscrowTransaction,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductStatus,
    Shop,
    ShopStatus,
)
from shopguard.models.order import TERMINAL_ORDER_STATUSES
from shopguard.services.escrow import (
    close_pending_escrow,
    enqueue_escrow,
    fulfill_pending_escrow,
    refund_escrow,
    release_escrow,
    to_money,
)
from shopguard.stores.postgres import session_scope
from shopguard.timeutil import utcnow

logger = logging.getLogger("uvicorn.error")

# Statuses a seller may set directly; disputed/refunded belong to the dispute flow
SELLER_SETTABLE_STATUSES = frozenset(
    {OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
)

# Seller-driven moves only go forward; anything not listed is rejected
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.DISPUTED: frozenset({OrderStatus.SHIPPED, OrderStatus.COMPLETED}),
}


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int


def _merge_lines(items: list[OrderLine]) -> OrderedDict[int, int]:
    merged: OrderedDict[int, int] = OrderedDict()
    for item in items:
        if item.quantity <= 0:
            raise BadRequestError(
                "Quantity must be at least 1",
                detail={"product_id": item.product_id, "quantity": item.quantity},
            )
        merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    return merged


async def create_order(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    shop_id: int,
    buyer_email: str,
    items: list[OrderLine],
    buyer_id: int | None = None,
    buyer_phone: str | None = None,
) -> Order:
    """Place an order and open its escrow.

    Args:
        session_factory: Used for the checkout transaction and the escrow step.
        shop_id: Shop all items must belong to.
        buyer_email: Contact for notifications (also for guests).
        items: Products and quantities.
        buyer_id: Buyer account; None for guest checkout.
        buyer_phone: Optional SMS contact.

    Returns:
        The committed order (escrow creation failures do not affect it).

    Raises:
        NotFoundError: Unknown shop.
        BadRequestError: Empty cart, unknown/inactive products, products of
            another shop, bad quantities, insufficient inventory, inactive shop.
    """
    if not items:
        raise BadRequestError("Order must contain at least one item")
    lines = _merge_lines(items)

    async with session_scope(session_factory) as session:
        shop = await session.get(Shop, shop_id)
        if shop is None:
            raise NotFoundError("Shop not found", detail={"shop_id": shop_id})
        if shop.status != ShopStatus.ACTIVE:
            raise BadRequestError("This shop is not accepting orders", detail={"shop_id": shop_id})

        products = (
            await session.execute(
                select(Product).where(
                    Product.id.in_(list(lines)),
                    Product.status == ProductStatus.ACTIVE,
                )
            )
        ).scalars().all()
        by_id = {p.id: p for p in products}
        missing = [pid for pid in lines if pid not in by_id]
        if missing:
            raise BadRequestError(
                "One or more products not found or inactive",
                detail={"product_ids": missing},
            )
        if any(p.shop_id != shop_id for p in products):
            raise BadRequestError("All products must belong to the same shop")

        total = Decimal("0")
        order_items: list[OrderItem] = []
        for product_id, quantity in lines.items():
            product = by_id[product_id]
            if product.inventory_count < quantity:
                raise BadRequestError(
                    f"Insufficient inventory for {product.name}",
                    detail={"product_id": product_id, "available": product.inventory_count},
                )
            total += product.price * quantity
            order_items.append(
                OrderItem(
                    product_id=product_id,
                    product_name=product.name,
                    quantity=quantity,
                    price_at_purchase=product.price,
                )
            )

        now = utcnow()
        order = Order(
            shop_id=shop_id,
            buyer_id=buyer_id,
            buyer_email=buyer_email,
            buyer_phone=buyer_phone,
            total_amount=to_money(total),
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
            items=order_items,
        )
        session.add(order)
        await session.flush()

        for product_id, quantity in lines.items():
            result = await session.execute(
                update(Product)
                .where(Product.id == product_id, Product.inventory_count >= quantity)
                .values(inventory_count=Product.inventory_count - quantity)
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount == 0:
                raise BadRequestError(
                    f"Insufficient inventory for {by_id[product_id].name}",
                    detail={"product_id": product_id},
                )

        enqueue_escrow(session=session, order_id=order.id, amount=order.total_amount)
        order_id = order.id

    logger.info(f"Order created: {order_id} for shop {shop_id}, total: {order.total_amount}")

    await fulfill_pending_escrow(session_factory=session_factory, order_id=order_id)

    async with session_scope(session_factory) as session:
        return await get_order(session=session, order_id=order_id)


async def get_order(*, session: AsyncSession, order_id: int) -> Order:
    order = await session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found", detail={"order_id": order_id})
    return order


async def update_order_status(
    *,
    session: AsyncSession,
    order_id: int,
    shop_id: int,
    status: OrderStatus,
) -> Order:
    """Seller-driven status change.

    shipped stamps shipped_at; completed stamps completed_at and releases the
    escrow; cancelled refunds a held escrow and drops a pending one.

    Raises:
        NotFoundError: Order missing.
        ForbiddenError: Order belongs to another shop.
        BadRequestError: Status not settable by sellers, or transition not allowed.
    """
    order = await get_order(session=session, order_id=order_id)
    if order.shop_id != shop_id:
        raise ForbiddenError("You do not own this order", detail={"order_id": order_id})

    if status not in SELLER_SETTABLE_STATUSES:
        raise BadRequestError(
            f"Sellers cannot set order status to {status.value}",
            detail={"status": status.value},
        )
    if order.status in TERMINAL_ORDER_STATUSES or order.status == OrderStatus.COMPLETED:
        raise BadRequestError(
            f"Order is already {order.status.value}",
            detail={"order_id": order_id, "status": order.status.value},
        )
    if status not in ALLOWED_TRANSITIONS.get(order.status, frozenset()):
        raise BadRequestError(
            f"Cannot move order from {order.status.value} to {status.value}",
            detail={"order_id": order_id, "from": order.status.value, "to": status.value},
        )

    now = utcnow()
    if status == OrderStatus.COMPLETED and order.shipped_at is None:
        raise BadRequestError("Order must be shipped before it can be completed", detail={"order_id": order_id})

    if status == OrderStatus.SHIPPED and order.shipped_at is None:
        order.shipped_at = now
    if status == OrderStatus.COMPLETED:
        order.completed_at = now

    if status == OrderStatus.CANCELLED:
        await _cancel_escrow(session, order_id)

    order.status = status
    order.updated_at = now
    await session.flush()
    logger.info(f"Order {order_id} status updated to {status.value}")

    if status == OrderStatus.COMPLETED:
        try:
            await release_escrow(session=session, order_id=order_id)
        except NotFoundError:
            logger.warning(f"Order {order_id} completed without a held escrow; nothing released")
        await session.refresh(order)

    return order


async def _cancel_escrow(session: AsyncSession, order_id: int) -> None:
    escrow_status = (
        await session.execute(select(EscrowTransaction.status).where(EscrowTransaction.order_id == order_id))
    ).scalar_one_or_none()
    if escrow_status == EscrowStatus.HELD:
        await refund_escrow(session=session, order_id=order_id)
    elif escrow_status is None:
        await close_pending_escrow(session=session, order_id=order_id, note="Order cancelled")
