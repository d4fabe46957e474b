"""Order and order item models.

Happy path: pending -> (paid) -> shipped -> completed. Before completion an
order can be diverted to disputed/refunded; cancelled and refunded are terminal.
"""

from datetime import datetime
from decimal import Decimal
import enum

from sqlalchemy import DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopguard.stores.postgres import Base, str_enum
from shopguard.timeutil import utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})

# Orders that progressed past `pending`; used for fulfillment metrics
FULFILLED_ORDER_STATUSES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.SHIPPED, OrderStatus.DISPUTED, OrderStatus.REFUNDED}
)


class Order(Base):
    """Buyer order against a single shop."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id"), index=True)

    # Guest checkout leaves buyer_id empty
    buyer_id: Mapped[int | None] = mapped_column(index=True)
    buyer_email: Mapped[str] = mapped_column(String(320))
    buyer_phone: Mapped[str | None] = mapped_column(String(32))

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    status: Mapped[OrderStatus] = mapped_column(
        str_enum(OrderStatus),
        default=OrderStatus.PENDING,
        index=True,
    )
    escrow_released: Mapped[bool] = mapped_column(default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Order {self.id} shop={self.shop_id} {self.status.value}>"


class OrderItem(Base):
    """Line item, priced at the moment of purchase."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"))
    product_name: Mapped[str] = mapped_column(String(200))
    quantity: Mapped[int] = mapped_column()
    price_at_purchase: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    order: Mapped[Order] = relationship(back_populates="items")
