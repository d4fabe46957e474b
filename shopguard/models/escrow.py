"""Escrow models.

EscrowTransaction holds an order's funds until release or refund. Transitions
are held -> released or held -> refunded, both terminal.

PendingEscrow is the outbox row written together with the order; it records
that an escrow is still owed when creating it after checkout fails.
"""

from datetime import datetime
from decimal import Decimal
import enum

from sqlalchemy import DateTime, ForeignKey, Numeric, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shopguard.stores.postgres import Base, str_enum
from shopguard.timeutil import utcnow


class EscrowStatus(str, enum.Enum):
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class EscrowTransaction(Base):
    """Per-order holding account."""

    __tablename__ = "escrow_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), unique=True, index=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id"), index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    status: Mapped[EscrowStatus] = mapped_column(
        str_enum(EscrowStatus),
        default=EscrowStatus.HELD,
        index=True,
    )

    payout_eligible_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Set once the transaction is swept into a payout
    payout_id: Mapped[int | None] = mapped_column(ForeignKey("payouts.id"), index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<EscrowTransaction order={self.order_id} {self.status.value} {self.amount}>"


class PendingEscrow(Base):
    """Outbox entry for an escrow that still has to be created."""

    __tablename__ = "pending_escrows"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), unique=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    attempts: Mapped[int] = mapped_column(default=0)
    last_error: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
