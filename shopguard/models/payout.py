"""Payout model.

A payout batches released escrow transactions of one shop. `transaction_ids`
lists every covered escrow id; an escrow id appears in at most one payout.
"""

from datetime import datetime
from decimal import Decimal
import enum

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column

from shopguard.stores.postgres import Base, str_enum
from shopguard.timeutil import utcnow


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSED = "processed"


class Payout(Base):
    """Batched transfer of released escrow funds to a shop."""

    __tablename__ = "payouts"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id"), index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    transaction_ids: Mapped[list[int]] = mapped_column(JSON, default=list)

    status: Mapped[PayoutStatus] = mapped_column(
        str_enum(PayoutStatus),
        default=PayoutStatus.PENDING,
        index=True,
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Payout {self.id} shop={self.shop_id} {self.amount} ({self.status.value})>"
