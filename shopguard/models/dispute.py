"""Dispute model.

open -> auto_resolved | refunded | rejected (terminal). At most one open
dispute per order.
"""

from datetime import datetime
import enum

from sqlalchemy import DateTime, ForeignKey, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shopguard.stores.postgres import Base, str_enum
from shopguard.timeutil import utcnow


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    AUTO_RESOLVED = "auto_resolved"
    REFUNDED = "refunded"
    REJECTED = "rejected"


class Dispute(Base):
    """Buyer complaint about an order."""

    __tablename__ = "disputes"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)
    buyer_id: Mapped[int] = mapped_column(index=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id"), index=True)  # denormalized

    reason: Mapped[str] = mapped_column(Text)
    status: Mapped[DisputeStatus] = mapped_column(
        str_enum(DisputeStatus),
        default=DisputeStatus.OPEN,
        index=True,
    )
    resolution: Mapped[str | None] = mapped_column(Text)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Dispute {self.id} order={self.order_id} {self.status.value}>"
