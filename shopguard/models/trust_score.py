"""Trust score cache.

One row per shop, always overwritten from a fresh computation (upsert).
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from shopguard.stores.postgres import Base
from shopguard.timeutil import utcnow


class TrustScoreRecord(Base):
    """Last computed trust score and the metrics it was derived from."""

    __tablename__ = "trust_scores"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id"), unique=True, index=True)

    score: Mapped[int] = mapped_column()  # 0-100

    # Metrics snapshot
    total_orders: Mapped[int] = mapped_column(default=0)
    completed_orders: Mapped[int] = mapped_column(default=0)
    dispute_count: Mapped[int] = mapped_column(default=0)
    refund_count: Mapped[int] = mapped_column(default=0)
    avg_fulfillment_hours: Mapped[float] = mapped_column(default=0.0)
    avg_rating: Mapped[float] = mapped_column(default=0.0)

    last_calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<TrustScoreRecord shop={self.shop_id} score={self.score}>"
