"""Shop model.

A shop is owned by one seller account. Its status is only ever moved away from
`active` by the policy engine (freeze on dispute rate, suspend on repeated
violations) and is never restored automatically.
"""

from datetime import datetime
import enum

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from shopguard.stores.postgres import Base, str_enum
from shopguard.timeutil import utcnow


class ShopStatus(str, enum.Enum):
    """Shop lifecycle status."""

    ACTIVE = "active"
    FROZEN = "frozen"  # High dispute rate; payouts blocked
    SUSPENDED = "suspended"  # Repeated or severe violations


class Shop(Base):
    """Seller storefront."""

    __tablename__ = "shops"

    id: Mapped[int] = mapped_column(primary_key=True)

    owner_id: Mapped[int] = mapped_column(index=True)
    name: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(200), unique=True, index=True)

    status: Mapped[ShopStatus] = mapped_column(
        str_enum(ShopStatus),
        default=ShopStatus.ACTIVE,
        index=True,
    )

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
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Shop {self.slug} ({self.status.value})>"
