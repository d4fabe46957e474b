"""Product model."""

from datetime import datetime
from decimal import Decimal
import enum

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shopguard.stores.postgres import Base, str_enum
from shopguard.timeutil import utcnow


class ProductStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Product(Base):
    """A listing in a shop's catalog."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id"), index=True)

    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text, default="")
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    category: Mapped[str] = mapped_column(String(100), index=True)
    inventory_count: Mapped[int] = mapped_column(default=0)

    status: Mapped[ProductStatus] = mapped_column(
        str_enum(ProductStatus),
        default=ProductStatus.ACTIVE,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.name!r}>"
