"""Violation audit log (append-only)."""

from datetime import datetime
import enum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from shopguard.stores.postgres import Base, str_enum
from shopguard.timeutil import utcnow


class ViolationSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Violation(Base):
    """Policy violation recorded against a shop."""

    __tablename__ = "violations"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id"), index=True)

    type: Mapped[str] = mapped_column(String(50), index=True)  # contact_sharing, high_dispute_rate, ...
    severity: Mapped[ViolationSeverity] = mapped_column(str_enum(ViolationSeverity))
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    action_taken: Mapped[str] = mapped_column(String(50))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Violation {self.type} shop={self.shop_id} ({self.severity.value})>"
