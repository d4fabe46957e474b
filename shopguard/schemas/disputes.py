"""Schemas for dispute endpoints (/v1/disputes)."""

from datetime import datetime

from pydantic import BaseModel, Field

from shopguard.models import DisputeStatus


class DisputeCreate(BaseModel):
    """Buyer request to open a dispute."""

    order_id: int = Field(alias="orderId")
    buyer_id: int = Field(alias="buyerId")
    reason: str = Field(max_length=5000)

    model_config = {"populate_by_name": True}


class DisputeOut(BaseModel):
    id: int
    order_id: int = Field(alias="orderId")
    buyer_id: int = Field(alias="buyerId")
    shop_id: int = Field(alias="shopId")
    reason: str
    status: DisputeStatus
    resolution: str | None = None
    resolved_at: datetime | None = Field(alias="resolvedAt", default=None)
    created_at: datetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True, "from_attributes": True}


class DisputePage(BaseModel):
    disputes: list[DisputeOut]
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1)


class DisputeStatsOut(BaseModel):
    total: int
    open: int
    refunded: int
    rejected: int
    dispute_rate: float = Field(alias="disputeRate")

    model_config = {"populate_by_name": True, "from_attributes": True}
