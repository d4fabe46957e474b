"""Schemas for escrow and payout endpoints (/v1/payments, /v1/admin)."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from shopguard.models import EscrowStatus, PayoutStatus


class EscrowOut(BaseModel):
    """Escrow transaction for an order."""

    id: int
    order_id: int = Field(alias="orderId")
    shop_id: int = Field(alias="shopId")
    amount: Decimal
    status: EscrowStatus
    payout_eligible_at: datetime = Field(alias="payoutEligibleAt")
    released_at: datetime | None = Field(alias="releasedAt", default=None)
    payout_id: int | None = Field(alias="payoutId", default=None)

    model_config = {"populate_by_name": True, "from_attributes": True}


class PayoutOut(BaseModel):
    id: int
    shop_id: int = Field(alias="shopId")
    amount: Decimal
    transaction_ids: list[int] = Field(alias="transactionIds")
    status: PayoutStatus
    processed_at: datetime | None = Field(alias="processedAt", default=None)
    created_at: datetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True, "from_attributes": True}


class Pagination(BaseModel):
    total: int = Field(ge=0)
    limit: int
    offset: int


class PayoutPage(BaseModel):
    data: list[PayoutOut]
    pagination: Pagination


class PayoutScheduleItem(BaseModel):
    eligible_on: date = Field(alias="eligibleOn")
    transaction_count: int = Field(alias="transactionCount")
    total_amount: Decimal = Field(alias="totalAmount")

    model_config = {"populate_by_name": True, "from_attributes": True}


class EarningsOut(BaseModel):
    paid: Decimal
    pending: Decimal


class PayoutRunResponse(BaseModel):
    """Result of a payout sweep."""

    processed: int
    total_shops: int = Field(alias="totalShops")
    total_transactions: int = Field(alias="totalTransactions")
    skipped: int = 0
    failed: int = 0
    total_amount: Decimal = Field(alias="totalAmount")

    model_config = {"populate_by_name": True, "from_attributes": True}


class EscrowRetryResponse(BaseModel):
    scanned: int
    created: int
    closed: int
    failed: int

    model_config = {"from_attributes": True}
