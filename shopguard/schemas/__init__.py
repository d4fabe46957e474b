"""Pydantic schemas for API request/response validation."""

from shopguard.schemas.common import ErrorBody, ErrorResponse
from shopguard.schemas.disputes import DisputeCreate, DisputeOut, DisputePage, DisputeStatsOut
from shopguard.schemas.orders import (
    OrderCreate,
    OrderItemOut,
    OrderLineIn,
    OrderOut,
    OrderStatusUpdate,
    ProductCreate,
    ProductOut,
)
from shopguard.schemas.payments import (
    EarningsOut,
    EscrowOut,
    EscrowRetryResponse,
    Pagination,
    PayoutOut,
    PayoutPage,
    PayoutRunResponse,
    PayoutScheduleItem,
)
from shopguard.schemas.trust import TrustBadge, TrustSummary

__all__ = [
    "DisputeCreate",
    "DisputeOut",
    "DisputePage",
    "DisputeStatsOut",
    "EarningsOut",
    "ErrorBody",
    "ErrorResponse",
    "EscrowOut",
    "EscrowRetryResponse",
    "OrderCreate",
    "OrderItemOut",
    "OrderLineIn",
    "OrderOut",
    "OrderStatusUpdate",
    "Pagination",
    "PayoutOut",
    "PayoutPage",
    "PayoutRunResponse",
    "PayoutScheduleItem",
    "ProductCreate",
    "ProductOut",
    "TrustBadge",
    "TrustSummary",
]
