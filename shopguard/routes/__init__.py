"""API routes."""

from fastapi import APIRouter

from shopguard.routes import admin, disputes, orders, payments, products, trust
from shopguard.schemas import ErrorResponse

# Domain errors share one body shape
_ERROR_RESPONSES = {
    status_code: {"model": ErrorResponse} for status_code in (400, 403, 404, 409)
}

api_router = APIRouter(responses=_ERROR_RESPONSES)

# Public trust indicators
api_router.include_router(trust.router, prefix="/v1/trust", tags=["trust"])

# Listings and checkout
api_router.include_router(products.router, prefix="/v1/products", tags=["products"])
api_router.include_router(orders.router, prefix="/v1/orders", tags=["orders"])

# Escrow and payouts
api_router.include_router(payments.router, prefix="/v1/payments", tags=["payments"])

# Disputes
api_router.include_router(disputes.router, prefix="/v1/disputes", tags=["disputes"])

# Admin endpoints (payout sweep, escrow retry)
api_router.include_router(admin.router, prefix="/v1/admin", tags=["admin"])
