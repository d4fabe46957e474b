"""Escrow and payout read endpoints.

GET /v1/payments/escrow/{orderId}
GET /v1/payments/shops/{shopId}/payouts?limit=&offset=
GET /v1/payments/shops/{shopId}/payouts/schedule
GET /v1/payments/shops/{shopId}/earnings
"""

from fastapi import APIRouter, Path, Query

from shopguard.schemas import EarningsOut, EscrowOut, Pagination, PayoutOut, PayoutPage, PayoutScheduleItem
from shopguard.services.escrow import get_escrow_by_order_id
from shopguard.services.payouts import get_payout_schedule, get_total_earnings, list_payouts
from shopguard.stores.postgres import get_session

router = APIRouter()


@router.get("/escrow/{order_id}", response_model=EscrowOut)
async def read_escrow(order_id: int = Path(ge=1)) -> EscrowOut:
    async with get_session() as session:
        escrow = await get_escrow_by_order_id(session=session, order_id=order_id)
        return EscrowOut.model_validate(escrow)


@router.get("/shops/{shop_id}/payouts", response_model=PayoutPage)
async def read_payouts(
    shop_id: int = Path(ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PayoutPage:
    async with get_session() as session:
        payouts, total = await list_payouts(session=session, shop_id=shop_id, limit=limit, offset=offset)
        return PayoutPage(
            data=[PayoutOut.model_validate(p) for p in payouts],
            pagination=Pagination(total=total, limit=limit, offset=offset),
        )


@router.get("/shops/{shop_id}/payouts/schedule", response_model=list[PayoutScheduleItem])
async def read_payout_schedule(shop_id: int = Path(ge=1)) -> list[PayoutScheduleItem]:
    async with get_session() as session:
        schedule = await get_payout_schedule(session=session, shop_id=shop_id)
    return [PayoutScheduleItem.model_validate(entry) for entry in schedule]


@router.get("/shops/{shop_id}/earnings", response_model=EarningsOut)
async def read_earnings(shop_id: int = Path(ge=1)) -> EarningsOut:
    async with get_session() as session:
        earnings = await get_total_earnings(session=session, shop_id=shop_id)
    return EarningsOut(paid=earnings.paid, pending=earnings.pending)
