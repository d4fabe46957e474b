"""Dispute endpoints.

POST /v1/disputes                         -> file a dispute (auto-resolved before returning)
GET  /v1/disputes/buyer/{buyerId}         -> buyer's disputes
GET  /v1/disputes/shops/{shopId}?ownerId= -> shop's disputes (owner only)
GET  /v1/disputes/shops/{shopId}/stats    -> dispute statistics
"""

import logging

from fastapi import APIRouter, Path, Query

from shopguard.models import DisputeStatus
from shopguard.schemas import DisputeCreate, DisputeOut, DisputePage, DisputeStatsOut
from shopguard.services.disputes import (
    create_dispute,
    get_shop_dispute_stats,
    list_buyer_disputes,
    list_shop_disputes,
)
from shopguard.stores.postgres import get_session
from shopguard.stores.redis import invalidate_trust_badge_cache, is_redis_ready

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


@router.post("", response_model=DisputeOut, status_code=201)
async def open_dispute(request: DisputeCreate) -> DisputeOut:
    async with get_session() as session:
        dispute = await create_dispute(
            session=session,
            order_id=request.order_id,
            buyer_id=request.buyer_id,
            reason=request.reason,
        )
        result = DisputeOut.model_validate(dispute)

    # A refund changes the shop score; drop the stale badge
    if dispute.status == DisputeStatus.REFUNDED and is_redis_ready():
        try:
            await invalidate_trust_badge_cache(dispute.shop_id)
        except Exception:
            logger.exception(f"Trust badge cache invalidation failed for shop {dispute.shop_id}")
    return result


@router.get("/buyer/{buyer_id}", response_model=DisputePage)
async def read_buyer_disputes(
    buyer_id: int = Path(ge=1),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> DisputePage:
    async with get_session() as session:
        disputes, total = await list_buyer_disputes(session=session, buyer_id=buyer_id, page=page, limit=limit)
        return DisputePage(
            disputes=[DisputeOut.model_validate(d) for d in disputes],
            total=total,
            page=page,
            limit=limit,
        )


@router.get("/shops/{shop_id}", response_model=DisputePage)
async def read_shop_disputes(
    shop_id: int = Path(ge=1),
    owner_id: int = Query(alias="ownerId", ge=1),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> DisputePage:
    async with get_session() as session:
        disputes, total = await list_shop_disputes(
            session=session,
            shop_id=shop_id,
            owner_id=owner_id,
            page=page,
            limit=limit,
        )
        return DisputePage(
            disputes=[DisputeOut.model_validate(d) for d in disputes],
            total=total,
            page=page,
            limit=limit,
        )


@router.get("/shops/{shop_id}/stats", response_model=DisputeStatsOut)
async def read_shop_dispute_stats(shop_id: int = Path(ge=1)) -> DisputeStatsOut:
    async with get_session() as session:
        stats = await get_shop_dispute_stats(session=session, shop_id=shop_id)
    return DisputeStatsOut.model_validate(stats)
