"""Admin endpoints for settlement operations.

These endpoints are intended for manual triggers and operations.
In production, put them behind admin authentication.

POST /v1/admin/payouts/run                  -> payout sweep
POST /v1/admin/payouts/{payoutId}/processed -> mark a payout as paid out
POST /v1/admin/escrow/retry                 -> retry pending escrow creation
"""

import logging

from fastapi import APIRouter, Path, Query

from shopguard.errors import ConflictError
from shopguard.schemas import EscrowRetryResponse, PayoutOut, PayoutRunResponse
from shopguard.services.escrow import process_pending_escrows
from shopguard.services.payouts import mark_payout_processed, process_payouts
from shopguard.stores.postgres import get_session, get_session_factory
from shopguard.stores.redis import (
    TTL_ESCROW_RETRY_LOCK,
    TTL_PAYOUT_SWEEP_LOCK,
    acquire_lock,
    is_redis_ready,
    release_lock,
)

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


@router.post("/payouts/run", response_model=PayoutRunResponse)
async def run_payouts(
    require_active_shop: bool = Query(default=False, alias="requireActiveShop"),
) -> PayoutRunResponse:
    """Sweep eligible released escrow into payouts."""
    locked = is_redis_ready()
    if locked and not await acquire_lock("payout_sweep", ttl=TTL_PAYOUT_SWEEP_LOCK):
        raise ConflictError("Payout sweep already running")
    try:
        async with get_session() as session:
            stats = await process_payouts(session=session, require_active_shop=require_active_shop)
    finally:
        if locked:
            await release_lock("payout_sweep")
    logger.info(f"Manual payout run: processed={stats.processed}")
    return PayoutRunResponse.model_validate(stats)


@router.post("/payouts/{payout_id}/processed", response_model=PayoutOut)
async def complete_payout(payout_id: int = Path(ge=1)) -> PayoutOut:
    async with get_session() as session:
        payout = await mark_payout_processed(session=session, payout_id=payout_id)
        return PayoutOut.model_validate(payout)


@router.post("/escrow/retry", response_model=EscrowRetryResponse)
async def retry_pending_escrows(limit: int = Query(default=100, ge=1, le=1000)) -> EscrowRetryResponse:
    """Create escrows still owed by the outbox."""
    locked = is_redis_ready()
    if locked and not await acquire_lock("escrow_retry", ttl=TTL_ESCROW_RETRY_LOCK):
        raise ConflictError("Escrow retry already running")
    try:
        stats = await process_pending_escrows(session_factory=get_session_factory(), limit=limit)
    finally:
        if locked:
            await release_lock("escrow_retry")
    return EscrowRetryResponse.model_validate(stats)
