"""Trust endpoints.

GET /v1/trust/shops/{shopId}        -> fresh score, level, payout delay, indicators
GET /v1/trust/shops/{shopId}/badge  -> badge for the shop page (cached in Redis)
"""

import logging

from fastapi import APIRouter, Path

from shopguard.schemas import TrustBadge, TrustSummary
from shopguard.services.trust import badge_description, calculate_trust_score, get_shop_trust_summary, trust_level
from shopguard.stores.postgres import get_session
from shopguard.stores.redis import get_trust_badge_cache, is_redis_ready, set_trust_badge_cache

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


@router.get("/shops/{shop_id}", response_model=TrustSummary)
async def get_shop_trust(shop_id: int = Path(ge=1)) -> TrustSummary:
    """Recompute and return public trust indicators for a shop."""
    async with get_session() as session:
        summary = await get_shop_trust_summary(session=session, shop_id=shop_id)
    return TrustSummary.model_validate(summary)


@router.get("/shops/{shop_id}/badge", response_model=TrustBadge)
async def get_shop_badge(shop_id: int = Path(ge=1)) -> TrustBadge:
    """Trust badge; served from cache when available."""
    if is_redis_ready():
        try:
            cached = await get_trust_badge_cache(shop_id)
            if cached:
                return TrustBadge(**cached)
        except Exception:
            logger.exception(f"Trust badge cache read failed for shop {shop_id}")

    async with get_session() as session:
        score = await calculate_trust_score(session=session, shop_id=shop_id)

    level = trust_level(score)
    badge = TrustBadge(badge=level, score=score, description=badge_description(level))

    if is_redis_ready():
        try:
            await set_trust_badge_cache(shop_id, badge.model_dump())
        except Exception:
            logger.exception(f"Trust badge cache write failed for shop {shop_id}")
    return badge
