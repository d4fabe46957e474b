#!/usr/bin/env python3
"""Daily settlement job for the cron scheduler.

Behavior:
- Retry escrow creation for orders whose post-checkout escrow step failed
- Sweep released escrow past its eligibility date into per-shop payouts
  (shops that are no longer active are skipped)

A Redis lock keeps two overlapping runs from sweeping at the same time. The job
still runs when Redis is unavailable; payout idempotence is enforced in the DB.

Run (local / cron):
  python -m scripts.process_payouts

Optional env vars:
  ESCROW_RETRY_LIMIT=500
  SKIP_ESCROW_RETRY=1
"""

import asyncio
import os
import sys
from dataclasses import asdict


# Ensure imports work when executed as a script/module
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shopguard.services.escrow import process_pending_escrows  # noqa: E402
from shopguard.services.payouts import process_payouts  # noqa: E402
from shopguard.stores.postgres import close_db, get_session, get_session_factory, init_db, ping_db  # noqa: E402
from shopguard.stores.redis import (  # noqa: E402
    TTL_PAYOUT_SWEEP_LOCK,
    acquire_lock,
    close_redis,
    init_redis,
    is_redis_ready,
    release_lock,
)

LOCK_KEY = "payout_sweep"


async def _sweep(retry_limit: int, skip_retry: bool) -> dict:
    escrow_stats = None
    if not skip_retry:
        escrow_stats = await process_pending_escrows(session_factory=get_session_factory(), limit=retry_limit)

    async with get_session() as session:
        payout_stats = await process_payouts(session=session, require_active_shop=True)

    payout = asdict(payout_stats)
    payout["total_amount"] = str(payout_stats.total_amount)
    return {
        "ok": True,
        "escrow_retry": asdict(escrow_stats) if escrow_stats is not None else None,
        "payouts": payout,
    }


async def main() -> None:
    # Initialize shared connections (same as API lifespan, but for a one-off cron run)
    await init_db()
    await ping_db()
    try:
        await init_redis()
    except Exception:
        # Runs without the lock; the payout_id link still prevents double payment
        pass

    try:
        retry_limit = int(os.getenv("ESCROW_RETRY_LIMIT", "500"))
        skip_retry = os.getenv("SKIP_ESCROW_RETRY", "") == "1"

        if is_redis_ready():
            if not await acquire_lock(LOCK_KEY, ttl=TTL_PAYOUT_SWEEP_LOCK):
                print({"ok": False, "reason": "payout sweep already running"})
                return
            try:
                result = await _sweep(retry_limit, skip_retry)
            finally:
                await release_lock(LOCK_KEY)
        else:
            result = await _sweep(retry_limit, skip_retry)

        # Final output for cron logs (single JSON-ish blob)
        print(result)
    finally:
        await close_redis()
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
