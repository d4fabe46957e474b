"""Listing restrictions and violation escalation.

Checks:
- New-seller throttle: young shops may list at most 5 products per 24 hours
- High-risk category gate: young shops cannot list electronics/phones/laptops
- Contact-sharing detector: phone numbers, emails and messenger handles in text

Violations are append-only. Three violations of the same type within the
window, or a single `high` severity violation, suspend the shop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
import logging
import re
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shopguard.errors import NotFoundError
from shopguard.models import Product, Shop, ShopStatus, Violation, ViolationSeverity
from shopguard.settings import get_settings
from shopguard.timeutil import age_in_days, utcnow

logger = logging.getLogger("uvicorn.error")

NEW_SELLER_DAILY_LISTING_LIMIT = 5

HIGH_RISK_CATEGORIES = frozenset({"electronics", "phones", "laptops", "smartphones"})

VIOLATION_CONTACT_SHARING = "contact_sharing"
VIOLATION_HIGH_DISPUTE_RATE = "high_dispute_rate"

# Scanned in order; matches are reported in pattern order
_CONTACT_PATTERNS = (
    re.compile(r"\b\d{10,15}\b", re.ASCII),  # Phone numbers
    re.compile(r"\b[\w.-]+@[\w.-]+\.\w+\b", re.ASCII),  # Email addresses
    re.compile(r"whatsapp|wa\.me|t\.me|telegram", re.IGNORECASE),  # Messaging apps
)


@dataclass(frozen=True)
class RestrictionCheck:
    allowed: bool
    reason: str | None = None


@dataclass(frozen=True)
class ContactCheck:
    has_contact: bool
    matches: list[str] = field(default_factory=list)


async def get_shop_or_404(session: AsyncSession, shop_id: int) -> Shop:
    shop = await session.get(Shop, shop_id)
    if shop is None:
        raise NotFoundError("Shop not found", detail={"shop_id": shop_id})
    return shop


async def check_new_seller_restrictions(*, session: AsyncSession, shop_id: int) -> RestrictionCheck:
    """Throttle listings for shops younger than `new_seller_days`."""
    shop = await get_shop_or_404(session, shop_id)
    if age_in_days(shop.created_at) >= get_settings().new_seller_days:
        return RestrictionCheck(allowed=True)

    since = utcnow() - timedelta(days=1)
    listed_today = (
        await session.execute(
            select(func.count(Product.id)).where(
                Product.shop_id == shop_id,
                Product.created_at > since,
            )
        )
    ).scalar() or 0

    if listed_today >= NEW_SELLER_DAILY_LISTING_LIMIT:
        return RestrictionCheck(
            allowed=False,
            reason=f"New sellers can only list {NEW_SELLER_DAILY_LISTING_LIMIT} products per day",
        )
    return RestrictionCheck(allowed=True)


def check_high_risk_category(category: str, shop_age_days: int) -> bool:
    """Return True if a shop of this age may list in `category`."""
    if shop_age_days < get_settings().new_seller_days and category.strip().lower() in HIGH_RISK_CATEGORIES:
        return False
    return True


def detect_contact_sharing(text: str) -> ContactCheck:
    """Scan free text for off-platform contact details."""
    matches: list[str] = []
    for pattern in _CONTACT_PATTERNS:
        matches.extend(pattern.findall(text or ""))
    return ContactCheck(has_contact=bool(matches), matches=matches)


def action_for_violation(violation_type: str, severity: ViolationSeverity) -> str:
    """Derive the audit label for a violation."""
    if severity == ViolationSeverity.HIGH:
        return "shop_suspended"
    if violation_type == VIOLATION_CONTACT_SHARING:
        return "product_rejected"
    if violation_type == VIOLATION_HIGH_DISPUTE_RATE:
        return "payout_frozen"
    return "warning_issued"


async def append_violation(
    *,
    session: AsyncSession,
    shop_id: int,
    violation_type: str,
    severity: ViolationSeverity,
    details: dict[str, Any] | None = None,
) -> Violation:
    """Insert a violation row without running escalation."""
    violation = Violation(
        shop_id=shop_id,
        type=violation_type,
        severity=severity,
        details=details or {},
        action_taken=action_for_violation(violation_type, severity),
        created_at=utcnow(),
    )
    session.add(violation)
    await session.flush()
    return violation


async def record_violation(
    *,
    session: AsyncSession,
    shop_id: int,
    violation_type: str,
    severity: ViolationSeverity,
    details: dict[str, Any] | None = None,
) -> Violation:
    """Record a violation and suspend the shop when escalation thresholds are hit.

    Args:
        session: DB session (caller controls commit/rollback).
        shop_id: Offending shop.
        violation_type: e.g. "contact_sharing".
        severity: low / medium / high. High suspends immediately.
        details: Structured payload stored with the violation.

    Returns:
        The persisted violation.
    """
    settings = get_settings()
    violation = await append_violation(
        session=session,
        shop_id=shop_id,
        violation_type=violation_type,
        severity=severity,
        details=details,
    )

    if severity == ViolationSeverity.HIGH:
        await suspend_shop(session=session, shop_id=shop_id, reason=f"High severity {violation_type} violation")
        return violation

    since = utcnow() - timedelta(days=settings.violation_window_days)
    recent_count = (
        await session.execute(
            select(func.count(Violation.id)).where(
                Violation.shop_id == shop_id,
                Violation.type == violation_type,
                Violation.created_at > since,
            )
        )
    ).scalar() or 0

    if recent_count >= settings.violation_suspend_count:
        await suspend_shop(session=session, shop_id=shop_id, reason=f"Multiple {violation_type} violations")

    return violation


async def suspend_shop(*, session: AsyncSession, shop_id: int, reason: str) -> bool:
    """Force a shop into `suspended`. Returns False if it already was."""
    result = await session.execute(
        update(Shop)
        .where(Shop.id == shop_id, Shop.status != ShopStatus.SUSPENDED)
        .values(status=ShopStatus.SUSPENDED, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        return False
    logger.warning(f"Shop {shop_id} suspended: {reason}")
    return True
