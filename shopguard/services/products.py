"""Product listing with anti-scam restrictions.

Checks run in this order:
1. Shop exists, caller owns it, shop is active
2. No contact information in name/description (records a violation)
3. New-seller daily listing throttle
4. High-risk category gate for new sellers
"""

from __future__ import annotations

from decimal import Decimal
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopguard.errors import BadRequestError, ForbiddenError, ValidationError
from shopguard.models import Product, ProductStatus, ShopStatus, ViolationSeverity
from shopguard.services.escrow import to_money
from shopguard.services.restrictions import (
    VIOLATION_CONTACT_SHARING,
    check_high_risk_category,
    check_new_seller_restrictions,
    detect_contact_sharing,
    get_shop_or_404,
    record_violation,
)
from shopguard.settings import get_settings
from shopguard.stores.postgres import session_scope
from shopguard.timeutil import age_in_days, utcnow

logger = logging.getLogger("uvicorn.error")

CONTACT_SHARING_MESSAGE = (
    "Product listing cannot contain contact information (phone numbers, emails, WhatsApp, Telegram links). "
    "All communication must happen through the platform."
)


async def _create_in_session(
    session: AsyncSession,
    *,
    shop_id: int,
    owner_id: int,
    name: str,
    description: str,
    price: Decimal,
    category: str,
    inventory_count: int,
) -> Product | list[str]:
    shop = await get_shop_or_404(session, shop_id)
    if shop.owner_id != owner_id:
        raise ForbiddenError("You do not own this shop", detail={"shop_id": shop_id})
    if shop.status != ShopStatus.ACTIVE:
        raise ForbiddenError(
            f"Shop is {shop.status.value} and cannot list products",
            detail={"shop_id": shop_id, "status": shop.status.value},
        )

    contact = detect_contact_sharing(f"{name} {description}")
    if contact.has_contact:
        await record_violation(
            session=session,
            shop_id=shop_id,
            violation_type=VIOLATION_CONTACT_SHARING,
            severity=ViolationSeverity.MEDIUM,
            details={"matches": contact.matches, "product_name": name},
        )
        return contact.matches

    seller_check = await check_new_seller_restrictions(session=session, shop_id=shop_id)
    if not seller_check.allowed:
        raise BadRequestError(seller_check.reason or "New seller restriction applies")

    if not check_high_risk_category(category, age_in_days(shop.created_at)):
        raise BadRequestError(
            f'New sellers cannot list products in the "{category}" category. '
            f"This restriction lifts after {get_settings().new_seller_days} days of activity.",
            detail={"category": category},
        )

    product = Product(
        shop_id=shop_id,
        name=name,
        description=description,
        price=price,
        category=category,
        inventory_count=inventory_count,
        status=ProductStatus.ACTIVE,
        created_at=utcnow(),
    )
    session.add(product)
    await session.flush()
    logger.info(f"Product created: {product.id} for shop {shop_id}")
    return product


async def create_product(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    shop_id: int,
    owner_id: int,
    name: str,
    description: str,
    price: Decimal | float,
    category: str,
    inventory_count: int = 0,
) -> Product:
    """Create a product after running the listing restrictions.

    A contact-sharing rejection still commits the recorded violation.

    Raises:
        ValidationError: Non-positive price or negative inventory.
        NotFoundError: Unknown shop.
        ForbiddenError: Not the owner, or shop not active.
        BadRequestError: Contact info, listing throttle or category gate.
    """
    amount = to_money(price)
    if amount <= 0:
        raise ValidationError("Price must be greater than zero", detail={"price": str(amount)})
    if inventory_count < 0:
        raise ValidationError("Inventory cannot be negative", detail={"inventory_count": inventory_count})

    async with session_scope(session_factory) as session:
        outcome = await _create_in_session(
            session,
            shop_id=shop_id,
            owner_id=owner_id,
            name=name,
            description=description,
            price=amount,
            category=category,
            inventory_count=inventory_count,
        )

    if isinstance(outcome, list):
        raise BadRequestError(CONTACT_SHARING_MESSAGE, detail={"matches": outcome})
    return outcome
