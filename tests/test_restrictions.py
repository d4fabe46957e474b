"""Tests for new-seller restrictions, contact detection and violations."""

import pytest
from sqlalchemy import select

from shopguard.models import ShopStatus, Violation, ViolationSeverity
from shopguard.services.restrictions import (
    VIOLATION_CONTACT_SHARING,
    action_for_violation,
    check_high_risk_category,
    check_new_seller_restrictions,
    detect_contact_sharing,
    record_violation,
)


def test_detects_phone_number() -> None:
    result = detect_contact_sharing("Call me 0712345678")
    assert result.has_contact is True
    assert result.matches == ["0712345678"]


def test_clean_text_has_no_contact() -> None:
    result = detect_contact_sharing("Great quality product")
    assert result.has_contact is False
    assert result.matches == []


def test_detects_email_and_messengers_in_pattern_order() -> None:
    result = detect_contact_sharing("Telegram or mail seller@example.com, also WhatsApp")
    assert result.matches == ["seller@example.com", "Telegram", "WhatsApp"]


def test_short_digit_runs_are_not_phone_numbers() -> None:
    assert detect_contact_sharing("Pack of 12, model 2024").has_contact is False


def test_only_ascii_digits_count_as_phone_numbers() -> None:
    assert detect_contact_sharing("Serial \u0660\u0667\u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668").has_contact is False
    assert detect_contact_sharing("Numéro:\u00e90712345678").matches == ["0712345678"]


@pytest.mark.parametrize(
    "category,age,allowed",
    [
        ("electronics", 3, False),
        ("Phones", 0, False),
        (" laptops ", 6, False),
        ("electronics", 7, True),
        ("home", 0, True),
    ],
)
def test_high_risk_category_gate(category: str, age: int, allowed: bool) -> None:
    assert check_high_risk_category(category, age) is allowed


def test_violation_actions() -> None:
    assert action_for_violation("contact_sharing", ViolationSeverity.HIGH) == "shop_suspended"
    assert action_for_violation("contact_sharing", ViolationSeverity.MEDIUM) == "product_rejected"
    assert action_for_violation("high_dispute_rate", ViolationSeverity.MEDIUM) == "payout_frozen"
    assert action_for_violation("spam", ViolationSeverity.LOW) == "warning_issued"


@pytest.mark.asyncio
async def test_new_seller_throttle(session, seed) -> None:
    shop = await seed.shop(age_days=2)
    for _ in range(4):
        await seed.product(shop)

    assert (await check_new_seller_restrictions(session=session, shop_id=shop.id)).allowed is True

    await seed.product(shop)
    check = await check_new_seller_restrictions(session=session, shop_id=shop.id)
    assert check.allowed is False
    assert check.reason == "New sellers can only list 5 products per day"


@pytest.mark.asyncio
async def test_throttle_only_counts_last_24_hours(session, seed) -> None:
    shop = await seed.shop(age_days=3)
    for _ in range(5):
        await seed.product(shop, age_days=2)

    assert (await check_new_seller_restrictions(session=session, shop_id=shop.id)).allowed is True


@pytest.mark.asyncio
async def test_established_shop_is_not_throttled(session, seed) -> None:
    shop = await seed.shop(age_days=30)
    for _ in range(8):
        await seed.product(shop)

    assert (await check_new_seller_restrictions(session=session, shop_id=shop.id)).allowed is True


@pytest.mark.asyncio
async def test_third_violation_suspends_shop(session, seed) -> None:
    shop = await seed.shop(age_days=20)

    for _ in range(2):
        await record_violation(
            session=session,
            shop_id=shop.id,
            violation_type=VIOLATION_CONTACT_SHARING,
            severity=ViolationSeverity.MEDIUM,
        )
    await session.refresh(shop)
    assert shop.status == ShopStatus.ACTIVE

    await record_violation(
        session=session,
        shop_id=shop.id,
        violation_type=VIOLATION_CONTACT_SHARING,
        severity=ViolationSeverity.MEDIUM,
    )
    await session.refresh(shop)
    assert shop.status == ShopStatus.SUSPENDED

    actions = (
        await session.execute(select(Violation.action_taken).where(Violation.shop_id == shop.id))
    ).scalars().all()
    assert actions == ["product_rejected"] * 3


@pytest.mark.asyncio
async def test_high_severity_suspends_immediately(session, seed) -> None:
    shop = await seed.shop(age_days=20)

    await record_violation(
        session=session,
        shop_id=shop.id,
        violation_type="counterfeit_goods",
        severity=ViolationSeverity.HIGH,
        details={"product_id": 1},
    )
    await session.refresh(shop)
    assert shop.status == ShopStatus.SUSPENDED


@pytest.mark.asyncio
async def test_violations_of_other_types_do_not_add_up(session, seed) -> None:
    shop = await seed.shop(age_days=20)

    for violation_type in ("contact_sharing", "spam", "contact_sharing"):
        await record_violation(
            session=session,
            shop_id=shop.id,
            violation_type=violation_type,
            severity=ViolationSeverity.LOW,
        )
    await session.refresh(shop)
    assert shop.status == ShopStatus.ACTIVE
