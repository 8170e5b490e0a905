"""Gift cards: emisión, reserva de saldo, vencimiento y permisos"""
from datetime import datetime, timedelta
from decimal import Decimal
import re

import pytest

from shared.database.models import utcnow
from shared.errors import ValidationError, PaymentError, NotFoundError, Forbidden
from services.gift_cards.services.gift_card_service import (
    gift_card_service,
    generate_gift_card_code,
    add_years,
)

pytestmark = pytest.mark.anyio

CODE_PATTERN = re.compile(r"^[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$")


def test_generated_code_format():
    assert CODE_PATTERN.match(generate_gift_card_code())


def test_add_years_handles_leap_day():
    assert add_years(datetime(2024, 2, 29), 5) == datetime(2029, 2, 28)


async def test_create_gift_card_for_self(db, editor):
    gift_card = await gift_card_service.create_gift_card(db, editor, 250, is_for_self=True)

    assert CODE_PATTERN.match(gift_card.code)
    assert gift_card.balance == Decimal("250.00")
    assert gift_card.status == "active"
    assert gift_card.recipient_email == editor.email
    assert gift_card.expires_at.year == gift_card.purchased_at.year + 5


@pytest.mark.parametrize("amount", [99, 5001])
async def test_amount_out_of_range_is_rejected(db, editor, amount):
    with pytest.raises(ValidationError):
        await gift_card_service.create_gift_card(db, editor, amount, is_for_self=True)


async def test_recipient_is_required_when_not_for_self(db, editor):
    with pytest.raises(ValidationError):
        await gift_card_service.create_gift_card(db, editor, 200)


async def test_use_partially_then_redeem(db, editor):
    gift_card = await gift_card_service.create_gift_card(db, editor, 200, is_for_self=True)

    used = await gift_card_service.use(db, gift_card.code, 150, description="Bar")
    assert used.balance == Decimal("50.00")
    assert used.status == "partially_used"

    used = await gift_card_service.use(db, gift_card.code, 50)
    assert used.balance == Decimal("0.00")
    assert used.status == "redeemed"
    assert used.redeemed_at is not None
    assert [usage.amount for usage in used.usage_history] == [Decimal("150.00"), Decimal("50.00")]

    with pytest.raises(PaymentError):
        await gift_card_service.use(db, gift_card.code, 1)


async def test_reserve_rejects_bad_amounts_and_codes(db, editor):
    gift_card = await gift_card_service.create_gift_card(db, editor, 100, is_for_self=True)
    code = gift_card.code

    with pytest.raises(ValidationError):
        await gift_card_service.use(db, code, 0)
    with pytest.raises(PaymentError):
        await gift_card_service.use(db, code, 101)
    with pytest.raises(PaymentError):
        await gift_card_service.use(db, "AAAA-BBBB-CCCC-DDDD", 10)

    assert await gift_card_service.get_balance(db, code) == Decimal("100.00")


async def test_get_balance_unknown_code(db):
    with pytest.raises(NotFoundError):
        await gift_card_service.get_balance(db, "AAAA-BBBB-CCCC-DDDD")


async def test_expired_card_is_marked_and_refused(db, editor):
    gift_card = await gift_card_service.create_gift_card(db, editor, 100, is_for_self=True)
    gift_card.expires_at = utcnow() - timedelta(days=1)
    await db.commit()

    result = await gift_card_service.validate(db, gift_card.code)
    assert result["valid"] is False
    assert result["gift_card"].status == "expired"

    with pytest.raises(PaymentError):
        await gift_card_service.use(db, result["gift_card"].code, 10)


async def test_validate_active_card(db, editor):
    gift_card = await gift_card_service.create_gift_card(db, editor, 100, is_for_self=True)

    result = await gift_card_service.validate(db, gift_card.code.lower())

    assert result["valid"] is True
    assert result["error"] is None


async def test_visibility_recipient_purchaser_or_admin(db, editor, other_editor, admin, make_user):
    gift_card = await gift_card_service.create_gift_card(
        db, editor, 300,
        recipient_email="Noa@Barby.co.il",
        recipient_name="Noa",
    )
    code = gift_card.code
    stranger = await make_user("stranger@barby.co.il")

    assert (await gift_card_service.get_for_user(db, code, editor)).code == code
    assert (await gift_card_service.get_for_user(db, code, other_editor)).code == code
    assert (await gift_card_service.get_for_user(db, code, admin)).code == code
    with pytest.raises(Forbidden):
        await gift_card_service.get_for_user(db, code, stranger)

    assert [gc.code for gc in await gift_card_service.get_received(db, other_editor.email)] == [code]
    assert [gc.code for gc in await gift_card_service.get_purchased(db, editor)] == [code]


async def test_admin_listing_and_stats(db, editor):
    await gift_card_service.create_gift_card(db, editor, 100, is_for_self=True)
    second = await gift_card_service.create_gift_card(db, editor, 200, is_for_self=True)
    await gift_card_service.use(db, second.code, 50)

    listing = await gift_card_service.list_gift_cards(db, status="partially_used")
    assert listing["total"] == 1

    stats = await gift_card_service.get_stats(db)
    assert stats["total_count"] == 2
    assert stats["active_count"] == 1
    assert stats["partially_used_count"] == 1
    assert stats["total_value"] == Decimal("300.00")
    assert stats["active_balance"] == Decimal("250.00")
