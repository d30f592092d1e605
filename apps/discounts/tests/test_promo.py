"""Promo code quoting and commit."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.discounts import promo
from apps.discounts.models import PromoCode, PromoCodeUsage, Scope
from apps.discounts.quotes import DiscountQuote, Rejection, RejectionReason
from shared.domain.errors import LedgerIntegrityError

SUBTOTAL = Decimal("10000.00")


@pytest.fixture
def save10(db):
    return PromoCode.objects.create(code="save10", kind=PromoCode.Kind.PERCENTAGE, value=Decimal("10"))


def test_code_is_stored_upper_case(save10):
    assert save10.code == "SAVE10"


def test_percentage_discount_respects_cap(save10):
    save10.max_discount_amount = Decimal("600")
    save10.save()

    assert promo.compute_discount(save10, SUBTOTAL) == Decimal("600.00")


def test_fixed_discount_never_exceeds_subtotal(db):
    code = PromoCode.objects.create(code="BIG", kind=PromoCode.Kind.FIXED, value=Decimal("15000"))

    assert promo.compute_discount(code, SUBTOTAL) == SUBTOTAL


def test_quote_applies(save10, order_for):
    result = promo.quote(order_for(), " save10 ", SUBTOTAL)

    assert isinstance(result, DiscountQuote)
    assert result.amount == Decimal("1000.00")
    assert result.code == "SAVE10"


@pytest.mark.parametrize(
    "changes, reason",
    [
        ({"valid_from": timezone.now() + timedelta(days=1)}, RejectionReason.EXPIRED),
        ({"applies_to": Scope.TOURS}, RejectionReason.SCOPE_MISMATCH),
        ({"applicable_ids": [999]}, RejectionReason.SCOPE_MISMATCH),
        ({"usage_limit": 5, "used_count": 5}, RejectionReason.USAGE_LIMIT_REACHED),
        ({"min_order_amount": Decimal("20000")}, RejectionReason.BELOW_MINIMUM),
        ({"is_active": False}, RejectionReason.NOT_FOUND),
    ],
)
def test_quote_rejections(save10, order_for, changes, reason):
    for field, value in changes.items():
        setattr(save10, field, value)
    save10.save()

    result = promo.quote(order_for(), "SAVE10", SUBTOTAL)

    assert isinstance(result, Rejection)
    assert result.reason == reason


def test_per_user_limit_after_commit(save10, user, order_for, make_booking):
    booking = make_booking(user_id=user.id)
    promo.commit("SAVE10", user.id, booking, Decimal("1000"))

    result = promo.quote(order_for(user_id=user.id), "SAVE10", SUBTOTAL)

    assert isinstance(result, Rejection)
    assert result.reason == RejectionReason.USAGE_LIMIT_REACHED


def test_second_commit_for_same_user_is_refused(save10, user, make_booking, trip_date):
    # both bookings were quoted before either settled
    first = make_booking(user_id=user.id)
    second = make_booking(user_id=user.id, date=trip_date + timedelta(days=1))

    promo.commit("SAVE10", user.id, first, Decimal("1000"))
    with pytest.raises(LedgerIntegrityError) as excinfo:
        promo.commit("SAVE10", user.id, second, Decimal("1000"))

    assert excinfo.value.code == "USAGE_LIMIT_REACHED"
    save10.refresh_from_db()
    assert save10.used_count == 1
    assert PromoCodeUsage.objects.filter(promo=save10).count() == 1


def test_commit_of_unknown_code_fails(db, user, make_booking):
    booking = make_booking(user_id=user.id)

    with pytest.raises(LedgerIntegrityError):
        promo.commit("GHOST", user.id, booking, Decimal("10"))
