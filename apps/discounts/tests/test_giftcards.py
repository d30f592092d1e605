"""Gift card ledger."""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.discounts import giftcards
from apps.discounts.models import GiftCard, GiftCardTransaction, Scope
from apps.discounts.quotes import DiscountQuote, Rejection, RejectionReason
from shared.domain.errors import LedgerIntegrityError, ValidationError


@pytest.fixture
def card(db):
    issued = giftcards.issue(Decimal("1000"), recipient_name="Nok")
    return giftcards.activate(issued.pk)


def test_generated_code_format(db):
    code = giftcards.generate_code()

    assert re.fullmatch(r"[A-Z2-9]{4}-[A-Z2-9]{4}-[A-Z2-9]{4}", code)
    assert not set(code) & set("01IOL")


def test_issue_rejects_non_positive_amount(db):
    with pytest.raises(ValidationError):
        giftcards.issue(Decimal("0"))


def test_pending_card_cannot_be_used(db, order_for):
    issued = giftcards.issue(Decimal("1000"))

    result = giftcards.quote(order_for(), issued.code, Decimal("5000"))

    assert isinstance(result, Rejection)
    assert result.reason == RejectionReason.INACTIVE


def test_activation_logs_purchase(card):
    assert card.status == GiftCard.Status.ACTIVE
    assert card.transactions.get().type == GiftCardTransaction.Type.PURCHASE


def test_quote_is_limited_to_balance_and_subtotal(card, order_for):
    assert giftcards.quote(order_for(), card.code.lower(), Decimal("5000")).amount == Decimal("1000.00")
    assert giftcards.quote(order_for(), card.code, Decimal("400")).amount == Decimal("400.00")


def test_quote_checks_scope(card, order_for):
    card.applies_to = Scope.TOURS
    card.save()

    result = giftcards.quote(order_for(), card.code, Decimal("5000"))

    assert result.reason == RejectionReason.SCOPE_MISMATCH


def test_card_is_never_overspent(card, make_booking, trip_date):
    first = make_booking()
    second = make_booking(date=trip_date + timedelta(days=1))

    giftcards.redeem(card.code, Decimal("700"), first)
    with pytest.raises(LedgerIntegrityError) as excinfo:
        giftcards.redeem(card.code, Decimal("700"), second)

    assert excinfo.value.code == "GIFT_CARD_OVERDRAWN"
    card.refresh_from_db()
    assert card.remaining_balance == Decimal("300.00")


def test_full_redeem_marks_card_used_and_refund_reactivates(card, make_booking):
    booking = make_booking()

    giftcards.redeem(card.code, Decimal("1000"), booking)
    card.refresh_from_db()
    assert card.status == GiftCard.Status.USED

    giftcards.refund(card.code, Decimal("1000"), booking)
    card.refresh_from_db()
    assert card.status == GiftCard.Status.ACTIVE
    assert card.remaining_balance == Decimal("1000.00")


def test_expire_overdue_runs_once(card, order_for):
    card.valid_until = timezone.now() - timedelta(minutes=1)
    card.save()

    assert giftcards.expire_overdue() == 1
    assert giftcards.expire_overdue() == 0

    result = giftcards.quote(order_for(), card.code, Decimal("5000"))
    assert isinstance(result, Rejection)
    assert result.reason == RejectionReason.EXPIRED


def test_quote_is_side_effect_free(card, order_for):
    result = giftcards.quote(order_for(), card.code, Decimal("5000"))

    assert isinstance(result, DiscountQuote)
    card.refresh_from_db()
    assert card.remaining_balance == Decimal("1000.00")
