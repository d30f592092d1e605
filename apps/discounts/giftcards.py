"""Gift card resolver and balance ledger.

Balances only move through ``redeem``/``refund``/``expire_overdue``.
Every movement is a conditional update on a locked row plus an audit
transaction, so a card can never be overspent by racing settlements.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.db.models import F  # type: ignore
from django.utils import timezone  # type: ignore

from shared.domain.errors import ConflictError, LedgerIntegrityError, ValidationError
from shared.domain.value_objects import ZERO, quantize

from .models import GiftCard, GiftCardTransaction, Scope
from .quotes import DiscountKind, DiscountQuote, QuoteResult, Rejection, RejectionReason

logger = logging.getLogger(__name__)

# No 0/O, 1/I/L: codes get typed in from printed cards
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def generate_code() -> str:
    while True:
        raw = "".join(secrets.choice(CODE_ALPHABET) for _ in range(12))
        code = f"{raw[0:4]}-{raw[4:8]}-{raw[8:12]}"
        if not GiftCard.objects.filter(code=code).exists():
            return code


def _reject(reason: str, code: str, detail: str) -> Rejection:
    return Rejection(DiscountKind.GIFT_CARD, reason, code, detail)


def quote(order, code: str, subtotal: Decimal, *, now=None) -> QuoteResult:
    """Applicable amount is ``min(remaining_balance, subtotal)``."""
    now = now or timezone.now()
    code = normalize_code(code)

    card = GiftCard.objects.filter(code=code).first()
    if card is None:
        return _reject(RejectionReason.NOT_FOUND, code, "Gift card not found")
    if card.status == GiftCard.Status.EXPIRED or card.is_expired(now):
        return _reject(RejectionReason.EXPIRED, code, "Gift card has expired")
    if card.status != GiftCard.Status.ACTIVE or card.valid_from > now or card.remaining_balance <= 0:
        return _reject(RejectionReason.INACTIVE, code, f"Gift card is {card.status}")
    if card.applies_to != Scope.ALL and card.applies_to != order.scope:
        return _reject(RejectionReason.SCOPE_MISMATCH, code, f"Gift card is valid for {card.applies_to} only")
    if subtotal < card.min_order_amount:
        return _reject(RejectionReason.BELOW_MINIMUM, code, f"Minimum order amount is {card.min_order_amount}")

    amount = quantize(max(min(card.remaining_balance, subtotal), ZERO))
    return DiscountQuote(
        DiscountKind.GIFT_CARD,
        card.code,
        amount,
        details={"gift_card_id": card.pk, "balance": str(card.remaining_balance)},
    )


def _log(card: GiftCard, kind: str, amount: Decimal, before: Decimal, booking=None, note: str = ""):
    return GiftCardTransaction.objects.create(
        card=card,
        type=kind,
        amount=amount,
        balance_before=before,
        balance_after=card.remaining_balance,
        booking=booking,
        note=note,
    )


def issue(
    amount: Decimal,
    *,
    purchaser_user_id: Optional[int] = None,
    recipient_name: str = "",
    recipient_email: str = "",
    message: str = "",
    applies_to: str = Scope.ALL,
    validity_days: Optional[int] = None,
) -> GiftCard:
    """Create a card in ``pending`` state; it becomes usable once its purchase is paid."""
    amount = quantize(amount)
    if amount <= 0:
        raise ValidationError("Gift card amount must be positive", code="INVALID_AMOUNT")
    days = validity_days or settings.GIFT_CARD_VALIDITY_DAYS
    card = GiftCard.objects.create(
        code=generate_code(),
        original_amount=amount,
        remaining_balance=amount,
        applies_to=applies_to,
        valid_until=timezone.now() + timedelta(days=days),
        purchaser_user_id=purchaser_user_id,
        recipient_name=recipient_name,
        recipient_email=recipient_email,
        message=message,
    )
    logger.info(f"Gift card #{card.pk} issued for {amount}, awaiting payment")
    return card


@transaction.atomic
def activate(card_id: int, *, staff_user_id: Optional[int] = None) -> GiftCard:
    """Mark a pending card paid. Activating an active card again is a no-op."""
    card = GiftCard.objects.select_for_update().get(pk=card_id)
    if card.status == GiftCard.Status.ACTIVE:
        return card
    if card.status != GiftCard.Status.PENDING:
        raise ConflictError(f"Gift card {card.code} is {card.status}", code="GIFT_CARD_NOT_PENDING")
    card.status = GiftCard.Status.ACTIVE
    card.activated_at = timezone.now()
    card.save(update_fields=["status", "activated_at", "updated_at"])
    note = f"Purchase paid, confirmed by staff #{staff_user_id}" if staff_user_id else "Purchase paid"
    _log(card, GiftCardTransaction.Type.PURCHASE, card.original_amount, ZERO, note=note)
    logger.info(f"Gift card {card.code} activated with {card.original_amount}")
    return card


def redeem(code: str, amount: Decimal, booking) -> GiftCardTransaction:
    """
    Take ``amount`` off the card inside the caller's transaction.

    Raises LedgerIntegrityError when the card is no longer active or the
    balance is short; the caller's whole transaction must then roll back.
    """
    code = normalize_code(code)
    amount = quantize(amount)
    card = GiftCard.objects.select_for_update().filter(code=code).first()
    if card is None:
        raise LedgerIntegrityError(f"Gift card {code} not found", code="GIFT_CARD_NOT_FOUND")
    if card.status != GiftCard.Status.ACTIVE:
        raise LedgerIntegrityError(f"Gift card {code} is {card.status}", code="GIFT_CARD_INACTIVE")

    before = card.remaining_balance
    updated = GiftCard.objects.filter(
        pk=card.pk,
        status=GiftCard.Status.ACTIVE,
        remaining_balance__gte=amount,
    ).update(remaining_balance=F("remaining_balance") - amount, updated_at=timezone.now())
    if updated != 1:
        raise LedgerIntegrityError(
            f"Gift card {code} balance {before} is short of {amount}",
            code="GIFT_CARD_OVERDRAWN",
        )

    card.refresh_from_db()
    if card.remaining_balance == 0:
        card.status = GiftCard.Status.USED
        card.save(update_fields=["status", "updated_at"])
    logger.info(f"Gift card {code} redeemed {amount} for booking {booking.reference}, left {card.remaining_balance}")
    return _log(card, GiftCardTransaction.Type.REDEEM, amount, before, booking=booking)


def refund(code: str, amount: Decimal, booking, note: str = "") -> GiftCardTransaction:
    """Return a redeemed amount to the card (booking cancelled after payment)."""
    code = normalize_code(code)
    amount = quantize(amount)
    card = GiftCard.objects.select_for_update().get(code=code)
    before = card.remaining_balance
    card.remaining_balance = min(card.original_amount, before + amount)
    if card.status == GiftCard.Status.USED:
        card.status = GiftCard.Status.ACTIVE
    card.save(update_fields=["remaining_balance", "status", "updated_at"])
    logger.info(f"Gift card {code} refunded {amount} from booking {booking.reference}")
    return _log(card, GiftCardTransaction.Type.REFUND, card.remaining_balance - before, before, booking, note)


def expire_overdue(now=None) -> int:
    """Expire active cards past ``valid_until``. Safe to run repeatedly."""
    now = now or timezone.now()
    expired = 0
    overdue = GiftCard.objects.filter(status=GiftCard.Status.ACTIVE, valid_until__lt=now).values_list("pk", flat=True)
    for card_id in list(overdue):
        with transaction.atomic():
            card = GiftCard.objects.select_for_update().get(pk=card_id)
            if card.status != GiftCard.Status.ACTIVE:
                continue
            before = card.remaining_balance
            card.status = GiftCard.Status.EXPIRED
            card.save(update_fields=["status", "updated_at"])
            _log(card, GiftCardTransaction.Type.EXPIRE, before, before, note="Expired")
            expired += 1
    if expired:
        logger.info(f"Expired {expired} gift cards")
    return expired
