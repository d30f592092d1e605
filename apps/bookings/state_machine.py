"""Booking lifecycle transitions.

Every transition runs inside one ``DjangoUnitOfWork``: the booking row
is locked, ledger effects and follow-up jobs are written in the same
transaction, and domain events go out only after commit.

    pending   -> confirmed | expired | cancelled | paid
    confirmed -> paid | cancelled
    paid      -> completed | refunded | cancelled
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from django.db.models import F  # type: ignore
from django.utils import timezone  # type: ignore

from apps.discounts import cashback, giftcards, promo
from apps.discounts.models import GiftCardTransaction, PromoCode, PromoCodeUsage
from apps.discounts.quotes import DiscountKind
from apps.jobs.runner import enqueue
from shared.application.uow import DjangoUnitOfWork
from shared.domain.errors import InvalidTransitionError, LedgerIntegrityError, ValidationError

from . import reservations
from .events import BookingCancelled, BookingExpired, BookingPaid
from .models import Booking

logger = logging.getLogger(__name__)

S = Booking.Status

TRANSITIONS = {
    S.PENDING: {S.CONFIRMED, S.EXPIRED, S.CANCELLED, S.PAID},
    S.CONFIRMED: {S.PAID, S.CANCELLED},
    S.PAID: {S.COMPLETED, S.REFUNDED, S.CANCELLED},
    S.COMPLETED: set(),
    S.CANCELLED: set(),
    S.EXPIRED: set(),
    S.REFUNDED: set(),
}

PAID = "paid"
ALREADY_PAID = "already_paid"
DUPLICATE_PAYMENT = "duplicate_payment"


@dataclass(frozen=True)
class PaymentOutcome:
    outcome: str
    booking: Booking

    @property
    def is_new(self) -> bool:
        return self.outcome == PAID


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def _lock(booking_or_reference: Union[Booking, str]) -> Booking:
    reference = getattr(booking_or_reference, "reference", booking_or_reference)
    try:
        return Booking.objects.select_for_update().get(reference=reference)
    except Booking.DoesNotExist:
        raise ValidationError(f"Booking {reference} not found", code="BOOKING_NOT_FOUND") from None


def _move(booking: Booking, target: str) -> None:
    if not can_transition(booking.status, target):
        raise InvalidTransitionError(
            f"Booking {booking.reference} cannot go from {booking.status} to {target}",
            code="INVALID_TRANSITION",
            current=booking.status,
            target=target,
        )
    logger.info(f"Booking {booking.reference}: {booking.status} -> {target}")
    booking.status = target


def confirm(booking: Union[Booking, str]) -> Booking:
    """Operator acceptance of a pending booking; clears its payment deadline."""
    with DjangoUnitOfWork():
        booking = _lock(booking)
        _move(booking, S.CONFIRMED)
        booking.expires_at = None
        booking.save(update_fields=["status", "expires_at", "updated_at"])
    return booking


def _commit_discounts(booking: Booking) -> None:
    for item in booking.applied_discounts or []:
        kind = item.get("kind")
        amount = Decimal(str(item.get("amount", "0")))
        if amount <= 0:
            continue
        if kind == DiscountKind.PROMO:
            promo.commit(item["code"], booking.user_id, booking, amount)
        elif kind == DiscountKind.GIFT_CARD:
            giftcards.redeem(item["code"], amount, booking)
        elif kind == DiscountKind.CASHBACK:
            if booking.user_id is None:
                raise LedgerIntegrityError(
                    f"Booking {booking.reference} uses cashback without a user", code="CASHBACK_WITHOUT_USER"
                )
            cashback.commit_usage(booking.user_id, amount, booking)


def _enqueue_paid_jobs(booking: Booking) -> None:
    data = {"booking_reference": booking.reference}
    enqueue("send_email", {**data, "template": "booking_paid"})
    enqueue("send_telegram_message", {**data, "template": "booking_paid"})
    enqueue("generate_invoice", data)
    enqueue(
        "update_analytics",
        {
            "metric": "bookings_paid",
            "day": timezone.localdate().isoformat(),
            "amount": str(booking.total_price),
        },
    )


def mark_paid(reference: str, payment_reference: str, intent=None) -> PaymentOutcome:
    """
    Settle a booking.

    Re-delivery of the same payment is a no-op (``already_paid``); a
    second payment under another reference is reported as
    ``duplicate_payment`` so the caller can refund it. Any ledger
    failure rolls back the whole settlement.
    """
    with DjangoUnitOfWork() as uow:
        booking = _lock(reference)

        if booking.status == S.PAID:
            if booking.payment_reference == payment_reference:
                return PaymentOutcome(ALREADY_PAID, booking)
            logger.warning(
                f"Booking {booking.reference} already paid with {booking.payment_reference}, "
                f"second payment {payment_reference}"
            )
            return PaymentOutcome(DUPLICATE_PAYMENT, booking)

        _move(booking, S.PAID)
        _commit_discounts(booking)
        if booking.user_id is not None:
            cashback.earn(booking.user_id, booking)
        if intent is not None:
            intent.mark_completed(payment_reference)

        now = timezone.now()
        booking.payment_reference = payment_reference
        booking.payment_method = getattr(intent, "provider", "") or booking.payment_method
        booking.paid_at = now
        booking.expires_at = None
        booking.save(
            update_fields=["status", "payment_reference", "payment_method", "paid_at", "expires_at", "updated_at"]
        )
        _enqueue_paid_jobs(booking)
        uow.add_event(
            BookingPaid(
                aggregate_id=booking.reference,
                reference=booking.reference,
                payment_reference=payment_reference,
                total_price=booking.total_price,
            )
        )
    return PaymentOutcome(PAID, booking)


def _reverse_discounts(booking: Booking) -> None:
    for txn in GiftCardTransaction.objects.filter(booking=booking, type=GiftCardTransaction.Type.REDEEM):
        giftcards.refund(txn.card.code, txn.amount, booking, note=f"Booking {booking.reference} reversed")

    for usage in PromoCodeUsage.objects.filter(booking=booking).select_related("promo"):
        PromoCode.objects.filter(pk=usage.promo_id, used_count__gt=0).update(used_count=F("used_count") - 1)
        usage.delete()

    if booking.user_id is not None:
        cashback.reverse_for_booking(booking.user_id, booking)


def _settle_reversal(booking: Booking, reason: str) -> None:
    _reverse_discounts(booking)
    enqueue(
        "refund_payment",
        {
            "booking_reference": booking.reference,
            "payment_reference": booking.payment_reference,
            "amount": str(booking.total_price),
            "reason": reason,
        },
    )


def cancel(reference: str, reason: str = "") -> Booking:
    """
    Cancel a live booking and release its slot.

    A paid booking gets its discount effects reversed and a refund job;
    cancelling an already cancelled booking changes nothing.
    """
    with DjangoUnitOfWork() as uow:
        booking = _lock(reference)
        if booking.status == S.CANCELLED:
            return booking

        was_paid = booking.status == S.PAID
        _move(booking, S.CANCELLED)
        if was_paid:
            _settle_reversal(booking, reason or "cancelled")

        booking.cancelled_at = timezone.now()
        booking.cancellation_reason = reason[:255]
        booking.expires_at = None
        booking.save(update_fields=["status", "cancelled_at", "cancellation_reason", "expires_at", "updated_at"])
        reservations.release(booking)
        uow.add_event(
            BookingCancelled(aggregate_id=booking.reference, reference=booking.reference, reason=reason, was_paid=was_paid)
        )
    return booking


def refund(reference: str, reason: str = "") -> Booking:
    """Refund a paid booking in full: ``paid -> refunded``."""
    with DjangoUnitOfWork() as uow:
        booking = _lock(reference)
        if booking.status == S.REFUNDED:
            return booking
        _move(booking, S.REFUNDED)
        _settle_reversal(booking, reason or "refunded")
        booking.cancellation_reason = reason[:255]
        booking.save(update_fields=["status", "cancellation_reason", "updated_at"])
        reservations.release(booking)
        uow.add_event(
            BookingCancelled(aggregate_id=booking.reference, reference=booking.reference, reason=reason, was_paid=True)
        )
    return booking


def expire_locked(booking: Booking, uow: DjangoUnitOfWork, now=None) -> bool:
    """Expire an already locked booking inside the caller's unit of work."""
    if not booking.is_overdue(now):
        return False
    _move(booking, S.EXPIRED)
    booking.cancelled_at = now or timezone.now()
    booking.cancellation_reason = "Payment window elapsed"
    booking.save(update_fields=["status", "cancelled_at", "cancellation_reason", "updated_at"])
    reservations.release(booking)
    uow.add_event(BookingExpired(aggregate_id=booking.reference, reference=booking.reference))
    return True


def expire(booking: Union[Booking, str], now=None) -> bool:
    """Expire a pending booking past its TTL. Returns False when there was nothing to do."""
    with DjangoUnitOfWork() as uow:
        locked = _lock(booking)
        return expire_locked(locked, uow, now=now)


def sweep_abandoned(now=None) -> int:
    now = now or timezone.now()
    overdue = Booking.objects.filter(status=S.PENDING, expires_at__lte=now).values_list("reference", flat=True)
    expired = 0
    for reference in list(overdue):
        if expire(reference, now=now):
            expired += 1
    if expired:
        logger.info(f"Expired {expired} abandoned bookings")
    return expired


def complete(booking: Union[Booking, str]) -> Booking:
    with DjangoUnitOfWork():
        booking = _lock(booking)
        _move(booking, S.COMPLETED)
        booking.save(update_fields=["status", "updated_at"])
        reservations.release(booking)
    return booking


def complete_past(today=None) -> int:
    """Complete paid bookings whose date has passed."""
    today = today or timezone.localdate()
    references = Booking.objects.filter(status=S.PAID, booking_date__lt=today).values_list("reference", flat=True)
    completed = 0
    for reference in list(references):
        try:
            complete(reference)
        except InvalidTransitionError as e:
            logger.warning(f"Skipping completion of {reference}: {e}")
            continue
        completed += 1
    if completed:
        logger.info(f"Completed {completed} bookings")
    return completed


def payable(booking: Booking, now=None) -> Optional[str]:
    """Return why the booking cannot take a payment right now, or None."""
    if booking.status not in (S.PENDING, S.CONFIRMED):
        return f"Booking is {booking.status}"
    if booking.is_overdue(now):
        return "Payment window elapsed"
    return None
