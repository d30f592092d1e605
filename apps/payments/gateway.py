"""Payment settlement gateway.

Opens payment intents with a provider and reconciles provider events
against bookings. A settled event is claimed in ``ProcessedEvent``
within the same transaction as the booking's paid transition, so a
webhook delivered any number of times settles the booking once.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog
from django.conf import settings  # type: ignore
from django.db import IntegrityError, transaction  # type: ignore

from apps.bookings import state_machine
from apps.bookings.models import Booking
from apps.jobs.runner import enqueue
from shared.domain.errors import (
    ConflictError,
    LedgerIntegrityError,
    ProviderPermanentError,
    ProviderTransientError,
    SettlementError,
    ValidationError,
)
from shared.domain.value_objects import quantize

from .models import PaymentIntent, ProcessedEvent, Provider, WebhookReceipt
from .providers import SettlementEvent, VerifiedEvent, get_provider
from .providers.base import OUTCOME_FAILED, OUTCOME_PENDING, parse_json

logger = structlog.get_logger(__name__)

PAID = state_machine.PAID
ALREADY_PAID = state_machine.ALREADY_PAID
DUPLICATE_PAYMENT = state_machine.DUPLICATE_PAYMENT
DUPLICATE = "duplicate"
FAILED = "failed"
PENDING = "pending"
IGNORED = "ignored"
QUEUED = "queued"
MANUAL_REVIEW = "manual_review"

OPEN_INTENT_STATUSES = (PaymentIntent.Status.PENDING, PaymentIntent.Status.PROCESSING)


@dataclass(frozen=True)
class ReconcileResult:
    status: str
    booking_reference: str = ""
    detail: str = ""


@dataclass(frozen=True)
class WebhookResult:
    http_status: int
    body: dict


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


def create_intent(booking: Booking, provider_name: str, amount: Optional[Decimal] = None) -> PaymentIntent:
    """
    Open a checkout with ``provider_name`` for the booking total.

    Transient provider failures leave the intent pending and propagate
    (the client may retry); permanent ones mark it failed.
    """
    provider = get_provider(provider_name)
    reason = state_machine.payable(booking)
    if reason:
        raise ConflictError(reason, code="BOOKING_NOT_PAYABLE")

    amount = quantize(booking.total_price if amount is None else amount)
    intent = PaymentIntent.objects.create(
        provider=provider.name,
        booking=booking,
        booking_reference=booking.reference,
        amount=amount,
        currency=booking.currency,
        idempotency_key=f"{booking.reference}-{uuid.uuid4().hex}",
    )

    if amount <= 0:
        # fully covered by discounts, nothing to collect
        state_machine.mark_paid(booking.reference, f"FREE-{intent.pk.hex[:12]}", intent)
        intent.refresh_from_db()
        return intent

    try:
        checkout = provider.create_checkout(intent)
    except ProviderTransientError:
        logger.warning("payment.checkout_unavailable", provider=provider.name, booking=booking.reference)
        raise
    except ProviderPermanentError as exc:
        intent.mark_failed(exc.code)
        logger.error("payment.checkout_rejected", provider=provider.name, booking=booking.reference, code=exc.code)
        raise

    intent.provider_reference = str(checkout.pop("provider_reference", "") or "")
    intent.checkout = checkout
    if "provider_amount" in checkout:
        intent.metadata = {
            **intent.metadata,
            "provider_amount": str(checkout["provider_amount"]),
            "provider_currency": checkout.get("provider_currency", intent.currency),
        }
    intent.save(update_fields=["provider_reference", "checkout", "metadata", "updated_at"])
    logger.info("payment.intent_created", intent=str(intent.pk), provider=provider.name, booking=booking.reference)
    return intent


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def _find_intent(event: SettlementEvent, booking: Booking, intent_id=None) -> Optional[PaymentIntent]:
    qs = PaymentIntent.objects.select_for_update().filter(booking=booking, provider=event.provider)
    if intent_id:
        return qs.filter(pk=intent_id).first()
    if event.provider_reference:
        intent = qs.filter(provider_reference=event.provider_reference).first()
        if intent is not None:
            return intent
    return qs.filter(status__in=OPEN_INTENT_STATUSES).order_by("-created_at").first()


def _expected_amount(event: SettlementEvent, booking: Booking, intent: Optional[PaymentIntent]) -> Optional[Decimal]:
    if intent is not None:
        if event.currency == intent.provider_currency:
            return intent.provider_amount
        if event.currency == intent.currency:
            return intent.amount
        return None
    if event.currency == booking.currency:
        return booking.total_price
    return None


def _enqueue_refund(event: SettlementEvent, booking: Booking, intent: Optional[PaymentIntent], reason: str) -> None:
    enqueue(
        "refund_payment",
        {
            "booking_reference": booking.reference,
            "provider": event.provider,
            "payment_reference": event.provider_reference,
            "intent_id": str(intent.pk) if intent else None,
            "amount": str(intent.amount if intent else booking.total_price),
            "reason": reason,
        },
    )


def _apply(event: SettlementEvent, booking: Booking, intent_id=None) -> ReconcileResult:
    ref = booking.reference
    intent = _find_intent(event, booking, intent_id)

    if event.outcome == OUTCOME_FAILED:
        if intent is not None and intent.status in OPEN_INTENT_STATUSES:
            intent.mark_failed(f"{event.provider} reported failure")
        # booking stays pending so another provider can be tried
        return ReconcileResult(FAILED, ref)

    expected = _expected_amount(event, booking, intent)
    if expected is not None and event.amount is not None and event.amount < expected:
        detail = f"Underpaid: {event.amount} {event.currency} of {expected}"
        if intent is not None:
            intent.metadata = {**intent.metadata, "received_amount": str(event.amount)}
            intent.save(update_fields=["metadata", "updated_at"])
            intent.mark_failed("UNDERPAID")
        _enqueue_refund(event, booking, intent, "underpaid")
        return ReconcileResult(MANUAL_REVIEW, ref, detail)

    if booking.is_terminal:
        if intent is not None and intent.status in OPEN_INTENT_STATUSES:
            intent.provider_reference = event.provider_reference
            intent.save(update_fields=["provider_reference", "updated_at"])
            intent.mark_cancelled(f"booking {booking.status}")
        _enqueue_refund(event, booking, intent, f"payment for {booking.status} booking")
        return ReconcileResult(MANUAL_REVIEW, ref, f"Payment received for {booking.status} booking")

    if intent is not None and event.payer:
        intent.metadata = {**intent.metadata, "payer": event.payer}
        intent.save(update_fields=["metadata", "updated_at"])

    outcome = state_machine.mark_paid(ref, event.provider_reference, intent)
    if outcome.outcome == DUPLICATE_PAYMENT:
        if intent is not None and intent.status in OPEN_INTENT_STATUSES:
            intent.provider_reference = event.provider_reference
            intent.save(update_fields=["provider_reference", "updated_at"])
            intent.mark_cancelled("duplicate payment")
        _enqueue_refund(event, booking, intent, "duplicate payment")
    return ReconcileResult(outcome.outcome, ref)


def _claim(event: SettlementEvent, outcome: str) -> Optional[ProcessedEvent]:
    """
    Insert the idempotency row; None when the event was already processed.

    A row left by a failed attempt does not close the payment id: a later
    non-failed event for it takes the row over.
    """
    key = {"provider": event.provider, "provider_reference": event.provider_reference}
    try:
        with transaction.atomic():
            return ProcessedEvent.objects.create(
                booking_reference=event.booking_reference,
                outcome=outcome,
                **key,
            )
    except IntegrityError:
        pass

    if outcome == OUTCOME_FAILED:
        return None
    taken = ProcessedEvent.objects.filter(outcome=FAILED, **key).update(outcome=outcome)
    if not taken:
        return None
    return ProcessedEvent.objects.get(**key)


def _settlement_failed(event: SettlementEvent, exc: SettlementError, intent_id=None) -> ReconcileResult:
    """The paid transition was rolled back; record that and send the money back."""
    with transaction.atomic():
        if _claim(event, MANUAL_REVIEW) is None:
            return ReconcileResult(DUPLICATE, event.booking_reference)
        booking = Booking.objects.get(reference=event.booking_reference)
        intent = _find_intent(event, booking, intent_id)
        if intent is not None and intent.status in OPEN_INTENT_STATUSES:
            intent.mark_failed(exc.code)
        _enqueue_refund(event, booking, intent, f"settlement failed: {exc.code}")
    return ReconcileResult(MANUAL_REVIEW, event.booking_reference, exc.code)


def reconcile(event: SettlementEvent, *, intent_id=None) -> ReconcileResult:
    log = logger.bind(provider=event.provider, reference=event.provider_reference, booking=event.booking_reference)

    if event.outcome == OUTCOME_PENDING:
        PaymentIntent.objects.filter(
            provider=event.provider,
            booking_reference=event.booking_reference,
            status=PaymentIntent.Status.PENDING,
        ).update(status=PaymentIntent.Status.PROCESSING)
        log.info("payment.pending")
        return ReconcileResult(PENDING, event.booking_reference)

    if not event.provider_reference or not event.booking_reference:
        log.warning("payment.unidentified_event")
        return ReconcileResult(MANUAL_REVIEW, event.booking_reference, "Event has no booking or payment reference")

    try:
        with transaction.atomic():
            claim = _claim(event, event.outcome)
            if claim is None:
                log.info("payment.duplicate_event")
                return ReconcileResult(DUPLICATE, event.booking_reference)

            booking = Booking.objects.select_for_update().filter(reference=event.booking_reference).first()
            if booking is None:
                result = ReconcileResult(MANUAL_REVIEW, event.booking_reference, "Unknown booking")
            else:
                result = _apply(event, booking, intent_id)
            claim.outcome = result.status
            claim.save(update_fields=["outcome"])
    except (LedgerIntegrityError, ConflictError) as exc:
        log.error("payment.settlement_failed", code=exc.code, detail=exc.detail)
        return _settlement_failed(event, exc, intent_id)

    log.info("payment.reconciled", status=result.status, detail=result.detail)
    return result


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


def process_receipt(receipt: WebhookReceipt, verified: Optional[VerifiedEvent] = None) -> ReconcileResult:
    """Normalize and reconcile a stored webhook. Receipts already resolved are left alone."""
    if receipt.status != WebhookReceipt.Status.RECEIVED:
        return ReconcileResult(receipt.status, receipt.booking_reference)

    provider = get_provider(receipt.provider)
    try:
        if verified is None:
            verified = VerifiedEvent(receipt.provider, parse_json(receipt.body), receipt.body)
        event = provider.normalize(verified)
    except ValidationError as exc:
        receipt.resolve(WebhookReceipt.Status.MANUAL_REVIEW, error=exc.detail)
        logger.warning("webhook.malformed", provider=receipt.provider, receipt=receipt.pk, detail=exc.detail)
        return ReconcileResult(MANUAL_REVIEW, detail=exc.detail)

    if event is None:
        receipt.resolve(WebhookReceipt.Status.IGNORED)
        return ReconcileResult(IGNORED)

    result = reconcile(event)
    receipt.resolve(
        WebhookReceipt.Status.MANUAL_REVIEW if result.status == MANUAL_REVIEW else WebhookReceipt.Status.PROCESSED,
        error=result.detail if result.status == MANUAL_REVIEW else "",
        booking_reference=event.booking_reference,
        provider_reference=event.provider_reference,
    )
    return result


def handle_webhook(provider_name: str, request) -> WebhookResult:
    """
    Verify, store and settle one provider notification.

    Verification failures raise WebhookVerificationError (403 upstream);
    every verified notification is acknowledged with 200.
    """
    provider = get_provider(provider_name)
    verified = provider.verify(request)

    try:
        if provider.preflight(verified):
            return WebhookResult(200, {"status": "answered"})
    except (ProviderTransientError, ProviderPermanentError) as exc:
        logger.error("webhook.preflight_failed", provider=provider.name, code=exc.code)
        return WebhookResult(200, {"status": "error"})

    receipt = WebhookReceipt.objects.create(
        provider=provider.name,
        body=verified.raw_body,
        remote_addr=request.META.get("REMOTE_ADDR") or None,
    )

    if settings.PAYMENT_WEBHOOK_MODE == "queue":
        enqueue("process_payment_webhook", {"receipt_id": receipt.pk})
        return WebhookResult(200, {"status": QUEUED})

    try:
        result = process_receipt(receipt, verified)
    except Exception:
        logger.exception("webhook.processing_failed", provider=provider.name, receipt=receipt.pk)
        enqueue("process_payment_webhook", {"receipt_id": receipt.pk})
        return WebhookResult(200, {"status": QUEUED})

    return WebhookResult(200, {"status": result.status})


def confirm_promptpay(intent_id, transaction_reference: str = "", staff_user_id: Optional[int] = None) -> ReconcileResult:
    """Staff confirmation of a PromptPay transfer seen on the bank statement."""
    intent = PaymentIntent.objects.filter(pk=intent_id, provider=Provider.PROMPTPAY).first()
    if intent is None:
        raise ValidationError("PromptPay payment not found", code="INTENT_NOT_FOUND")
    if intent.status == PaymentIntent.Status.COMPLETED:
        raise ConflictError("Payment already confirmed", code="ALREADY_CONFIRMED")

    event = SettlementEvent(
        provider=Provider.PROMPTPAY.value,
        booking_reference=intent.booking_reference,
        provider_reference=transaction_reference or f"manual-{intent.pk.hex[:12]}",
        outcome=state_machine.PAID,
        amount=intent.amount,
        currency=intent.currency,
        payer={"confirmed_by": staff_user_id},
    )
    logger.info("payment.manual_confirmation", intent=str(intent.pk), staff=staff_user_id)
    return reconcile(event, intent_id=intent.pk)
