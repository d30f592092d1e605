"""
Job handlers, registered by job type.

Handlers receive the job's ``data`` dict. Raising retries the job with
backoff; ``ValidationError`` and ``ProviderPermanentError`` dead-letter
it at once.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Callable

import structlog

from shared.domain.errors import ProviderPermanentError, ValidationError

from .runner import UnknownJobTypeError

logger = structlog.get_logger(__name__)

Handler = Callable[[dict], None]

HANDLERS: dict[str, Handler] = {}

MANUAL_REFUND_REQUIRED = "MANUAL_REFUND_REQUIRED"


def register(job_type: str) -> Callable[[Handler], Handler]:
    def decorator(func: Handler) -> Handler:
        HANDLERS[job_type] = func
        return func

    return decorator


def get_handler(job_type: str) -> Handler:
    try:
        return HANDLERS[job_type]
    except KeyError:
        raise UnknownJobTypeError(f"No handler for job type {job_type!r}") from None


def _booking(data: dict):
    from apps.bookings.models import Booking

    reference = data.get("booking_reference")
    booking = Booking.objects.filter(reference=reference).first()
    if booking is None:
        raise ValidationError(f"Booking {reference} not found", code="BOOKING_NOT_FOUND")
    return booking


@register("send_email")
def send_email(data: dict) -> None:
    from apps.notifications.services import send_booking_email

    booking = _booking(data)
    sent = send_booking_email(booking, data.get("template", "booking_paid"), data.get("to"))
    logger.info("job.send_email", booking=booking.reference, sent=sent)


@register("send_telegram_message")
def send_telegram_message(data: dict) -> None:
    from apps.notifications.services import send_booking_telegram, send_telegram_message as send

    if "text" in data:
        send(data["chat_id"], data["text"])
        return
    booking = _booking(data)
    sent = send_booking_telegram(booking, data.get("template", "booking_paid"), data.get("chat_id"))
    logger.info("job.send_telegram_message", booking=booking.reference, sent=sent)


@register("process_payment_webhook")
def process_payment_webhook(data: dict) -> None:
    from apps.payments.gateway import process_receipt
    from apps.payments.models import WebhookReceipt

    receipt = WebhookReceipt.objects.filter(pk=data.get("receipt_id")).first()
    if receipt is None:
        raise ValidationError(f"Webhook receipt {data.get('receipt_id')} not found", code="RECEIPT_NOT_FOUND")
    result = process_receipt(receipt)
    logger.info("job.process_payment_webhook", receipt=receipt.pk, status=result.status)


@register("generate_invoice")
def generate_invoice(data: dict) -> None:
    from apps.bookings.invoices import generate_invoice as render

    booking = _booking(data)
    path = render(booking)
    logger.info("job.generate_invoice", booking=booking.reference, path=path)


@register("update_analytics")
def update_analytics(data: dict) -> None:
    from apps.analytics.services import increment

    try:
        day = date.fromisoformat(data["day"])
        amount = Decimal(str(data.get("amount", "0")))
    except (KeyError, ValueError, ArithmeticError) as exc:
        raise ValidationError(f"Bad analytics payload: {exc}", code="MALFORMED_JOB") from None
    increment(data.get("metric", "unknown"), day, amount)


@register("refund_payment")
def refund_payment(data: dict) -> None:
    """
    Refund a settled payment through its provider.

    Providers without a refund API raise MANUAL_REFUND_REQUIRED; those
    refunds are handed to operators instead of being dead-lettered.
    """
    from apps.notifications.services import notify_operators
    from apps.payments.models import PaymentIntent
    from apps.payments.providers import get_provider

    reference = data.get("booking_reference", "")
    amount = Decimal(str(data.get("amount") or "0"))
    reason = data.get("reason", "")
    log = logger.bind(booking=reference, amount=str(amount), reason=reason)

    intents = PaymentIntent.objects.filter(booking_reference=reference)
    intent = None
    if data.get("intent_id"):
        intent = intents.filter(pk=data["intent_id"]).first()
    if intent is None and data.get("payment_reference"):
        intent = intents.filter(provider_reference=data["payment_reference"]).first()
    if intent is None:
        intent = intents.filter(status=PaymentIntent.Status.COMPLETED).first()

    if intent is None:
        log.warning("refund.no_payment_on_record")
        notify_operators(f"Refund of {amount} for {reference} needs manual handling: no payment on record ({reason})")
        return
    if amount <= 0:
        log.info("refund.nothing_to_refund")
        return
    if (intent.metadata or {}).get("refund", {}).get("status") in ("done", "manual"):
        log.info("refund.already_handled", intent=str(intent.pk))
        return

    provider = get_provider(intent.provider)
    try:
        result = provider.refund(intent, amount)
    except ProviderPermanentError as exc:
        if exc.code != MANUAL_REFUND_REQUIRED:
            raise
        notify_operators(
            f"Manual refund required: {amount} {intent.currency} for {reference} "
            f"via {intent.provider} (payment {intent.provider_reference}). Reason: {reason}"
        )
        result = {"status": "manual", "detail": exc.detail}
    else:
        result = {**result, "provider_status": result.get("status", ""), "status": "done"}

    intent.metadata = {**(intent.metadata or {}), "refund": {**result, "amount": str(amount), "reason": reason}}
    intent.save(update_fields=["metadata", "updated_at"])
    log.info("refund.handled", intent=str(intent.pk), status=result["status"])
