"""Side-effect job handlers."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest
from django.core import mail
from django.core.files.storage import default_storage

from apps.analytics.models import DailyCounter
from apps.bookings import state_machine
from apps.bookings.invoices import invoice_path
from apps.jobs import handlers, runner
from apps.jobs.models import DeadLetterJob
from apps.payments.models import PaymentIntent
from shared.domain.errors import ValidationError

pytestmark = pytest.mark.django_db


@pytest.fixture
def paid_booking(make_booking, user):
    booking = make_booking(user_id=user.id)
    return state_machine.mark_paid(booking.reference, "pay_1").booking


def _completed_intent(booking, provider: str, **extra) -> PaymentIntent:
    return PaymentIntent.objects.create(
        provider=provider,
        booking=booking,
        booking_reference=booking.reference,
        amount=booking.total_price,
        idempotency_key=f"{booking.reference}-{provider}",
        provider_reference="pay_1",
        status=PaymentIntent.Status.COMPLETED,
        **extra,
    )


def _refund(booking, **extra) -> dict:
    return {"booking_reference": booking.reference, "amount": str(booking.total_price), "reason": "cancelled", **extra}


def test_send_email(paid_booking):
    handlers.send_email({"booking_reference": paid_booking.reference, "template": "booking_paid"})

    assert len(mail.outbox) == 1
    message = mail.outbox[0]
    assert message.to == ["guest@example.com"]
    assert paid_booking.reference in message.subject


def test_send_email_for_unknown_booking():
    with pytest.raises(ValidationError) as exc_info:
        handlers.send_email({"booking_reference": "PY-999999"})

    assert exc_info.value.code == "BOOKING_NOT_FOUND"


def test_send_telegram_message(paid_booking, settings):
    settings.TELEGRAM_BOT_TOKEN = "123:abc"
    settings.TELEGRAM_ADMIN_CHAT_ID = "-100500"

    with patch("apps.notifications.services.requests.post") as post:
        handlers.send_telegram_message({"booking_reference": paid_booking.reference, "template": "booking_paid"})

    url = post.call_args.args[0]
    payload = post.call_args.kwargs["json"]
    assert url == "https://api.telegram.org/bot123:abc/sendMessage"
    assert payload["chat_id"] == "-100500"
    assert paid_booking.reference in payload["text"]


def test_telegram_http_error_retries_the_job(paid_booking, settings):
    settings.TELEGRAM_BOT_TOKEN = "123:abc"
    settings.TELEGRAM_ADMIN_CHAT_ID = "-100500"
    response = Mock()
    response.raise_for_status.side_effect = RuntimeError("502 Bad Gateway")
    runner.enqueue("send_telegram_message", {"chat_id": "-100500", "text": "hello"}, queue="ops")

    with patch("apps.notifications.services.requests.post", return_value=response):
        counts = runner.run_once("ops")

    assert counts["failed"] == 1


def test_generate_invoice(paid_booking):
    handlers.generate_invoice({"booking_reference": paid_booking.reference})

    path = invoice_path(paid_booking)
    assert default_storage.exists(path)
    with default_storage.open(path) as invoice:
        assert invoice.read(5) == b"%PDF-"


def test_update_analytics():
    day = date(2026, 10, 17)
    handlers.update_analytics({"metric": "bookings_paid", "day": day.isoformat(), "amount": "6500.00"})
    handlers.update_analytics({"metric": "bookings_paid", "day": day.isoformat(), "amount": "3500.00"})

    counter = DailyCounter.objects.get(day=day, metric="bookings_paid")
    assert counter.count == 2
    assert counter.value == Decimal("10000.00")


def test_malformed_analytics_job_is_dead_lettered():
    runner.enqueue("update_analytics", {"metric": "bookings_paid", "day": "yesterday"})

    assert runner.run_once()["dead"] == 1
    assert "Bad analytics payload" in DeadLetterJob.objects.get().exception


def test_card_refund_goes_through_provider(paid_booking, settings):
    settings.CARD_API_KEY = "sk_test"
    intent = _completed_intent(paid_booking, "card")
    response = Mock(status_code=200)
    response.json.return_value = {"id": "re_1", "status": "succeeded"}

    with patch("apps.payments.providers.base.requests.request", return_value=response) as request:
        handlers.refund_payment(_refund(paid_booking, intent_id=str(intent.pk)))
        handlers.refund_payment(_refund(paid_booking, intent_id=str(intent.pk)))

    assert request.call_count == 1
    assert request.call_args.kwargs["json"]["payment_id"] == "pay_1"
    intent.refresh_from_db()
    refund = intent.metadata["refund"]
    assert refund["status"] == "done"
    assert refund["provider_status"] == "succeeded"
    assert refund["amount"] == str(paid_booking.total_price)


@pytest.mark.parametrize("provider", ["crypto", "promptpay"])
def test_manual_refund_is_handed_to_operators(paid_booking, provider):
    intent = _completed_intent(paid_booking, provider)

    with patch("apps.notifications.services.notify_operators") as notify:
        handlers.refund_payment(_refund(paid_booking, payment_reference="pay_1"))
        handlers.refund_payment(_refund(paid_booking, payment_reference="pay_1"))

    notify.assert_called_once()
    assert paid_booking.reference in notify.call_args.args[0]
    intent.refresh_from_db()
    assert intent.metadata["refund"]["status"] == "manual"


def test_refund_without_payment_on_record(paid_booking):
    with patch("apps.notifications.services.notify_operators") as notify:
        handlers.refund_payment(_refund(paid_booking))

    assert "no payment on record" in notify.call_args.args[0]


def test_provider_rejection_dead_letters_refund(paid_booking, settings):
    settings.CARD_API_KEY = "sk_test"
    _completed_intent(paid_booking, "card")
    response = Mock(status_code=422, text="already refunded")
    runner.enqueue("refund_payment", _refund(paid_booking), queue="refunds")

    with patch("apps.payments.providers.base.requests.request", return_value=response):
        counts = runner.run_once("refunds")

    assert counts["dead"] == 1
    assert "rejected the request (422)" in DeadLetterJob.objects.get().exception


def test_process_payment_webhook_missing_receipt():
    with pytest.raises(ValidationError) as exc_info:
        handlers.process_payment_webhook({"receipt_id": 404})

    assert exc_info.value.code == "RECEIPT_NOT_FOUND"
