"""Inbound provider notifications end to end through the webhook views."""

from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from apps.bookings import state_machine
from apps.bookings.models import Booking
from apps.bookings.reservations import reserve
from apps.discounts import giftcards
from apps.discounts.models import CashbackLedgerEntry, GiftCard
from apps.jobs import runner
from apps.jobs.models import Job
from apps.payments import gateway
from apps.payments.models import PaymentIntent, ProcessedEvent, WebhookReceipt
from apps.payments.providers import card, crypto
from apps.pricing.composer import compose


def _post_card(client, payload: dict, secret: str = "card-test-secret"):
    body = json.dumps(payload).encode()
    return client.post(
        reverse("webhook-card"),
        data=body,
        content_type="application/json",
        HTTP_X_CARD_SIGNATURE=card.sign(body, secret),
    )


def _card_paid(booking, payment_id="pay_1", amount=None) -> dict:
    return {
        "payment_id": payment_id,
        "reference": booking.reference,
        "status": "SUCCESS",
        "amount": str(booking.total_price if amount is None else amount),
        "currency": "THB",
    }


def _refund_jobs():
    return Job.objects.filter(payload__type="refund_payment")


@pytest.fixture
def gift_card_booking(user, order_for):
    card_ = giftcards.activate(giftcards.issue(Decimal("500")).pk)
    order = order_for(user_id=user.id, gift_card_code=card_.code)
    return reserve(order, compose(order)).booking


@pytest.mark.django_db
def test_card_webhook_replayed_settles_once(client, gift_card_booking):
    statuses = [_post_card(client, _card_paid(gift_card_booking)).json()["status"] for _ in range(5)]

    assert statuses == ["paid"] + ["duplicate"] * 4
    gift_card_booking.refresh_from_db()
    assert gift_card_booking.status == Booking.Status.PAID
    assert gift_card_booking.payment_reference == "pay_1"
    assert GiftCard.objects.get().remaining_balance == Decimal("0.00")
    assert CashbackLedgerEntry.objects.filter(type=CashbackLedgerEntry.Type.EARNED).count() == 1
    assert ProcessedEvent.objects.count() == 1
    assert WebhookReceipt.objects.count() == 5
    assert not _refund_jobs().exists()


@pytest.mark.django_db
def test_card_webhook_bad_signature_is_rejected(client, make_booking):
    booking = make_booking()

    response = _post_card(client, _card_paid(booking), secret="wrong")

    assert response.status_code == 403
    assert response.json()["status"] == "error"
    assert not WebhookReceipt.objects.exists()
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING


@pytest.mark.django_db
def test_card_webhook_completes_open_intent(client, make_booking):
    booking = make_booking()
    intent = PaymentIntent.objects.create(
        provider="card",
        booking=booking,
        booking_reference=booking.reference,
        amount=booking.total_price,
        idempotency_key="intent-1",
        provider_reference="pay_9",
    )

    _post_card(client, _card_paid(booking, payment_id="pay_9"))

    intent.refresh_from_db()
    assert intent.status == PaymentIntent.Status.COMPLETED
    assert intent.metadata["payer"] == {"email": ""}


@pytest.mark.django_db
def test_card_failure_keeps_booking_pending(client, make_booking):
    booking = make_booking()
    payload = {**_card_paid(booking), "status": "DECLINED"}

    assert _post_card(client, payload).json()["status"] == "failed"

    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING


@pytest.mark.django_db
def test_retried_payment_settles_after_decline(client, make_booking):
    booking = make_booking()
    declined = {**_card_paid(booking), "status": "DECLINED"}

    assert _post_card(client, declined).json()["status"] == "failed"
    assert _post_card(client, declined).json()["status"] == "duplicate"
    assert _post_card(client, _card_paid(booking)).json()["status"] == "paid"
    assert _post_card(client, _card_paid(booking)).json()["status"] == "duplicate"

    booking.refresh_from_db()
    assert booking.status == Booking.Status.PAID
    assert booking.payment_reference == "pay_1"
    assert ProcessedEvent.objects.get().outcome == "paid"


@pytest.mark.django_db
def test_underpayment_goes_to_manual_review(client, make_booking):
    booking = make_booking()

    response = _post_card(client, _card_paid(booking, amount="100.00"))

    assert response.json()["status"] == "manual_review"
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING
    assert WebhookReceipt.objects.get().status == WebhookReceipt.Status.MANUAL_REVIEW
    assert _refund_jobs().get().data["reason"] == "underpaid"


@pytest.mark.django_db
def test_payment_for_cancelled_booking_is_refunded(client, make_booking):
    booking = make_booking()
    state_machine.cancel(booking.reference, "changed plans")

    response = _post_card(client, _card_paid(booking))

    assert response.json()["status"] == "manual_review"
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CANCELLED
    job = _refund_jobs().get()
    assert job.data["payment_reference"] == "pay_1"
    assert job.data["amount"] == str(booking.total_price)


@pytest.mark.django_db
def test_second_payment_is_refunded(client, make_booking):
    booking = make_booking()
    _post_card(client, _card_paid(booking, payment_id="pay_1"))

    response = _post_card(client, _card_paid(booking, payment_id="pay_2"))

    assert response.json()["status"] == "duplicate_payment"
    job = _refund_jobs().get()
    assert job.data["payment_reference"] == "pay_2"
    assert job.data["reason"] == "duplicate payment"


@pytest.mark.django_db
def test_unknown_booking_goes_to_manual_review(client):
    response = _post_card(
        client,
        {"payment_id": "pay_x", "reference": "PY-000000", "status": "SUCCESS", "amount": "10", "currency": "THB"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "manual_review"


@pytest.mark.django_db
def test_malformed_event_is_kept_for_review(client):
    response = _post_card(client, {"status": "SUCCESS"})

    assert response.json()["status"] == "manual_review"
    receipt = WebhookReceipt.objects.get()
    assert receipt.status == WebhookReceipt.Status.MANUAL_REVIEW
    assert "payment id" in receipt.error


@pytest.mark.django_db
def test_crypto_ipn(client, make_booking):
    booking = make_booking()
    payload = {
        "payment_id": 5077125051,
        "order_id": booking.reference,
        "payment_status": "finished",
        "price_amount": 10000,
        "price_currency": "thb",
        "pay_currency": "usdttrc20",
    }
    body = json.dumps(payload)
    url = reverse("webhook-crypto")

    forged = client.post(url, data=body, content_type="application/json", HTTP_X_CRYPTO_SIGNATURE="00")
    signed = client.post(
        url,
        data=body,
        content_type="application/json",
        HTTP_X_CRYPTO_SIGNATURE=crypto.sign(payload, "crypto-test-secret"),
    )

    assert forged.status_code == 403
    assert signed.json()["status"] == "paid"
    booking.refresh_from_db()
    assert booking.payment_reference == "5077125051"


@pytest.mark.django_db
def test_crypto_partial_payment_is_pending(client, make_booking):
    booking = make_booking()
    payload = {"payment_id": 1, "order_id": booking.reference, "payment_status": "partially_paid"}

    response = client.post(
        reverse("webhook-crypto"),
        data=json.dumps(payload),
        content_type="application/json",
        HTTP_X_CRYPTO_SIGNATURE=crypto.sign(payload, "crypto-test-secret"),
    )

    assert response.json()["status"] == "pending"
    assert not ProcessedEvent.objects.exists()


@pytest.mark.django_db
def test_telegram_successful_payment(client, make_booking):
    booking = make_booking()
    update = {
        "update_id": 1,
        "message": {
            "from": {"id": 4242},
            "successful_payment": {
                "currency": "XTR",
                "total_amount": 21740,
                "invoice_payload": json.dumps({"booking_reference": booking.reference}),
                "telegram_payment_charge_id": "stxAbc",
            },
        },
    }
    url = reverse("webhook-telegram-stars")

    wrong = client.post(
        url, data=json.dumps(update), content_type="application/json", HTTP_X_TELEGRAM_BOT_API_SECRET_TOKEN="nope"
    )
    right = client.post(
        url,
        data=json.dumps(update),
        content_type="application/json",
        HTTP_X_TELEGRAM_BOT_API_SECRET_TOKEN="telegram-test-secret",
    )

    assert wrong.status_code == 403
    assert right.json()["status"] == "paid"


@pytest.mark.django_db
def test_telegram_pre_checkout_without_bot_token(client, make_booking):
    booking = make_booking()
    update = {
        "update_id": 2,
        "pre_checkout_query": {"id": "q1", "invoice_payload": json.dumps({"booking_reference": booking.reference})},
    }

    response = client.post(
        reverse("webhook-telegram-stars"),
        data=json.dumps(update),
        content_type="application/json",
        HTTP_X_TELEGRAM_BOT_API_SECRET_TOKEN="telegram-test-secret",
    )

    assert response.status_code == 200
    assert response.json() == {"status": "error"}
    assert not WebhookReceipt.objects.exists()


@pytest.mark.django_db
def test_telegram_unrelated_update_is_ignored(client):
    response = client.post(
        reverse("webhook-telegram-stars"),
        data=json.dumps({"update_id": 3, "message": {"text": "hi"}}),
        content_type="application/json",
        HTTP_X_TELEGRAM_BOT_API_SECRET_TOKEN="telegram-test-secret",
    )

    assert response.json()["status"] == "ignored"
    assert WebhookReceipt.objects.get().status == WebhookReceipt.Status.IGNORED


@pytest.mark.django_db
def test_promptpay_bank_notification(client, make_booking):
    booking = make_booking()
    payload = {"transaction_id": "TX-1", "reference": booking.reference, "status": "success", "amount": "10000.00"}
    url = reverse("webhook-promptpay")

    wrong = client.post(url, data=json.dumps(payload), content_type="application/json", HTTP_X_PROMPTPAY_SECRET="x")
    right = client.post(
        url, data=json.dumps(payload), content_type="application/json", HTTP_X_PROMPTPAY_SECRET="promptpay-test-secret"
    )

    assert wrong.status_code == 403
    assert right.json()["status"] == "paid"


@pytest.mark.django_db
@pytest.mark.parametrize("remote_addr, expected", [("185.71.76.5", 200), ("203.0.113.9", 403)])
def test_regional_trusts_only_known_networks(client, make_booking, remote_addr, expected):
    booking = make_booking()
    payload = {
        "event": "payment.succeeded",
        "object": {
            "id": "2c9f-regional",
            "amount": {"value": "26000.00", "currency": "RUB"},
            "metadata": {"booking_reference": booking.reference},
            "payment_method": {"type": "bank_card"},
        },
    }

    response = client.post(
        reverse("webhook-regional"), data=json.dumps(payload), content_type="application/json", REMOTE_ADDR=remote_addr
    )

    assert response.status_code == expected
    booking.refresh_from_db()
    assert (booking.status == Booking.Status.PAID) is (expected == 200)


@pytest.mark.django_db
def test_webhook_requires_post(client):
    assert client.get(reverse("webhook-card")).status_code == 405


@pytest.mark.django_db
def test_queue_mode_defers_settlement(client, make_booking, settings):
    settings.PAYMENT_WEBHOOK_MODE = "queue"
    booking = make_booking()

    response = _post_card(client, _card_paid(booking))

    assert response.json()["status"] == "queued"
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING

    counts = runner.run_once(limit=1)

    assert counts["processed"] == 1
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PAID
    assert WebhookReceipt.objects.get().status == WebhookReceipt.Status.PROCESSED


@pytest.mark.django_db
def test_sync_failure_falls_back_to_queue(client, make_booking):
    booking = make_booking()
    with patch.object(gateway, "process_receipt", side_effect=RuntimeError("db hiccup")):
        response = _post_card(client, _card_paid(booking))

    assert response.status_code == 200
    assert response.json()["status"] == "queued"
    assert Job.objects.filter(payload__type="process_payment_webhook").count() == 1


@pytest.mark.django_db
def test_staff_confirms_promptpay_transfer(make_booking, staff, user):
    booking = make_booking()
    intent = gateway.create_intent(booking, "promptpay")
    url = reverse("promptpay-confirm", args=[intent.pk])
    api = APIClient()

    api.force_authenticate(user)
    assert api.post(url, {"transaction_reference": "BANK-77"}, format="json").status_code == 403

    api.force_authenticate(staff)
    response = api.post(url, {"transaction_reference": "BANK-77"}, format="json")

    assert response.status_code == 200
    assert response.data["status"] == "paid"
    intent.refresh_from_db()
    assert intent.status == PaymentIntent.Status.COMPLETED
    assert intent.provider_reference == "BANK-77"

    again = api.post(url, {}, format="json")
    assert again.status_code == 409
    assert again.data["error"]["code"] == "ALREADY_CONFIRMED"
