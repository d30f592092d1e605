"""Card acquirer adapter (HMAC-SHA256 signed webhooks)."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
import uuid

from django.conf import settings  # type: ignore

from shared.domain.errors import ProviderPermanentError, ValidationError, WebhookVerificationError

from .base import (
    OUTCOME_FAILED,
    OUTCOME_PAID,
    OUTCOME_PENDING,
    PaymentProvider,
    SettlementEvent,
    parse_amount,
    parse_json,
    require,
)

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "SUCCESS": OUTCOME_PAID,
    "SUCCEEDED": OUTCOME_PAID,
    "PAID": OUTCOME_PAID,
    "APPROVED": OUTCOME_PAID,
    "FAILED": OUTCOME_FAILED,
    "DECLINED": OUTCOME_FAILED,
    "CANCELLED": OUTCOME_FAILED,
    "CANCELED": OUTCOME_FAILED,
    "EXPIRED": OUTCOME_FAILED,
    "PENDING": OUTCOME_PENDING,
    "PROCESSING": OUTCOME_PENDING,
}


def sign(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class CardProvider(PaymentProvider):
    name = "card"

    def verify(self, request):
        secret = getattr(settings, "CARD_WEBHOOK_SECRET", "")
        if not secret:
            raise WebhookVerificationError("Card webhook secret is not configured", code="PROVIDER_NOT_CONFIGURED")

        signature = request.headers.get("X-Card-Signature", "")
        if not hmac.compare_digest(signature, sign(request.body, secret)):
            raise WebhookVerificationError("Bad card webhook signature")

        stamp = request.headers.get("X-Card-Timestamp")
        if stamp:
            tolerance = getattr(settings, "CARD_WEBHOOK_TOLERANCE", 300)
            try:
                skew = abs(time.time() - int(stamp))
            except ValueError:
                raise WebhookVerificationError("Bad card webhook timestamp", code="STALE_EVENT") from None
            if skew > tolerance:
                raise WebhookVerificationError("Card webhook timestamp outside tolerance", code="STALE_EVENT")

        return self._verified(request, parse_json(request.body))

    def normalize(self, verified):
        payload = verified.payload
        payment_id = payload.get("payment_id") or payload.get("id")
        reference = payload.get("reference") or payload.get("order_id") or (payload.get("metadata") or {}).get(
            "booking_reference"
        )
        if not payment_id or not reference:
            raise ValidationError("Card event has no payment id or booking reference", code="MALFORMED_EVENT")
        require(payload, "status")

        outcome = STATUS_MAP.get(str(payload["status"]).upper())
        if outcome is None:
            logger.warning(f"Unknown card payment status {payload['status']!r} for {payment_id}")
            return None
        return SettlementEvent(
            provider=self.name,
            booking_reference=str(reference),
            provider_reference=str(payment_id),
            outcome=outcome,
            amount=parse_amount(payload.get("amount")),
            currency=str(payload.get("currency") or "THB").upper(),
            payer={"email": payload.get("email", "")},
        )

    def _headers(self, idempotency_key: str) -> dict:
        return {
            "Authorization": f"Bearer {settings.CARD_API_KEY}",
            "Idempotency-Key": idempotency_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def create_checkout(self, intent):
        if not settings.CARD_API_KEY:
            if settings.DEBUG:
                # local development without acquirer credentials
                payment_id = f"card_{uuid.uuid4().hex[:16]}"
                logger.warning(f"Card API key missing, emulating checkout {payment_id}")
                return {
                    "provider_reference": payment_id,
                    "checkout_url": f"{settings.SITE_URL}/pay/emulated/{payment_id}",
                }
            raise ProviderPermanentError("Card payments are not configured", code="PROVIDER_NOT_CONFIGURED")

        result = self._call(
            "POST",
            f"{settings.CARD_API_BASE_URL}payments",
            json={
                "amount": str(intent.amount),
                "currency": intent.currency,
                "reference": intent.booking_reference,
                "description": f"Booking {intent.booking_reference}",
                "callback_url": f"{settings.SITE_URL}/api/v1/payments/webhooks/card/",
                "return_url": f"{settings.SITE_URL}/bookings/{intent.booking_reference}",
            },
            headers=self._headers(intent.idempotency_key),
        )
        return {"provider_reference": result.get("id", ""), "checkout_url": result.get("checkout_url", "")}

    def refund(self, intent, amount):
        result = self._call(
            "POST",
            f"{settings.CARD_API_BASE_URL}refunds",
            json={"payment_id": intent.provider_reference, "amount": str(amount), "currency": intent.currency},
            headers=self._headers(f"refund-{intent.idempotency_key}"),
        )
        return {"refund_id": result.get("id", ""), "status": result.get("status", "")}
