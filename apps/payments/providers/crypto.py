"""Crypto payment adapter (IPN callbacks signed with HMAC-SHA512)."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging

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
    "finished": OUTCOME_PAID,
    "failed": OUTCOME_FAILED,
    "expired": OUTCOME_FAILED,
    "refunded": OUTCOME_FAILED,
    "waiting": OUTCOME_PENDING,
    "confirming": OUTCOME_PENDING,
    "confirmed": OUTCOME_PENDING,
    "sending": OUTCOME_PENDING,
    "partially_paid": OUTCOME_PENDING,
}


def sign(payload: dict, secret: str) -> str:
    """The IPN signature covers the body re-serialized with sorted keys."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hmac.new(secret.encode(), canonical.encode(), hashlib.sha512).hexdigest()


class CryptoProvider(PaymentProvider):
    name = "crypto"

    def verify(self, request):
        secret = getattr(settings, "CRYPTO_IPN_SECRET", "")
        if not secret:
            raise WebhookVerificationError("IPN secret is not configured", code="PROVIDER_NOT_CONFIGURED")
        try:
            payload = parse_json(request.body)
        except ValidationError:
            raise WebhookVerificationError("IPN body is not a JSON object") from None

        signature = request.headers.get("X-Crypto-Signature", "")
        if not hmac.compare_digest(signature.lower(), sign(payload, secret)):
            raise WebhookVerificationError("Bad IPN signature")
        return self._verified(request, payload)

    def normalize(self, verified):
        payload = verified.payload
        require(payload, "payment_id", "order_id", "payment_status")
        outcome = STATUS_MAP.get(str(payload["payment_status"]).lower(), OUTCOME_PENDING)
        return SettlementEvent(
            provider=self.name,
            booking_reference=str(payload["order_id"]),
            provider_reference=str(payload["payment_id"]),
            outcome=outcome,
            amount=parse_amount(payload.get("price_amount")),
            currency=str(payload.get("price_currency") or "THB").upper(),
            payer={"pay_currency": payload.get("pay_currency", "")},
        )

    def _headers(self) -> dict:
        return {"x-api-key": settings.CRYPTO_API_KEY, "Content-Type": "application/json"}

    def create_checkout(self, intent):
        if not settings.CRYPTO_API_KEY:
            raise ProviderPermanentError("Crypto payments are not configured", code="PROVIDER_NOT_CONFIGURED")
        result = self._call(
            "POST",
            f"{settings.CRYPTO_API_BASE_URL}invoice",
            json={
                "price_amount": str(intent.amount),
                "price_currency": intent.currency.lower(),
                "order_id": intent.booking_reference,
                "order_description": f"Booking {intent.booking_reference}",
                "ipn_callback_url": f"{settings.SITE_URL}/api/v1/payments/webhooks/crypto/",
                "success_url": f"{settings.SITE_URL}/bookings/{intent.booking_reference}",
            },
            headers=self._headers(),
        )
        return {"provider_reference": str(result.get("id", "")), "checkout_url": result.get("invoice_url", "")}

    def refund(self, intent, amount):
        # IPN processors have no refund API; payouts are done by staff
        raise ProviderPermanentError(
            f"Crypto payment {intent.provider_reference} needs a manual payout of {amount}",
            code="MANUAL_REFUND_REQUIRED",
        )
