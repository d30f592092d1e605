"""Regional card processor (YooKassa-style API, settles in RUB).

Webhooks are not signed; they are accepted only from the processor's
published networks.
"""

from __future__ import annotations

import ipaddress
import logging
from decimal import Decimal

from django.conf import settings  # type: ignore

from shared.domain.errors import ProviderPermanentError, WebhookVerificationError
from shared.domain.value_objects import quantize

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

RUB = "RUB"

EVENT_MAP = {
    "payment.succeeded": OUTCOME_PAID,
    "payment.canceled": OUTCOME_FAILED,
    "payment.waiting_for_capture": OUTCOME_PENDING,
}


def is_trusted(remote_addr: str) -> bool:
    try:
        address = ipaddress.ip_address(remote_addr)
    except ValueError:
        return False
    for network in getattr(settings, "REGIONAL_TRUSTED_NETWORKS", []):
        network = network.strip()
        if network and address in ipaddress.ip_network(network, strict=False):
            return True
    return False


def thb_to_rub(amount: Decimal) -> Decimal:
    rub = quantize(Decimal(amount) * Decimal(str(settings.REGIONAL_THB_RUB_RATE)))
    return max(rub, Decimal("1.00"))


class RegionalProvider(PaymentProvider):
    name = "regional"
    currency = RUB

    def verify(self, request):
        remote_addr = request.META.get("REMOTE_ADDR", "")
        if not is_trusted(remote_addr):
            logger.warning(f"Regional webhook from untrusted address {remote_addr}")
            raise WebhookVerificationError("Notification from untrusted network", code="UNTRUSTED_ORIGIN")
        return self._verified(request, parse_json(request.body))

    def normalize(self, verified):
        payload = verified.payload
        require(payload, "event", "object")
        outcome = EVENT_MAP.get(payload["event"])
        if outcome is None:
            logger.info(f"Ignoring regional event {payload['event']}")
            return None
        obj = payload["object"] if isinstance(payload["object"], dict) else {}
        require(obj, "id")
        amount = obj.get("amount") or {}
        return SettlementEvent(
            provider=self.name,
            booking_reference=str((obj.get("metadata") or {}).get("booking_reference", "")),
            provider_reference=str(obj["id"]),
            outcome=outcome,
            amount=parse_amount(amount.get("value")),
            currency=str(amount.get("currency") or RUB),
            payer={"payment_method": (obj.get("payment_method") or {}).get("type", "")},
        )

    def _auth(self):
        if not settings.REGIONAL_SHOP_ID or not settings.REGIONAL_SECRET_KEY:
            raise ProviderPermanentError("Regional processor is not configured", code="PROVIDER_NOT_CONFIGURED")
        return (settings.REGIONAL_SHOP_ID, settings.REGIONAL_SECRET_KEY)

    def create_checkout(self, intent):
        auth = self._auth()
        rub = thb_to_rub(intent.amount)
        result = self._call(
            "POST",
            f"{settings.REGIONAL_API_BASE_URL}payments",
            json={
                "amount": {"value": f"{rub:.2f}", "currency": RUB},
                "confirmation": {
                    "type": "redirect",
                    "return_url": f"{settings.SITE_URL}/bookings/{intent.booking_reference}",
                },
                "capture": True,
                "description": f"Booking {intent.booking_reference}",
                "metadata": {"booking_reference": intent.booking_reference, "amount_thb": str(intent.amount)},
            },
            auth=auth,
            headers={"Idempotence-Key": intent.idempotency_key},
        )
        return {
            "provider_reference": result.get("id", ""),
            "checkout_url": (result.get("confirmation") or {}).get("confirmation_url", ""),
            "provider_amount": str(rub),
            "provider_currency": RUB,
        }

    def refund(self, intent, amount):
        auth = self._auth()
        share = Decimal(amount) / intent.amount if intent.amount else Decimal("1")
        rub = quantize(intent.provider_amount * share)
        result = self._call(
            "POST",
            f"{settings.REGIONAL_API_BASE_URL}refunds",
            json={"payment_id": intent.provider_reference, "amount": {"value": f"{rub:.2f}", "currency": RUB}},
            auth=auth,
            headers={"Idempotence-Key": f"refund-{intent.idempotency_key}"},
        )
        return {"refund_id": result.get("id", ""), "status": result.get("status", "")}
