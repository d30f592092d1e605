"""Telegram Stars adapter.

Telegram signs nothing; webhook updates are trusted through the secret
token registered with ``setWebhook``. Payments arrive as
``message.successful_payment`` updates; the booking reference travels
in the invoice payload we created.
"""

from __future__ import annotations

import hmac
import json
import logging
from decimal import ROUND_CEILING, Decimal

from django.conf import settings  # type: ignore

from shared.domain.errors import ProviderPermanentError, ValidationError, WebhookVerificationError

from .base import OUTCOME_PAID, PaymentProvider, SettlementEvent, parse_json, require

logger = logging.getLogger(__name__)

STARS_CURRENCY = "XTR"


def thb_to_stars(amount: Decimal) -> int:
    rate = Decimal(str(settings.TELEGRAM_STARS_THB_RATE))
    return int((Decimal(amount) / rate).to_integral_value(rounding=ROUND_CEILING))


def _invoice_reference(invoice_payload) -> str:
    try:
        data = json.loads(invoice_payload or "")
    except (TypeError, ValueError):
        raise ValidationError("Invoice payload is not JSON", code="MALFORMED_EVENT") from None
    reference = data.get("booking_reference") if isinstance(data, dict) else None
    if not reference:
        raise ValidationError("Invoice payload has no booking reference", code="MALFORMED_EVENT")
    return str(reference)


class TelegramStarsProvider(PaymentProvider):
    name = "telegram_stars"
    currency = STARS_CURRENCY

    def _api(self, method: str, payload: dict) -> dict:
        token = settings.TELEGRAM_BOT_TOKEN
        if not token:
            raise ProviderPermanentError("Telegram bot token is not configured", code="PROVIDER_NOT_CONFIGURED")
        result = self._call("POST", f"https://api.telegram.org/bot{token}/{method}", json=payload)
        if not result.get("ok"):
            raise ProviderPermanentError(
                f"Telegram {method} failed: {result.get('description', 'unknown error')}",
                code="PROVIDER_REJECTED",
            )
        return result

    def verify(self, request):
        secret = getattr(settings, "TELEGRAM_WEBHOOK_SECRET", "")
        if not secret:
            raise WebhookVerificationError("Telegram webhook secret is not configured", code="PROVIDER_NOT_CONFIGURED")
        token = request.headers.get("X-Telegram-Bot-Api-Secret-Token", "")
        if not hmac.compare_digest(token, secret):
            raise WebhookVerificationError("Bad Telegram secret token")
        return self._verified(request, parse_json(request.body))

    def preflight(self, verified):
        query = verified.payload.get("pre_checkout_query")
        if not query:
            return False

        from apps.bookings import state_machine
        from apps.bookings.models import Booking

        error = ""
        try:
            reference = _invoice_reference(query.get("invoice_payload"))
        except ValidationError as e:
            error = e.detail
        else:
            booking = Booking.objects.filter(reference=reference).first()
            if booking is None:
                error = "Booking not found"
            else:
                error = state_machine.payable(booking) or ""

        answer = {"pre_checkout_query_id": query.get("id"), "ok": not error}
        if error:
            answer["error_message"] = error
        self._api("answerPreCheckoutQuery", answer)
        logger.info(f"Answered Telegram pre-checkout {query.get('id')}: ok={not error}")
        return True

    def normalize(self, verified):
        message = verified.payload.get("message") or {}
        payment = message.get("successful_payment")
        if not payment:
            return None
        require(payment, "telegram_payment_charge_id", "invoice_payload")
        return SettlementEvent(
            provider=self.name,
            booking_reference=_invoice_reference(payment["invoice_payload"]),
            provider_reference=str(payment["telegram_payment_charge_id"]),
            outcome=OUTCOME_PAID,
            amount=Decimal(str(payment.get("total_amount", 0))),
            currency=str(payment.get("currency") or STARS_CURRENCY),
            payer={"telegram_user_id": (message.get("from") or {}).get("id")},
        )

    def create_checkout(self, intent):
        stars = thb_to_stars(intent.amount)
        result = self._api(
            "createInvoiceLink",
            {
                "title": f"Booking {intent.booking_reference}",
                "description": f"Payment for booking {intent.booking_reference}",
                "payload": json.dumps({"booking_reference": intent.booking_reference, "intent_id": str(intent.pk)}),
                "currency": STARS_CURRENCY,
                "prices": [{"label": intent.booking_reference, "amount": stars}],
            },
        )
        return {
            "provider_reference": "",
            "checkout_url": result["result"],
            "provider_amount": stars,
            "provider_currency": STARS_CURRENCY,
        }

    def refund(self, intent, amount):
        user_id = (intent.metadata or {}).get("payer", {}).get("telegram_user_id")
        if not user_id:
            raise ProviderPermanentError(
                f"No Telegram payer recorded for {intent.provider_reference}", code="MANUAL_REFUND_REQUIRED"
            )
        # Stars refunds are always for the full charge
        self._api(
            "refundStarPayment",
            {"user_id": user_id, "telegram_payment_charge_id": intent.provider_reference},
        )
        return {"refund_id": intent.provider_reference, "status": "refunded"}
