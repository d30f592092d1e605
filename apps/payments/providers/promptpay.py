"""PromptPay QR bank transfers.

Checkout is an EMVCo merchant-presented QR payload built locally; the
bank's notification webhook (or a staff member, through the confirm
endpoint) reports the incoming transfer.
"""

from __future__ import annotations

import hmac
import logging
import re
from decimal import Decimal
from typing import Optional

from django.conf import settings  # type: ignore

from shared.domain.errors import ProviderPermanentError, WebhookVerificationError

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

PROMPTPAY_AID = "A000000677010111"
CURRENCY_THB = "764"
COUNTRY_TH = "TH"

STATUS_MAP = {
    "success": OUTCOME_PAID,
    "successful": OUTCOME_PAID,
    "completed": OUTCOME_PAID,
    "paid": OUTCOME_PAID,
    "failed": OUTCOME_FAILED,
    "rejected": OUTCOME_FAILED,
    "reversed": OUTCOME_FAILED,
}


def tlv(tag: str, value: str) -> str:
    return f"{tag}{len(value):02d}{value}"


def crc16_ccitt(data: bytes) -> int:
    """CRC-16/CCITT-FALSE: poly 0x1021, init 0xFFFF."""
    crc = 0xFFFF
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else (crc << 1)
            crc &= 0xFFFF
    return crc


def merchant_account(account_id: str) -> str:
    """Sub-tag plus value for a phone number, national id or e-wallet id."""
    digits = re.sub(r"\D", "", account_id)
    if len(digits) >= 15:
        return tlv("03", digits)
    if len(digits) == 13:
        return tlv("02", digits)
    if digits.startswith("0"):
        digits = "66" + digits[1:]
    elif not digits.startswith("66"):
        digits = "66" + digits
    return tlv("01", digits.zfill(13))


def build_payload(account_id: str, amount: Optional[Decimal] = None, reference: str = "") -> str:
    data = tlv("00", "01")
    data += tlv("01", "12" if amount else "11")
    data += tlv("29", tlv("00", PROMPTPAY_AID) + merchant_account(account_id))
    data += tlv("53", CURRENCY_THB)
    if amount:
        data += tlv("54", f"{Decimal(amount):.2f}")
    data += tlv("58", COUNTRY_TH)
    data += tlv("59", settings.PROMPTPAY_MERCHANT_NAME[:25])
    data += tlv("60", settings.PROMPTPAY_MERCHANT_CITY[:15])
    if reference:
        data += tlv("62", tlv("05", reference[:25]))
    data += "6304"
    return data + f"{crc16_ccitt(data.encode('ascii')):04X}"


def mask(account_id: str) -> str:
    if len(account_id) <= 4:
        return "*" * len(account_id)
    return account_id[:3] + "*" * (len(account_id) - 6) + account_id[-3:]


class PromptPayProvider(PaymentProvider):
    name = "promptpay"

    def verify(self, request):
        secret = getattr(settings, "PROMPTPAY_WEBHOOK_SECRET", "")
        if not secret:
            raise WebhookVerificationError("PromptPay webhook secret is not configured", code="PROVIDER_NOT_CONFIGURED")
        if not hmac.compare_digest(request.headers.get("X-PromptPay-Secret", ""), secret):
            raise WebhookVerificationError("Bad PromptPay secret")
        return self._verified(request, parse_json(request.body))

    def normalize(self, verified):
        payload = verified.payload
        require(payload, "transaction_id", "reference", "status")
        return SettlementEvent(
            provider=self.name,
            booking_reference=str(payload["reference"]),
            provider_reference=str(payload["transaction_id"]),
            outcome=STATUS_MAP.get(str(payload["status"]).lower(), OUTCOME_PENDING),
            amount=parse_amount(payload.get("amount")),
            currency="THB",
        )

    def create_checkout(self, intent):
        account_id = settings.PROMPTPAY_ID
        if not account_id:
            raise ProviderPermanentError("PromptPay is not configured", code="PROVIDER_NOT_CONFIGURED")
        return {
            "provider_reference": "",
            "qr_payload": build_payload(account_id, intent.amount, intent.booking_reference),
            "account_name": settings.PROMPTPAY_MERCHANT_NAME,
            "account_id_masked": mask(account_id),
            "amount": str(intent.amount),
            "currency": "THB",
        }

    def refund(self, intent, amount):
        raise ProviderPermanentError(
            f"PromptPay transfer {intent.provider_reference} must be refunded by bank transfer ({amount} THB)",
            code="MANUAL_REFUND_REQUIRED",
        )
