"""Provider capability shared by every payment adapter.

A provider turns an inbound HTTP request into a ``VerifiedEvent``
(rejecting forgeries), normalizes it into a ``SettlementEvent`` and
knows how to open a checkout and issue a refund. The settlement gateway
depends on nothing else.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import requests
from django.conf import settings  # type: ignore

from shared.domain.errors import ProviderPermanentError, ProviderTransientError, ValidationError

logger = logging.getLogger(__name__)

OUTCOME_PAID = "paid"
OUTCOME_FAILED = "failed"
OUTCOME_PENDING = "pending"


@dataclass(frozen=True)
class VerifiedEvent:
    provider: str
    payload: dict
    raw_body: str = ""
    headers: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class SettlementEvent:
    provider: str
    booking_reference: str
    provider_reference: str
    outcome: str
    amount: Optional[Decimal] = None
    currency: str = "THB"
    payer: dict = field(default_factory=dict, compare=False)


def parse_json(raw: bytes | str) -> dict:
    try:
        data = json.loads(raw or b"{}")
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Webhook body is not JSON: {exc}", code="MALFORMED_EVENT") from None
    if not isinstance(data, dict):
        raise ValidationError("Webhook body must be a JSON object", code="MALFORMED_EVENT")
    return data


def parse_amount(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Bad amount {value!r}", code="MALFORMED_EVENT") from None


def require(payload: dict, *keys: str) -> None:
    missing = [key for key in keys if payload.get(key) in (None, "")]
    if missing:
        raise ValidationError(f"Event is missing {', '.join(missing)}", code="MALFORMED_EVENT")


class PaymentProvider:
    """Base class; subclasses set ``name`` and implement the hooks."""

    name = ""
    currency = "THB"

    # inbound

    def verify(self, request) -> VerifiedEvent:
        raise NotImplementedError

    def normalize(self, verified: VerifiedEvent) -> Optional[SettlementEvent]:
        """Return None for notifications that carry no settlement (pings, unrelated updates)."""
        raise NotImplementedError

    def preflight(self, verified: VerifiedEvent) -> bool:
        """Answer provider questions that need no settlement. True means the event is handled."""
        return False

    # outbound

    def create_checkout(self, intent) -> dict:
        raise NotImplementedError

    def refund(self, intent, amount: Decimal) -> dict:
        raise NotImplementedError

    # helpers

    def _verified(self, request, payload: dict) -> VerifiedEvent:
        raw = request.body.decode("utf-8", errors="replace")
        return VerifiedEvent(self.name, payload, raw, dict(request.headers))

    def _call(self, method: str, url: str, **kwargs) -> dict:
        """
        HTTP call with the provider timeout.

        Timeouts, connection errors and 5xx become ProviderTransientError;
        4xx become ProviderPermanentError.
        """
        timeout = getattr(settings, "PAYMENT_PROVIDER_TIMEOUT", 10)
        try:
            response = requests.request(method, url, timeout=timeout, **kwargs)
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            logger.error(f"{self.name}: network error calling {url}: {e}")
            raise ProviderTransientError(f"{self.name} is unreachable", code="PROVIDER_UNAVAILABLE") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"{self.name}: request to {url} failed: {e}")
            raise ProviderPermanentError(f"{self.name} request failed", code="PROVIDER_REJECTED") from e

        if response.status_code >= 500:
            logger.error(f"{self.name}: {response.status_code} from {url}")
            raise ProviderTransientError(
                f"{self.name} answered {response.status_code}", code="PROVIDER_UNAVAILABLE"
            )
        if response.status_code >= 400:
            logger.error(f"{self.name}: {response.status_code} from {url}: {response.text[:500]}")
            raise ProviderPermanentError(
                f"{self.name} rejected the request ({response.status_code})", code="PROVIDER_REJECTED"
            )
        try:
            return response.json()
        except ValueError:
            raise ProviderPermanentError(f"{self.name} answered with non-JSON", code="PROVIDER_REJECTED") from None
