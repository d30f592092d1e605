"""Payment provider adapters, looked up by name."""

from __future__ import annotations

from shared.domain.errors import ValidationError

from .base import PaymentProvider, SettlementEvent, VerifiedEvent
from .card import CardProvider
from .crypto import CryptoProvider
from .promptpay import PromptPayProvider
from .regional import RegionalProvider
from .telegram_stars import TelegramStarsProvider

PROVIDERS: dict[str, type[PaymentProvider]] = {
    cls.name: cls
    for cls in (CardProvider, CryptoProvider, TelegramStarsProvider, PromptPayProvider, RegionalProvider)
}


def get_provider(name: str) -> PaymentProvider:
    try:
        return PROVIDERS[name]()
    except KeyError:
        raise ValidationError(f"Unknown payment provider {name!r}", code="UNKNOWN_PROVIDER") from None


__all__ = ["PROVIDERS", "PaymentProvider", "SettlementEvent", "VerifiedEvent", "get_provider"]
