"""Value types returned by the discount resolvers."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Union

from shared.domain.base import ValueObject


class DiscountKind:
    PACKAGE = "package"
    PROMO = "promo"
    GIFT_CARD = "gift_card"
    CASHBACK = "cashback"


class RejectionReason:
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    INACTIVE = "INACTIVE"
    SCOPE_MISMATCH = "SCOPE_MISMATCH"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    PACKAGE_PROMO_CONFLICT = "PACKAGE_PROMO_CONFLICT"
    PACKAGE_MISMATCH = "PACKAGE_MISMATCH"
    LOGIN_REQUIRED = "LOGIN_REQUIRED"


@dataclass(frozen=True)
class DiscountQuote(ValueObject):
    """A discount that would apply. Pure value: nothing has been consumed yet."""

    kind: str
    code: str
    amount: Decimal
    details: dict = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "code": self.code, "amount": str(self.amount)}


@dataclass(frozen=True)
class Rejection(ValueObject):
    kind: str
    reason: str
    code: str = ""
    detail: str = ""

    def to_dict(self) -> dict:
        return {"kind": self.kind, "reason": self.reason, "code": self.code, "detail": self.detail}


QuoteResult = Union[DiscountQuote, Rejection]
