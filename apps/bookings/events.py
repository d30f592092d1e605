"""
Booking Domain Events

Published on the shared message bus after the transition that raised
them has committed.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from shared.domain.base import DomainEvent


@dataclass(kw_only=True)
class BookingCreated(DomainEvent):
    """A pending booking now holds its slot."""
    reference: str
    user_id: Optional[int]
    total_price: Decimal


@dataclass(kw_only=True)
class BookingPaid(DomainEvent):
    """
    Payment settled; discounts committed and follow-up jobs queued.

    Triggers:
    - Nudge the job runner (receipt email, invoice, analytics)
    """
    reference: str
    payment_reference: str
    total_price: Decimal


@dataclass(kw_only=True)
class BookingCancelled(DomainEvent):
    reference: str
    reason: str = ""
    was_paid: bool = False


@dataclass(kw_only=True)
class BookingExpired(DomainEvent):
    reference: str
