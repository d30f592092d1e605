"""Order context: the ephemeral input of a price quote."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from typing import Optional

from shared.domain.value_objects import TimeWindow

DEFAULT_START_TIME = time(9, 0)


@dataclass(frozen=True)
class OrderContext:
    """
    Everything needed to price and reserve one booking.

    Built per request from the quote/booking serializers and never
    persisted; the booking stores the resulting breakdown instead.
    """

    bookable_type: str
    bookable_id: int
    date: date
    duration_hours: int
    party_size: int
    start_time: time = DEFAULT_START_TIME
    user_id: Optional[int] = None
    package_id: Optional[int] = None
    extra_addons: tuple = field(default_factory=tuple)
    promo_code: str = ""
    gift_card_code: str = ""
    cashback_amount: Decimal = Decimal("0.00")

    @property
    def scope(self) -> str:
        return "vessels" if self.bookable_type == "vessel" else "tours"

    @property
    def window(self) -> TimeWindow:
        return TimeWindow.from_duration(self.start_time, self.duration_hours)
