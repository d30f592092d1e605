"""
Common Value Objects

- Money: Monetary amount with currency, always quantized to 2 places
- TimeWindow: Half-open interval of a day used by reservation holds
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal

from shared.domain.base import ValueObject

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

SUPPORTED_CURRENCIES = ('THB', 'USD', 'RUB', 'XTR')


def quantize(value) -> Decimal:
    """Round any numeric value to 2 decimal places (banker-free, half up)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Money value object

    Immutable; arithmetic never produces a negative amount, use
    ``clamp_sub`` where a running subtotal has to bottom out at zero.
    """
    amount: Decimal
    currency: str = 'THB'

    def __post_init__(self):
        object.__setattr__(self, 'amount', quantize(self.amount))
        if self.amount < 0:
            raise ValueError("Amount cannot be negative")
        if self.currency not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")

    @classmethod
    def zero(cls, currency: str = 'THB') -> 'Money':
        return cls(ZERO, currency)

    def _check(self, other: 'Money') -> None:
        if not isinstance(other, Money):
            raise TypeError("Can only combine Money with Money")
        if self.currency != other.currency:
            raise ValueError(f"Cannot mix currencies: {self.currency} and {other.currency}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check(other)
        return Money(self.amount - other.amount, self.currency)

    def clamp_sub(self, other: 'Money') -> 'Money':
        """Subtract, stopping at zero."""
        self._check(other)
        return Money(max(self.amount - other.amount, ZERO), self.currency)

    def __mul__(self, factor) -> 'Money':
        if not isinstance(factor, (int, Decimal)):
            raise TypeError("Can only multiply Money by int or Decimal")
        return Money(self.amount * factor, self.currency)

    def percent(self, value) -> 'Money':
        """Return ``value`` percent of this amount."""
        return Money(self.amount * Decimal(str(value)) / Decimal('100'), self.currency)

    def min(self, other: 'Money') -> 'Money':
        self._check(other)
        return self if self.amount <= other.amount else other

    def __str__(self):
        return f"{self.amount:,.2f} {self.currency}"


@dataclass(frozen=True)
class TimeWindow(ValueObject):
    """
    Time window within a single day, start inclusive and end exclusive.

    Adjacent windows (10:00-12:00 and 12:00-14:00) do not overlap.
    A window ending at midnight is stored with ``end == time.max``; one
    running past midnight is rejected.
    """
    start: time
    end: time

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Window start ({self.start}) must be before end ({self.end})")

    @classmethod
    def from_duration(cls, start: time, hours: int) -> 'TimeWindow':
        anchor = datetime.combine(datetime.min.date(), start)
        finish = anchor + timedelta(hours=hours)
        if finish.date() != anchor.date():
            if finish.time() != time.min or finish.date() - anchor.date() != timedelta(days=1):
                raise ValueError(f"{hours}h from {start.strftime('%H:%M')} runs past midnight")
            return cls(start, time.max)
        return cls(start, finish.time())

    def overlaps_with(self, other: 'TimeWindow') -> bool:
        # start1 < end2 AND end1 > start2
        return self.start < other.end and self.end > other.start

    def __str__(self):
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"
