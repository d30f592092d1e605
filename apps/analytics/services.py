"""Counter updates."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from django.db import transaction  # type: ignore
from django.db.models import F  # type: ignore

from .models import DailyCounter


@transaction.atomic
def increment(metric: str, day: date, amount: Decimal = Decimal("0")) -> DailyCounter:
    """Add one occurrence (and ``amount``) to the metric's counter for ``day``."""
    counter, _ = DailyCounter.objects.get_or_create(day=day, metric=metric)
    DailyCounter.objects.filter(pk=counter.pk).update(count=F("count") + 1, value=F("value") + amount)
    counter.refresh_from_db()
    return counter
