"""Daily aggregate counters."""

from __future__ import annotations

from decimal import Decimal

from django.db import models  # type: ignore


class DailyCounter(models.Model):
    day = models.DateField()
    metric = models.CharField(max_length=50)
    value = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["-day", "metric"]
        constraints = [
            models.UniqueConstraint(fields=["day", "metric"], name="analytics_counter_day_metric"),
        ]

    def __str__(self) -> str:
        return f"{self.day} {self.metric}: {self.count} / {self.value}"
