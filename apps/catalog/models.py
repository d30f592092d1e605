"""Catalog read models used for pricing and capacity checks."""

from __future__ import annotations

from decimal import Decimal

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class BookableType(models.TextChoices):
    VESSEL = "vessel", _("Vessel")
    TOUR = "tour", _("Tour")


class Vessel(models.Model):
    """Yacht, catamaran or speedboat chartered by the hour or by the day."""

    class Type(models.TextChoices):
        YACHT = "yacht", _("Yacht")
        CATAMARAN = "catamaran", _("Catamaran")
        SPEEDBOAT = "speedboat", _("Speedboat")
        SAILBOAT = "sailboat", _("Sailboat")

    name = models.CharField(max_length=255)
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.YACHT)
    capacity = models.PositiveSmallIntegerField(default=10)
    price_per_hour = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    price_per_day = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Tour(models.Model):
    """Scheduled group tour priced per guest."""

    name = models.CharField(max_length=255)
    category = models.CharField(max_length=50, blank=True)
    capacity = models.PositiveSmallIntegerField(default=20)
    duration_hours = models.PositiveSmallIntegerField(default=8)
    price_adult = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    price_child = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Addon(models.Model):
    """Optional extra (catering, diving gear, photographer...)."""

    class PriceType(models.TextChoices):
        FIXED = "fixed", _("Fixed")
        PER_PERSON = "per_person", _("Per person")
        PER_HOUR = "per_hour", _("Per hour")

    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    price_type = models.CharField(max_length=20, choices=PriceType.choices, default=PriceType.FIXED)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    def line_total(self, quantity: int, guests: int, hours: int) -> Decimal:
        if self.price_type == self.PriceType.PER_PERSON:
            return self.price * quantity * guests
        if self.price_type == self.PriceType.PER_HOUR:
            return self.price * quantity * hours
        return self.price * quantity
