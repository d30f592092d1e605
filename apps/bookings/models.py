"""Booking aggregate, reservation holds and per-resource locks."""

from __future__ import annotations

import secrets
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.catalog.models import BookableType


def generate_reference() -> str:
    """``PYT-YYYY-NNNNNN``; retried until unused."""
    prefix = settings.BOOKING_REFERENCE_PREFIX
    year = timezone.now().year
    while True:
        reference = f"{prefix}-{year}-{secrets.randbelow(10**6):06d}"
        if not Booking.objects.filter(reference=reference).exists():
            return reference


class Booking(models.Model):
    """Vessel or tour booking. Never physically deleted."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Awaiting payment")
        CONFIRMED = "confirmed", _("Confirmed")
        PAID = "paid", _("Paid")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")
        EXPIRED = "expired", _("Expired")
        REFUNDED = "refunded", _("Refunded")

    TERMINAL_STATUSES = (Status.COMPLETED, Status.CANCELLED, Status.EXPIRED, Status.REFUNDED)
    HOLDING_STATUSES = (Status.PENDING, Status.CONFIRMED, Status.PAID)

    reference = models.CharField(max_length=20, unique=True, editable=False)
    user_id = models.BigIntegerField(null=True, blank=True, db_index=True)
    bookable_type = models.CharField(max_length=10, choices=BookableType.choices)
    bookable_id = models.PositiveIntegerField()
    booking_date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    duration_hours = models.PositiveSmallIntegerField()
    party_size = models.PositiveSmallIntegerField(default=1)
    package_id = models.PositiveIntegerField(null=True, blank=True)

    base_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    applied_discounts = models.JSONField(default=list, blank=True)
    discount_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="THB")
    price_breakdown = models.JSONField(default=dict, blank=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payment_method = models.CharField(max_length=30, blank=True)
    payment_reference = models.CharField(max_length=255, blank=True)
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("Pending bookings not paid by this time are expired by the sweep."),
    )
    paid_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_price__gte=0) & models.Q(total_price__lte=models.F("subtotal")),
                name="booking_total_within_subtotal",
            ),
        ]
        indexes = [
            models.Index(fields=["bookable_type", "bookable_id", "booking_date"]),
            models.Index(fields=["status", "expires_at"]),
            models.Index(fields=["reference"]),
        ]

    def __str__(self) -> str:
        return f"Booking {self.reference} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    def is_overdue(self, now=None) -> bool:
        now = now or timezone.now()
        return bool(self.status == self.Status.PENDING and self.expires_at and self.expires_at <= now)

    def discount_of(self, kind: str) -> dict | None:
        return next((d for d in self.applied_discounts or [] if d.get("kind") == kind), None)


class ReservationHold(models.Model):
    """Time window a live booking occupies. Deleted when the booking is released."""

    booking = models.OneToOneField(Booking, on_delete=models.CASCADE, related_name="hold")
    bookable_type = models.CharField(max_length=10, choices=BookableType.choices)
    bookable_id = models.PositiveIntegerField()
    booking_date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["bookable_type", "bookable_id", "booking_date"]),
        ]

    def __str__(self) -> str:
        return f"{self.bookable_type}:{self.bookable_id} {self.booking_date} {self.start_time}-{self.end_time}"


class ResourceLock(models.Model):
    """One row per resource-day; locking it serializes reservations for that key."""

    bookable_type = models.CharField(max_length=10, choices=BookableType.choices)
    bookable_id = models.PositiveIntegerField()
    booking_date = models.DateField()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["bookable_type", "bookable_id", "booking_date"],
                name="resource_lock_unique_key",
            ),
        ]

    def __str__(self) -> str:
        return f"lock {self.bookable_type}:{self.bookable_id} {self.booking_date}"
