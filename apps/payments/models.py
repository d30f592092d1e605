"""Payment intents, processed provider events and raw webhook receipts."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.infrastructure.fields import EncryptedTextField


class Provider(models.TextChoices):
    CARD = "card", _("Card processor")
    CRYPTO = "crypto", _("Crypto (IPN)")
    TELEGRAM_STARS = "telegram_stars", _("Telegram Stars")
    PROMPTPAY = "promptpay", _("PromptPay QR")
    REGIONAL = "regional", _("Regional processor")


class PaymentIntent(models.Model):
    """One attempt to collect the booking total through one provider."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        PROCESSING = "processing", _("Processing")
        COMPLETED = "completed", _("Completed")
        FAILED = "failed", _("Failed")
        CANCELLED = "cancelled", _("Cancelled")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    provider = models.CharField(max_length=30, choices=Provider.choices)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payment_intents",
    )
    booking_reference = models.CharField(max_length=20, db_index=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="THB")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    provider_reference = models.CharField(max_length=255, blank=True, db_index=True)
    idempotency_key = models.CharField(max_length=100, unique=True)
    checkout = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=models.Q(status="completed"),
                name="payment_one_completed_intent_per_booking",
            ),
        ]
        indexes = [
            models.Index(fields=["provider", "provider_reference"]),
            models.Index(fields=["booking", "status"]),
        ]

    def __str__(self) -> str:
        return f"{self.provider} {self.amount} {self.currency} for {self.booking_reference} ({self.status})"

    @property
    def provider_amount(self) -> Decimal:
        """Amount in the currency the provider actually charges."""
        value = (self.metadata or {}).get("provider_amount")
        return Decimal(str(value)) if value is not None else self.amount

    @property
    def provider_currency(self) -> str:
        return (self.metadata or {}).get("provider_currency") or self.currency

    def mark_completed(self, provider_reference: str = "") -> None:
        self.status = self.Status.COMPLETED
        if provider_reference:
            self.provider_reference = provider_reference
        self.completed_at = timezone.now()
        self.save(update_fields=["status", "provider_reference", "completed_at", "updated_at"])

    def mark_failed(self, reason: str = "") -> None:
        self.status = self.Status.FAILED
        self.failure_reason = reason[:255]
        self.save(update_fields=["status", "failure_reason", "updated_at"])

    def mark_cancelled(self, reason: str = "") -> None:
        self.status = self.Status.CANCELLED
        self.failure_reason = reason[:255]
        self.save(update_fields=["status", "failure_reason", "updated_at"])


class ProcessedEvent(models.Model):
    """Settled provider event. Its unique key makes webhook replays no-ops."""

    provider = models.CharField(max_length=30, choices=Provider.choices)
    provider_reference = models.CharField(max_length=255)
    outcome = models.CharField(max_length=30)
    booking_reference = models.CharField(max_length=20, blank=True)
    processed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_reference"],
                name="payment_event_processed_once",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.provider}:{self.provider_reference} -> {self.outcome}"


class WebhookReceipt(models.Model):
    """Raw inbound provider notification, kept for replay and manual review."""

    class Status(models.TextChoices):
        RECEIVED = "received", _("Received")
        PROCESSED = "processed", _("Processed")
        IGNORED = "ignored", _("Ignored")
        MANUAL_REVIEW = "manual_review", _("Needs manual review")

    provider = models.CharField(max_length=30, choices=Provider.choices)
    body = EncryptedTextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.RECEIVED)
    booking_reference = models.CharField(max_length=20, blank=True)
    provider_reference = models.CharField(max_length=255, blank=True)
    error = models.CharField(max_length=500, blank=True)
    remote_addr = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["provider", "status"])]

    def __str__(self) -> str:
        return f"{self.provider} webhook #{self.pk} ({self.status})"

    def resolve(self, status: str, *, error: str = "", booking_reference: str = "", provider_reference: str = ""):
        self.status = status
        self.error = error[:500]
        self.booking_reference = booking_reference or self.booking_reference
        self.provider_reference = provider_reference or self.provider_reference
        self.processed_at = timezone.now()
        self.save(
            update_fields=["status", "error", "booking_reference", "provider_reference", "processed_at"]
        )
