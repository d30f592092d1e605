"""Discount ledger models: promo codes, gift cards and cashback."""

from __future__ import annotations

from decimal import Decimal

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Scope(models.TextChoices):
    ALL = "all", _("All")
    VESSELS = "vessels", _("Vessels")
    TOURS = "tours", _("Tours")


class PromoCode(models.Model):
    """Admin managed promo code. Read-only to the settlement core except for ``used_count``."""

    class Kind(models.TextChoices):
        PERCENTAGE = "percentage", _("Percentage")
        FIXED = "fixed", _("Fixed amount")

    code = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=255, blank=True)
    kind = models.CharField(max_length=20, choices=Kind.choices, default=Kind.PERCENTAGE)
    value = models.DecimalField(max_digits=12, decimal_places=2)
    applies_to = models.CharField(max_length=20, choices=Scope.choices, default=Scope.ALL)
    applicable_ids = models.JSONField(
        default=list,
        blank=True,
        help_text=_("Vessel/tour ids the code is limited to; empty means any."),
    )
    addon_ids = models.JSONField(
        default=list,
        blank=True,
        help_text=_("Add-ons this code discounts. Cannot be combined with a package bundling them."),
    )
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    per_user_limit = models.PositiveIntegerField(default=1)
    min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_until = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["code", "is_active"])]

    def __str__(self) -> str:
        return self.code

    def save(self, *args, **kwargs):  # type: ignore
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)


class PromoCodeUsage(models.Model):
    promo = models.ForeignKey(PromoCode, on_delete=models.CASCADE, related_name="usages")
    user_id = models.BigIntegerField(null=True, blank=True)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="promo_usages",
    )
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["promo", "user_id"])]
        constraints = [
            models.UniqueConstraint(fields=["promo", "booking"], name="promo_usage_once_per_booking"),
        ]


class GiftCard(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", _("Awaiting payment")
        ACTIVE = "active", _("Active")
        USED = "used", _("Fully used")
        EXPIRED = "expired", _("Expired")
        CANCELLED = "cancelled", _("Cancelled")

    code = models.CharField(max_length=14, unique=True, editable=False)
    original_amount = models.DecimalField(max_digits=12, decimal_places=2)
    remaining_balance = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="THB")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    applies_to = models.CharField(max_length=20, choices=Scope.choices, default=Scope.ALL)
    min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField(null=True, blank=True)
    purchaser_user_id = models.BigIntegerField(null=True, blank=True)
    recipient_name = models.CharField(max_length=255, blank=True)
    recipient_email = models.EmailField(blank=True)
    message = models.TextField(blank=True)
    activated_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(remaining_balance__gte=0),
                name="gift_card_balance_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(remaining_balance__lte=models.F("original_amount")),
                name="gift_card_balance_within_original",
            ),
        ]
        indexes = [models.Index(fields=["status", "valid_until"])]

    def __str__(self) -> str:
        return f"{self.code} ({self.remaining_balance} {self.currency})"

    def is_expired(self, now=None) -> bool:
        now = now or timezone.now()
        return bool(self.valid_until and self.valid_until < now)


class GiftCardTransaction(models.Model):
    class Type(models.TextChoices):
        PURCHASE = "purchase", _("Purchase")
        REDEEM = "redeem", _("Redeem")
        REFUND = "refund", _("Refund")
        EXPIRE = "expire", _("Expire")

    card = models.ForeignKey(GiftCard, on_delete=models.CASCADE, related_name="transactions")
    type = models.CharField(max_length=20, choices=Type.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    balance_before = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="gift_card_transactions",
    )
    note = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]


class LoyaltyTier(models.Model):
    slug = models.SlugField(max_length=30, unique=True)
    name = models.CharField(max_length=100)
    min_bookings = models.PositiveIntegerField(default=0)
    min_spent = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    cashback_percent = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("5.00"))
    sort_order = models.PositiveSmallIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["sort_order"]

    def __str__(self) -> str:
        return f"{self.name} ({self.cashback_percent}%)"


class LoyaltyAccount(models.Model):
    """Per-user loyalty stats. The row doubles as the lock guarding the cashback ledger."""

    user_id = models.BigIntegerField(unique=True)
    tier = models.ForeignKey(LoyaltyTier, on_delete=models.SET_NULL, null=True, blank=True)
    total_bookings = models.PositiveIntegerField(default=0)
    total_spent = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Loyalty account of user {self.user_id}"


class CashbackLedgerEntry(models.Model):
    """Append-only cashback ledger. Balance is the running sum of signed amounts."""

    class Type(models.TextChoices):
        EARNED = "earned", _("Earned")
        USED = "used", _("Used")
        EXPIRED = "expired", _("Expired")
        ADJUSTED = "adjusted", _("Adjusted")

    user_id = models.BigIntegerField()
    type = models.CharField(max_length=20, choices=Type.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cashback_entries",
    )
    description = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [models.Index(fields=["user_id", "id"])]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(type="used") | models.Q(balance_after__gte=0),
                name="cashback_used_never_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.type} {self.amount} (user {self.user_id})"
