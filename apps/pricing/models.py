"""Dynamic pricing rules and package bundles."""

from __future__ import annotations

from decimal import Decimal

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.discounts.models import Scope


class PricingRule(models.Model):
    """
    Seasonal / demand adjustment of the base price.

    ``adjustment_value`` is signed: positive is a surcharge, negative a
    discount. Rules with a higher ``priority`` come first; ties are
    broken by id.
    """

    class RuleType(models.TextChoices):
        SEASON = "season", _("Season")
        SPECIAL_DATE = "special_date", _("Special date")
        DAY_OF_WEEK = "day_of_week", _("Day of week")
        EARLY_BIRD = "early_bird", _("Early bird")
        LAST_MINUTE = "last_minute", _("Last minute")
        GROUP_SIZE = "group_size", _("Group size")
        DURATION = "duration", _("Duration")

    class AdjustmentType(models.TextChoices):
        PERCENTAGE = "percentage", _("Percentage")
        FIXED = "fixed", _("Fixed amount")

    name = models.CharField(max_length=100)
    description = models.CharField(max_length=500, blank=True)
    rule_type = models.CharField(max_length=20, choices=RuleType.choices)
    applies_to = models.CharField(max_length=20, choices=Scope.choices, default=Scope.ALL)
    bookable_ids = models.JSONField(default=list, blank=True)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    days_of_week = models.JSONField(default=list, blank=True, help_text=_('e.g. ["saturday", "sunday"]'))
    days_before_min = models.PositiveIntegerField(null=True, blank=True, help_text=_("Early bird: book at least N days ahead"))
    days_before_max = models.PositiveIntegerField(null=True, blank=True, help_text=_("Last minute: at most N days ahead"))
    min_guests = models.PositiveIntegerField(null=True, blank=True)
    max_guests = models.PositiveIntegerField(null=True, blank=True)
    min_duration_hours = models.PositiveIntegerField(null=True, blank=True)
    adjustment_type = models.CharField(max_length=20, choices=AdjustmentType.choices)
    adjustment_value = models.DecimalField(max_digits=10, decimal_places=2)
    priority = models.IntegerField(default=0)
    is_stackable = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-priority", "id"]
        indexes = [
            models.Index(fields=["rule_type"]),
            models.Index(fields=["start_date", "end_date"]),
            models.Index(fields=["is_active"]),
        ]

    def __str__(self) -> str:
        sign = "+" if self.adjustment_value >= 0 else ""
        unit = "%" if self.adjustment_type == self.AdjustmentType.PERCENTAGE else " THB"
        return f"{self.name} ({sign}{self.adjustment_value}{unit})"


class Package(models.Model):
    """Bundle of a base bookable and add-ons sold at a blended discount."""

    class BaseType(models.TextChoices):
        VESSEL = "vessel", _("Vessel")
        TOUR = "tour", _("Tour")

    slug = models.SlugField(max_length=100, unique=True)
    name = models.CharField(max_length=255)
    base_type = models.CharField(max_length=10, choices=BaseType.choices)
    base_id = models.PositiveIntegerField(null=True, blank=True, help_text=_("Specific vessel/tour, empty for any"))
    base_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=_("Used when the bookable has no rate of its own"),
    )
    included_addons = models.JSONField(default=list, blank=True, help_text=_('[{"addon_id": 1, "quantity": 1}]'))
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    min_guests = models.PositiveIntegerField(default=1)
    max_guests = models.PositiveIntegerField(null=True, blank=True)
    min_duration_hours = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    @property
    def addon_ids(self) -> set[int]:
        return {int(item["addon_id"]) for item in self.included_addons or []}
