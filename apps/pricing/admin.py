"""Admin registration for pricing rules and packages."""

from __future__ import annotations

from django.contrib import admin

from .models import Package, PricingRule


@admin.register(PricingRule)
class PricingRuleAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "rule_type",
        "applies_to",
        "adjustment_type",
        "adjustment_value",
        "priority",
        "is_stackable",
        "is_active",
    )
    list_filter = ("rule_type", "applies_to", "is_stackable", "is_active")
    search_fields = ("name",)
    ordering = ("-priority", "id")


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "base_type", "base_id", "discount_percent", "is_active")
    list_filter = ("base_type", "is_active")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}
