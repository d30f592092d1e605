"""Admin registration for the catalog read model."""

from __future__ import annotations

from django.contrib import admin

from .models import Addon, Tour, Vessel


@admin.register(Vessel)
class VesselAdmin(admin.ModelAdmin):
    list_display = ("name", "type", "capacity", "price_per_hour", "price_per_day", "is_active")
    list_filter = ("type", "is_active")
    search_fields = ("name",)


@admin.register(Tour)
class TourAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "capacity", "price_adult", "duration_hours", "is_active")
    list_filter = ("category", "is_active")
    search_fields = ("name",)


@admin.register(Addon)
class AddonAdmin(admin.ModelAdmin):
    list_display = ("name", "price", "price_type", "is_active")
    list_filter = ("price_type", "is_active")
