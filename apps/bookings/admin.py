"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin, messages

from shared.domain.errors import SettlementError

from . import state_machine
from .models import Booking, ReservationHold, ResourceLock


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "reference",
        "bookable_type",
        "bookable_id",
        "booking_date",
        "start_time",
        "status",
        "total_price",
        "created_at",
    )
    list_filter = ("status", "bookable_type", "booking_date", "payment_method")
    search_fields = ("reference", "payment_reference")
    readonly_fields = (
        "reference",
        "status",
        "base_price",
        "subtotal",
        "applied_discounts",
        "discount_total",
        "total_price",
        "price_breakdown",
        "payment_reference",
        "paid_at",
        "created_at",
        "updated_at",
    )
    actions = ["confirm_selected"]

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False

    @admin.action(description="Confirm selected pending bookings")
    def confirm_selected(self, request, queryset):  # type: ignore
        confirmed = 0
        for booking in queryset:
            try:
                state_machine.confirm(booking)
                confirmed += 1
            except SettlementError as exc:
                self.message_user(request, f"{booking.reference}: {exc.detail}", messages.WARNING)
        self.message_user(request, f"Confirmed {confirmed} bookings")


@admin.register(ReservationHold)
class ReservationHoldAdmin(admin.ModelAdmin):
    list_display = ("booking", "bookable_type", "bookable_id", "booking_date", "start_time", "end_time")
    list_filter = ("bookable_type", "booking_date")


@admin.register(ResourceLock)
class ResourceLockAdmin(admin.ModelAdmin):
    list_display = ("bookable_type", "bookable_id", "booking_date")
