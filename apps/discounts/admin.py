"""Admin registration for the discount ledgers."""

from __future__ import annotations

from django.contrib import admin

from . import giftcards
from .models import (
    CashbackLedgerEntry,
    GiftCard,
    GiftCardTransaction,
    LoyaltyAccount,
    LoyaltyTier,
    PromoCode,
    PromoCodeUsage,
)


@admin.register(PromoCode)
class PromoCodeAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "kind",
        "value",
        "applies_to",
        "used_count",
        "usage_limit",
        "valid_until",
        "is_active",
    )
    list_filter = ("kind", "applies_to", "is_active")
    search_fields = ("code", "description")
    readonly_fields = ("used_count", "created_at")


@admin.register(PromoCodeUsage)
class PromoCodeUsageAdmin(admin.ModelAdmin):
    list_display = ("promo", "user_id", "booking", "discount_amount", "created_at")
    search_fields = ("promo__code", "booking__reference")
    readonly_fields = ("promo", "user_id", "booking", "discount_amount", "created_at")


class GiftCardTransactionInline(admin.TabularInline):
    model = GiftCardTransaction
    extra = 0
    can_delete = False
    readonly_fields = ("type", "amount", "balance_before", "balance_after", "booking", "note", "created_at")


@admin.register(GiftCard)
class GiftCardAdmin(admin.ModelAdmin):
    list_display = ("code", "status", "original_amount", "remaining_balance", "valid_until", "recipient_email")
    list_filter = ("status", "applies_to")
    search_fields = ("code", "recipient_email", "recipient_name")
    readonly_fields = ("code", "status", "remaining_balance", "activated_at", "created_at", "updated_at")
    inlines = [GiftCardTransactionInline]

    def save_model(self, request, obj, form, change):  # type: ignore
        if not change:
            obj.code = giftcards.generate_code()
            obj.remaining_balance = obj.original_amount
        super().save_model(request, obj, form, change)


@admin.register(LoyaltyTier)
class LoyaltyTierAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "min_bookings", "min_spent", "cashback_percent", "sort_order", "is_active")
    ordering = ("sort_order",)


@admin.register(LoyaltyAccount)
class LoyaltyAccountAdmin(admin.ModelAdmin):
    list_display = ("user_id", "tier", "total_bookings", "total_spent", "updated_at")
    list_filter = ("tier",)
    search_fields = ("user_id",)


@admin.register(CashbackLedgerEntry)
class CashbackLedgerEntryAdmin(admin.ModelAdmin):
    list_display = ("user_id", "type", "amount", "balance_after", "booking", "created_at")
    list_filter = ("type",)
    search_fields = ("user_id", "booking__reference")

    def has_change_permission(self, request, obj=None):  # type: ignore
        return False

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False
