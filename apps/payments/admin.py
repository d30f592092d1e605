"""Admin registration for payments."""

from __future__ import annotations

from django.contrib import admin, messages

from apps.jobs.runner import enqueue
from shared.domain.errors import SettlementError

from . import gateway
from .models import PaymentIntent, ProcessedEvent, Provider, WebhookReceipt


@admin.register(PaymentIntent)
class PaymentIntentAdmin(admin.ModelAdmin):
    list_display = ("id", "booking_reference", "provider", "amount", "currency", "status", "created_at")
    list_filter = ("provider", "status")
    search_fields = ("booking_reference", "provider_reference", "idempotency_key")
    readonly_fields = (
        "id",
        "booking",
        "booking_reference",
        "amount",
        "currency",
        "provider_reference",
        "idempotency_key",
        "checkout",
        "metadata",
        "created_at",
        "updated_at",
        "completed_at",
    )
    actions = ["confirm_promptpay"]

    @admin.action(description="Confirm received PromptPay transfers")
    def confirm_promptpay(self, request, queryset):  # type: ignore
        for intent in queryset.filter(provider=Provider.PROMPTPAY):
            try:
                result = gateway.confirm_promptpay(intent.pk, staff_user_id=request.user.id)
            except SettlementError as exc:
                self.message_user(request, f"{intent.booking_reference}: {exc.detail}", messages.WARNING)
                continue
            self.message_user(request, f"{intent.booking_reference}: {result.status}")


@admin.register(ProcessedEvent)
class ProcessedEventAdmin(admin.ModelAdmin):
    list_display = ("provider", "provider_reference", "booking_reference", "outcome", "processed_at")
    list_filter = ("provider", "outcome")
    search_fields = ("provider_reference", "booking_reference")

    def has_change_permission(self, request, obj=None):  # type: ignore
        return False


@admin.register(WebhookReceipt)
class WebhookReceiptAdmin(admin.ModelAdmin):
    list_display = ("id", "provider", "status", "booking_reference", "provider_reference", "created_at")
    list_filter = ("provider", "status")
    search_fields = ("booking_reference", "provider_reference")
    readonly_fields = ("provider", "body", "remote_addr", "created_at", "processed_at")
    actions = ["reprocess"]

    @admin.action(description="Reprocess selected receipts")
    def reprocess(self, request, queryset):  # type: ignore
        count = 0
        for receipt in queryset.exclude(status=WebhookReceipt.Status.PROCESSED):
            receipt.status = WebhookReceipt.Status.RECEIVED
            receipt.save(update_fields=["status"])
            enqueue("process_payment_webhook", {"receipt_id": receipt.pk})
            count += 1
        self.message_user(request, f"Queued {count} receipts")
