"""Serializers for payment intents."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import PaymentIntent


class PaymentIntentSerializer(serializers.ModelSerializer):
    provider_amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    provider_currency = serializers.CharField(read_only=True)

    class Meta:
        model = PaymentIntent
        fields = [
            "id",
            "provider",
            "booking_reference",
            "amount",
            "currency",
            "provider_amount",
            "provider_currency",
            "status",
            "checkout",
            "failure_reason",
            "created_at",
        ]
        read_only_fields = fields


class PromptPayConfirmSerializer(serializers.Serializer):
    transaction_reference = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
