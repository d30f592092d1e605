"""Serializers for the booking domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Booking


class BookingSerializer(serializers.ModelSerializer):
    """Full booking representation including the price snapshot."""

    class Meta:
        model = Booking
        fields = [
            "reference",
            "bookable_type",
            "bookable_id",
            "booking_date",
            "start_time",
            "end_time",
            "duration_hours",
            "party_size",
            "package_id",
            "base_price",
            "subtotal",
            "applied_discounts",
            "discount_total",
            "total_price",
            "currency",
            "status",
            "payment_method",
            "expires_at",
            "paid_at",
            "cancelled_at",
            "cancellation_reason",
            "price_breakdown",
            "created_at",
        ]
        read_only_fields = fields


class BookingCreatedSerializer(serializers.ModelSerializer):
    class Meta:
        model = Booking
        fields = ["reference", "status", "total_price", "currency", "expires_at"]
        read_only_fields = fields


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class PaySerializer(serializers.Serializer):
    provider = serializers.CharField(max_length=30)
