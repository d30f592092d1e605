"""Serializers for discount lookups."""

from __future__ import annotations

from django.conf import settings  # type: ignore
from rest_framework import serializers  # type: ignore

from apps.pricing.serializers import OrderContextSerializer

from .models import GiftCard, Scope


class PromoValidateSerializer(OrderContextSerializer):
    """Order context plus the code to check; the code is mandatory here."""

    promo_code = serializers.CharField(max_length=50)


class GiftCardCheckSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=20)


class GiftCardPurchaseSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    recipient_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    recipient_email = serializers.EmailField(required=False, allow_blank=True, default="")
    message = serializers.CharField(required=False, allow_blank=True, default="")
    applies_to = serializers.ChoiceField(choices=Scope.choices, default=Scope.ALL)

    def validate_amount(self, value):  # type: ignore
        low, high = settings.GIFT_CARD_MIN_AMOUNT, settings.GIFT_CARD_MAX_AMOUNT
        if not low <= value <= high:
            raise serializers.ValidationError(f"Amount must be between {low} and {high}")
        return value


class GiftCardSerializer(serializers.ModelSerializer):
    """Purchased card as its buyer sees it; the code is shown once the card is paid."""

    code = serializers.SerializerMethodField()

    class Meta:
        model = GiftCard
        fields = (
            "id",
            "code",
            "status",
            "original_amount",
            "remaining_balance",
            "currency",
            "applies_to",
            "valid_until",
            "recipient_name",
            "recipient_email",
            "activated_at",
        )
        read_only_fields = fields

    def get_code(self, obj):  # type: ignore
        return obj.code if obj.status != GiftCard.Status.PENDING else None
