"""Serializers for price quotes."""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers  # type: ignore

from apps.catalog.models import BookableType
from shared.domain.value_objects import TimeWindow

from .context import DEFAULT_START_TIME, OrderContext


class AddonItemSerializer(serializers.Serializer):
    addon_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1, default=1)


class OrderContextSerializer(serializers.Serializer):
    """Order input shared by the quote and booking endpoints."""

    bookable_type = serializers.ChoiceField(choices=BookableType.choices)
    bookable_id = serializers.IntegerField(min_value=1)
    date = serializers.DateField()
    start_time = serializers.TimeField(required=False)
    duration_hours = serializers.IntegerField(min_value=1, max_value=24)
    party_size = serializers.IntegerField(min_value=1)
    package_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    extra_addons = AddonItemSerializer(many=True, required=False)
    promo_code = serializers.CharField(max_length=50, required=False, allow_blank=True)
    gift_card_code = serializers.CharField(max_length=20, required=False, allow_blank=True)
    cashback_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False
    )

    def validate(self, attrs):  # type: ignore
        start = attrs.get("start_time") or DEFAULT_START_TIME
        try:
            TimeWindow.from_duration(start, attrs["duration_hours"])
        except ValueError as e:
            raise serializers.ValidationError({"duration_hours": [str(e)]}) from None
        return attrs

    def to_order(self, user_id=None) -> OrderContext:
        data = dict(self.validated_data)
        extras = tuple(dict(item) for item in data.pop("extra_addons", []))
        if data.get("start_time") is None:
            data.pop("start_time", None)
        return OrderContext(
            user_id=user_id,
            extra_addons=extras,
            promo_code=data.pop("promo_code", "") or "",
            gift_card_code=data.pop("gift_card_code", "") or "",
            cashback_amount=data.pop("cashback_amount", None) or Decimal("0.00"),
            **data,
        )
