"""Discount lookups used by checkout forms, and gift card purchases."""

from __future__ import annotations

from django.shortcuts import get_object_or_404  # type: ignore
from rest_framework import permissions, status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.pricing.composer import compose

from . import cashback, giftcards
from .models import GiftCard
from .quotes import DiscountKind
from .serializers import (
    GiftCardCheckSerializer,
    GiftCardPurchaseSerializer,
    GiftCardSerializer,
    PromoValidateSerializer,
)


class PromoValidateView(APIView):
    """Quote the order with the promo code and report whether it applies."""

    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = PromoValidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user_id = request.user.id if request.user.is_authenticated else None
        breakdown = compose(serializer.to_order(user_id=user_id))

        applied = breakdown.discount(DiscountKind.PROMO)
        if applied is not None:
            return Response({"valid": True, "discount": applied.to_dict(), "total": str(breakdown.total)})
        rejection = next((r for r in breakdown.rejections if r.kind == DiscountKind.PROMO), None)
        return Response(
            {"valid": False, "rejection": rejection.to_dict() if rejection else None},
            status=status.HTTP_200_OK,
        )


class GiftCardCheckView(APIView):
    """Balance lookup by code. Reveals nothing about unknown codes."""

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = GiftCardCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        code = giftcards.normalize_code(serializer.validated_data["code"])
        card = GiftCard.objects.filter(code=code).first()
        if card is None:
            return Response({"valid": False}, status=status.HTTP_404_NOT_FOUND)
        usable = card.status == GiftCard.Status.ACTIVE and not card.is_expired()
        return Response(
            {
                "valid": usable,
                "code": card.code,
                "status": card.status,
                "remaining_balance": str(card.remaining_balance),
                "currency": card.currency,
                "valid_until": card.valid_until,
                "applies_to": card.applies_to,
            }
        )


class GiftCardPurchaseView(APIView):
    """
    Order a gift card. It is created pending and carries no usable code
    until staff confirm the payment.
    """

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = GiftCardPurchaseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        card = giftcards.issue(purchaser_user_id=request.user.id, **serializer.validated_data)
        return Response(GiftCardSerializer(card).data, status=status.HTTP_201_CREATED)


class GiftCardActivateView(APIView):
    """Staff confirm a gift card payment; the card becomes redeemable."""

    permission_classes = [permissions.IsAdminUser]

    def post(self, request, card_id, *args, **kwargs):  # type: ignore
        card = get_object_or_404(GiftCard, pk=card_id)
        card = giftcards.activate(card.pk, staff_user_id=request.user.id)
        return Response(GiftCardSerializer(card).data, status=status.HTTP_200_OK)


class CashbackBalanceView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, *args, **kwargs):  # type: ignore
        return Response({"balance": str(cashback.balance(request.user.id)), "currency": "THB"})
