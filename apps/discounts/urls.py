"""URL routing for discount lookups and gift card purchases."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import (
    CashbackBalanceView,
    GiftCardActivateView,
    GiftCardCheckView,
    GiftCardPurchaseView,
    PromoValidateView,
)

urlpatterns = [
    path("promo/validate/", PromoValidateView.as_view(), name="promo-validate"),
    path("gift-cards/", GiftCardPurchaseView.as_view(), name="gift-card-purchase"),
    path("gift-cards/check/", GiftCardCheckView.as_view(), name="gift-card-check"),
    path("gift-cards/<int:card_id>/activate/", GiftCardActivateView.as_view(), name="gift-card-activate"),
    path("cashback/balance/", CashbackBalanceView.as_view(), name="cashback-balance"),
]
