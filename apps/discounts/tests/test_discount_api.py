"""Integration tests for the discount lookup endpoints."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.catalog.models import Vessel
from apps.discounts import giftcards
from apps.discounts.cashback import post_entry
from apps.discounts.models import CashbackLedgerEntry, GiftCard, GiftCardTransaction, PromoCode


class DiscountAPITests(APITestCase):
    def setUp(self) -> None:
        self.user = get_user_model().objects.create_user(username="guest", password="GuestPass123")
        self.vessel = Vessel.objects.create(name="Phi Phi Runner", capacity=10, price_per_hour=Decimal("2500"))
        PromoCode.objects.create(code="SAVE10", kind=PromoCode.Kind.PERCENTAGE, value=Decimal("10"))

    def _order(self, **extra) -> dict:
        payload = {
            "bookable_type": "vessel",
            "bookable_id": self.vessel.pk,
            "date": str(date.today() + timedelta(days=5)),
            "duration_hours": 4,
            "party_size": 2,
        }
        payload.update(extra)
        return payload

    def test_valid_promo(self) -> None:
        response = self.client.post(reverse("promo-validate"), self._order(promo_code="save10"), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["valid"])
        self.assertEqual(response.data["discount"]["amount"], "1000.00")
        self.assertEqual(response.data["total"], "9000.00")

    def test_unknown_promo(self) -> None:
        response = self.client.post(reverse("promo-validate"), self._order(promo_code="WHAT"), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["valid"])
        self.assertEqual(response.data["rejection"]["reason"], "NOT_FOUND")

    def test_promo_code_is_required(self) -> None:
        response = self.client.post(reverse("promo-validate"), self._order(), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_gift_card_check_requires_login(self) -> None:
        response = self.client.post(reverse("gift-card-check"), {"code": "AAAA-BBBB-CCCC"}, format="json")

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_gift_card_check(self) -> None:
        card = giftcards.activate(giftcards.issue(Decimal("1500")).pk)
        self.client.force_authenticate(self.user)

        response = self.client.post(reverse("gift-card-check"), {"code": card.code.lower()}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["valid"])
        self.assertEqual(response.data["remaining_balance"], "1500.00")

    def test_unknown_gift_card(self) -> None:
        self.client.force_authenticate(self.user)

        response = self.client.post(reverse("gift-card-check"), {"code": "AAAA-BBBB-CCCC"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data, {"valid": False})

    def test_cashback_balance(self) -> None:
        post_entry(self.user.id, CashbackLedgerEntry.Type.EARNED, Decimal("320"))
        self.client.force_authenticate(self.user)

        response = self.client.get(reverse("cashback-balance"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["balance"], "320.00")


class GiftCardPurchaseAPITests(APITestCase):
    def setUp(self) -> None:
        self.user = get_user_model().objects.create_user(username="buyer", password="BuyerPass123")
        self.staff = get_user_model().objects.create_user(username="desk", password="DeskPass123", is_staff=True)
        self.vessel = Vessel.objects.create(name="Similan Queen", capacity=10, price_per_hour=Decimal("2500"))

    def _purchase(self, **extra):
        payload = {"amount": "3000", "recipient_name": "Nok", "recipient_email": "nok@example.com"}
        payload.update(extra)
        self.client.force_authenticate(self.user)
        return self.client.post(reverse("gift-card-purchase"), payload, format="json")

    def _activate(self, card_id):
        self.client.force_authenticate(self.staff)
        return self.client.post(reverse("gift-card-activate", args=[card_id]), format="json")

    def test_purchase_creates_pending_card_without_code(self) -> None:
        response = self._purchase()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], "pending")
        self.assertIsNone(response.data["code"])
        card = GiftCard.objects.get(pk=response.data["id"])
        self.assertEqual(card.purchaser_user_id, self.user.id)
        self.assertEqual(card.original_amount, Decimal("3000.00"))
        self.assertFalse(card.transactions.exists())

    def test_purchase_amount_limits(self) -> None:
        for amount in ("999.99", "500000.01"):
            response = self._purchase(amount=amount)
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertIn("amount", response.data)
        self.assertFalse(GiftCard.objects.exists())

    def test_purchase_requires_login(self) -> None:
        response = self.client.post(reverse("gift-card-purchase"), {"amount": "3000"}, format="json")

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_only_staff_activate(self) -> None:
        card_id = self._purchase().data["id"]
        self.client.force_authenticate(self.user)

        response = self.client.post(reverse("gift-card-activate", args=[card_id]), format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(GiftCard.objects.get(pk=card_id).status, GiftCard.Status.PENDING)

    def test_activated_card_pays_for_a_quote(self) -> None:
        card_id = self._purchase().data["id"]

        response = self._activate(card_id)

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "active")
        code = response.data["code"]
        card = GiftCard.objects.get(pk=card_id)
        self.assertEqual(code, card.code)
        purchase = card.transactions.get(type=GiftCardTransaction.Type.PURCHASE)
        self.assertEqual(purchase.note, f"Purchase paid, confirmed by staff #{self.staff.id}")

        order = {
            "bookable_type": "vessel",
            "bookable_id": self.vessel.pk,
            "date": str(date.today() + timedelta(days=5)),
            "duration_hours": 4,
            "party_size": 2,
            "gift_card_code": code,
        }
        quote = self.client.post(reverse("price-quote"), order, format="json")
        self.assertEqual(quote.status_code, status.HTTP_200_OK, quote.data)
        self.assertEqual(quote.data["total"], "7000.00")

    def test_activation_is_idempotent(self) -> None:
        card_id = self._purchase().data["id"]

        self._activate(card_id)
        response = self._activate(card_id)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(GiftCardTransaction.objects.filter(card_id=card_id).count(), 1)

    def test_cancelled_card_cannot_be_activated(self) -> None:
        card_id = self._purchase().data["id"]
        GiftCard.objects.filter(pk=card_id).update(status=GiftCard.Status.CANCELLED)

        response = self._activate(card_id)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "GIFT_CARD_NOT_PENDING")

    def test_unknown_card(self) -> None:
        self.assertEqual(self._activate(9999).status_code, status.HTTP_404_NOT_FOUND)
