"""Price composition: rules, packages and the discount waterfall."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.catalog.models import Addon
from apps.discounts import giftcards
from apps.discounts.cashback import post_entry
from apps.discounts.models import CashbackLedgerEntry, PromoCode
from apps.discounts.quotes import DiscountKind, RejectionReason
from apps.pricing.composer import compose
from apps.pricing.models import Package, PricingRule


def _active_card(amount: str):
    card = giftcards.issue(Decimal(amount))
    return giftcards.activate(card.pk)


@pytest.mark.django_db
def test_scenario_a_total(user, order_for):
    PromoCode.objects.create(code="SAVE10", kind=PromoCode.Kind.PERCENTAGE, value=Decimal("10"))
    card = _active_card("500")
    post_entry(user.id, CashbackLedgerEntry.Type.EARNED, Decimal("2000"), description="opening balance")

    breakdown = compose(
        order_for(
            user_id=user.id,
            promo_code="save10",
            gift_card_code=card.code,
            cashback_amount=Decimal("3000"),
        )
    )

    assert breakdown.subtotal == Decimal("10000.00")
    assert breakdown.discount(DiscountKind.PROMO).amount == Decimal("1000.00")
    assert breakdown.discount(DiscountKind.GIFT_CARD).amount == Decimal("500.00")
    assert breakdown.discount(DiscountKind.CASHBACK).amount == Decimal("2000.00")
    assert breakdown.total == Decimal("6500.00")
    assert breakdown.rejections == []


@pytest.mark.django_db
def test_cashback_is_capped_by_order_share(user, order_for):
    post_entry(user.id, CashbackLedgerEntry.Type.EARNED, Decimal("9000"))

    breakdown = compose(order_for(user_id=user.id, cashback_amount=Decimal("9000")))

    assert breakdown.discount(DiscountKind.CASHBACK).amount == Decimal("5000.00")
    assert breakdown.total == Decimal("5000.00")


@pytest.mark.django_db
def test_total_stays_within_subtotal_when_discounts_exceed_it(user, order_for):
    PromoCode.objects.create(code="FLAT", kind=PromoCode.Kind.FIXED, value=Decimal("9500"))
    card = _active_card("5000")
    post_entry(user.id, CashbackLedgerEntry.Type.EARNED, Decimal("5000"))

    breakdown = compose(
        order_for(user_id=user.id, promo_code="FLAT", gift_card_code=card.code, cashback_amount=Decimal("5000"))
    )

    assert breakdown.discount(DiscountKind.GIFT_CARD).amount == Decimal("500.00")
    # nothing left for cashback to cover
    assert breakdown.discount(DiscountKind.CASHBACK) is None
    assert breakdown.total == Decimal("0.00")
    assert Decimal("0") <= breakdown.total <= breakdown.subtotal


@pytest.mark.django_db
def test_rejected_promo_is_reported_not_applied(order_for):
    breakdown = compose(order_for(promo_code="NOPE"))

    assert breakdown.total == breakdown.subtotal
    assert [r.reason for r in breakdown.rejections] == [RejectionReason.NOT_FOUND]


@pytest.mark.django_db
def test_deepest_non_stackable_discount_wins(order_for, trip_date):
    PricingRule.objects.create(
        name="Early bird",
        rule_type=PricingRule.RuleType.EARLY_BIRD,
        days_before_min=7,
        adjustment_type=PricingRule.AdjustmentType.PERCENTAGE,
        adjustment_value=Decimal("-10"),
        priority=10,
    )
    PricingRule.objects.create(
        name="Low season",
        rule_type=PricingRule.RuleType.SEASON,
        start_date=trip_date - timedelta(days=5),
        end_date=trip_date + timedelta(days=5),
        adjustment_type=PricingRule.AdjustmentType.PERCENTAGE,
        adjustment_value=Decimal("-15"),
        priority=5,
    )

    breakdown = compose(order_for())

    assert [a.name for a in breakdown.rule_adjustments] == ["Low season"]
    assert breakdown.adjusted_base == Decimal("8500.00")


@pytest.mark.django_db
def test_stackable_rules_and_premiums_combine(order_for, trip_date):
    PricingRule.objects.create(
        name="Holiday",
        rule_type=PricingRule.RuleType.SPECIAL_DATE,
        start_date=trip_date,
        end_date=trip_date,
        adjustment_type=PricingRule.AdjustmentType.PERCENTAGE,
        adjustment_value=Decimal("20"),
        priority=20,
    )
    PricingRule.objects.create(
        name="Group",
        rule_type=PricingRule.RuleType.GROUP_SIZE,
        min_guests=4,
        adjustment_type=PricingRule.AdjustmentType.FIXED,
        adjustment_value=Decimal("-500"),
        is_stackable=True,
    )
    PricingRule.objects.create(
        name="Long charter",
        rule_type=PricingRule.RuleType.DURATION,
        min_duration_hours=6,
        adjustment_type=PricingRule.AdjustmentType.PERCENTAGE,
        adjustment_value=Decimal("-50"),
    )

    breakdown = compose(order_for())

    assert [a.name for a in breakdown.rule_adjustments] == ["Holiday", "Group"]
    assert breakdown.adjusted_base == Decimal("11500.00")


@pytest.mark.django_db
def test_package_bundles_addons_at_a_discount(order_for, vessel):
    catering = Addon.objects.create(name="Catering", price=Decimal("250"), price_type=Addon.PriceType.PER_PERSON)
    package = Package.objects.create(
        slug="island-lunch",
        name="Island lunch",
        base_type="vessel",
        base_id=vessel.pk,
        included_addons=[{"addon_id": catering.pk, "quantity": 1}],
        discount_percent=Decimal("10"),
    )

    breakdown = compose(order_for(package_id=package.pk))

    assert breakdown.package_id == package.pk
    assert breakdown.subtotal == Decimal("11000.00")
    assert breakdown.discount(DiscountKind.PACKAGE).amount == Decimal("1100.00")
    assert breakdown.total == Decimal("9900.00")


@pytest.mark.django_db
def test_promo_on_bundled_addon_conflicts_with_package(order_for, vessel):
    catering = Addon.objects.create(name="Catering", price=Decimal("250"), price_type=Addon.PriceType.PER_PERSON)
    package = Package.objects.create(
        slug="island-lunch",
        name="Island lunch",
        base_type="vessel",
        included_addons=[{"addon_id": catering.pk}],
        discount_percent=Decimal("10"),
    )
    PromoCode.objects.create(
        code="FREELUNCH",
        kind=PromoCode.Kind.FIXED,
        value=Decimal("1000"),
        addon_ids=[catering.pk],
    )

    breakdown = compose(order_for(package_id=package.pk, promo_code="FREELUNCH"))

    assert breakdown.discount(DiscountKind.PROMO) is None
    assert [r.reason for r in breakdown.rejections] == [RejectionReason.PACKAGE_PROMO_CONFLICT]
    assert breakdown.discount(DiscountKind.PACKAGE) is not None


@pytest.mark.django_db
def test_package_for_other_bookable_is_rejected(order_for, vessel):
    package = Package.objects.create(slug="other", name="Other", base_type="tour", discount_percent=Decimal("10"))

    breakdown = compose(order_for(package_id=package.pk))

    assert breakdown.package_id is None
    assert [r.reason for r in breakdown.rejections] == [RejectionReason.PACKAGE_MISMATCH]


@pytest.mark.django_db
def test_expired_promo_is_rejected(order_for):
    PromoCode.objects.create(
        code="OLD",
        kind=PromoCode.Kind.PERCENTAGE,
        value=Decimal("10"),
        valid_until=timezone.now() - timedelta(days=1),
    )

    breakdown = compose(order_for(promo_code="OLD"))

    assert [r.reason for r in breakdown.rejections] == [RejectionReason.EXPIRED]
