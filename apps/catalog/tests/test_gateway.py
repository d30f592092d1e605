"""Local catalog lookups used by pricing and reservations."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from apps.catalog.gateway import DjangoCatalogGateway, get_catalog_gateway
from apps.catalog.models import Addon, Tour
from shared.domain.errors import ValidationError

pytestmark = pytest.mark.django_db

DAY = date(2026, 12, 1)


@pytest.fixture
def gateway():
    return DjangoCatalogGateway()


def test_default_gateway():
    assert isinstance(get_catalog_gateway(), DjangoCatalogGateway)


def test_vessel_hourly_and_day_rates(gateway, vessel):
    assert gateway.get_rate("vessel", vessel.pk, DAY, 4, 2) == Decimal("10000.00")
    assert gateway.get_rate("vessel", vessel.pk, DAY, 8, 2) == Decimal("18000.00")


def test_tour_is_priced_per_guest(gateway):
    tour = Tour.objects.create(name="Phi Phi", category="island", price_adult=Decimal("1800"))

    bookable = gateway.get_bookable("tour", tour.pk)

    assert bookable.scope == "tours"
    assert bookable.kind == "island"
    assert gateway.get_rate("tour", tour.pk, DAY, 8, 3) == Decimal("5400.00")


def test_inactive_bookable_is_unknown(gateway, vessel):
    vessel.is_active = False
    vessel.save()

    with pytest.raises(ValidationError) as exc_info:
        gateway.get_bookable("vessel", vessel.pk)

    assert exc_info.value.code == "UNKNOWN_BOOKABLE"


def test_unknown_bookable_type(gateway):
    with pytest.raises(ValidationError):
        gateway.get_bookable("submarine", 1)


def test_addon_lines(gateway):
    lunch = Addon.objects.create(name="Lunch", price=Decimal("350"), price_type=Addon.PriceType.PER_PERSON)
    gear = Addon.objects.create(name="Snorkel gear", price=Decimal("200"), price_type=Addon.PriceType.PER_HOUR)
    cake = Addon.objects.create(name="Cake", price=Decimal("900"))

    lines = gateway.price_addons(
        [{"addon_id": cake.pk}, {"addon_id": lunch.pk, "quantity": 1}, {"addon_id": gear.pk, "quantity": 2}],
        party_size=4,
        duration_hours=3,
    )

    assert [(line.name, line.amount) for line in lines] == [
        ("Lunch", Decimal("1400.00")),
        ("Snorkel gear", Decimal("1200.00")),
        ("Cake", Decimal("900.00")),
    ]


def test_unknown_addon(gateway):
    with pytest.raises(ValidationError) as exc_info:
        gateway.price_addons([{"addon_id": 999}], party_size=2, duration_hours=4)

    assert exc_info.value.code == "UNKNOWN_ADDON"
