"""Shared pytest fixtures for the settlement apps."""

from __future__ import annotations

from datetime import date, time, timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model

from apps.catalog.models import Vessel
from apps.pricing.context import OrderContext


@pytest.fixture
def user(db):
    return get_user_model().objects.create_user(
        username="guest",
        email="guest@example.com",
        password="GuestPass123",
    )


@pytest.fixture
def staff(db):
    return get_user_model().objects.create_user(
        username="operator",
        email="operator@example.com",
        password="OperatorPass123",
        is_staff=True,
    )


@pytest.fixture
def vessel(db):
    # 4 hours at 2,500 gives the 10,000 subtotal used throughout
    return Vessel.objects.create(
        name="Sea Breeze",
        type=Vessel.Type.CATAMARAN,
        capacity=12,
        price_per_hour=Decimal("2500.00"),
        price_per_day=Decimal("18000.00"),
    )


@pytest.fixture
def trip_date() -> date:
    return date.today() + timedelta(days=10)


@pytest.fixture
def order_for(vessel, trip_date):
    def build(**overrides) -> OrderContext:
        values = {
            "bookable_type": "vessel",
            "bookable_id": vessel.pk,
            "date": trip_date,
            "start_time": time(9, 0),
            "duration_hours": 4,
            "party_size": 4,
        }
        values.update(overrides)
        return OrderContext(**values)

    return build


@pytest.fixture
def make_booking(order_for):
    """Quote and reserve an order; returns the pending booking."""
    from apps.bookings.reservations import reserve
    from apps.pricing.composer import compose

    def build(**overrides):
        order = order_for(**overrides)
        hold = reserve(order, compose(order))
        return hold.booking

    return build
