"""Reservation holds and slot locking."""

from __future__ import annotations

import threading
from datetime import time, timedelta

import pytest
from django.db import close_old_connections

from apps.bookings import reservations
from apps.bookings.models import Booking, ReservationHold, ResourceLock
from apps.discounts.quotes import Rejection
from apps.pricing.composer import compose


def test_reserve_creates_pending_booking_and_hold(order_for, settings):
    order = order_for()

    hold = reservations.reserve(order, compose(order))

    booking = hold.booking
    assert booking.status == Booking.Status.PENDING
    assert booking.reference.startswith(f"{settings.BOOKING_REFERENCE_PREFIX}-")
    assert (hold.start_time, hold.end_time) == (time(9, 0), time(13, 0))
    assert ResourceLock.objects.count() == 1


def test_overlapping_window_is_refused(order_for):
    first = order_for()
    reservations.reserve(first, compose(first))
    second = order_for(start_time=time(12, 0))

    result = reservations.reserve(second, compose(second))

    assert isinstance(result, Rejection)
    assert result.reason == reservations.SLOT_UNAVAILABLE
    assert Booking.objects.count() == 1


def test_overdue_pending_booking_does_not_block(order_for):
    first = order_for()
    stale = reservations.reserve(first, compose(first)).booking
    later = stale.expires_at + timedelta(seconds=1)

    result = reservations.reserve(first, compose(first), now=later)

    assert not isinstance(result, Rejection)
    stale.refresh_from_db()
    assert stale.status == Booking.Status.EXPIRED
    assert ReservationHold.objects.get().booking == result.booking


def test_is_available(order_for):
    order = order_for()
    assert reservations.is_available(order)

    reservations.reserve(order, compose(order))

    assert not reservations.is_available(order)
    assert reservations.is_available(order_for(start_time=time(14, 0)))


def test_capacity_is_checked_first(order_for):
    order = order_for(party_size=50)

    result = reservations.reserve(order, compose(order))

    assert result.reason == reservations.CAPACITY_EXCEEDED
    assert not ResourceLock.objects.exists()


@pytest.mark.django_db(transaction=True)
def test_concurrent_reservations_one_wins(order_for):
    order = order_for()
    breakdown = compose(order)
    barrier = threading.Barrier(2)
    results = []

    def attempt():
        try:
            barrier.wait()
            results.append(reservations.reserve(order, breakdown))
        finally:
            close_old_connections()

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    winners = [r for r in results if isinstance(r, ReservationHold)]
    losers = [r for r in results if isinstance(r, Rejection)]
    assert len(winners) == 1
    assert [r.reason for r in losers] == [reservations.SLOT_UNAVAILABLE]
    assert Booking.objects.count() == 1
