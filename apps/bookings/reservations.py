"""Availability checks and reservation holds.

All reservations for one ``(bookable_type, bookable_id, booking_date)``
key run with that key's ``ResourceLock`` row locked, so two requests
for overlapping windows are serialized and exactly one of them wins.
SQLite ignores row locks; there the settings open every transaction
with BEGIN IMMEDIATE, which serializes writers on the database lock.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore
from django.utils import timezone  # type: ignore

from apps.catalog.gateway import CatalogGateway, get_catalog_gateway
from apps.discounts.quotes import Rejection
from shared.application.uow import DjangoUnitOfWork

from .events import BookingCreated
from .models import Booking, ReservationHold, ResourceLock, generate_reference

logger = logging.getLogger(__name__)

RESERVATION = "reservation"
SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"


def _lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


def lock_resource(bookable_type: str, bookable_id: int, booking_date) -> ResourceLock:
    """Fetch (creating on first use) and row-lock the resource key. Call inside a transaction."""
    ResourceLock.objects.get_or_create(
        bookable_type=bookable_type,
        bookable_id=bookable_id,
        booking_date=booking_date,
    )
    return _lock_queryset_if_possible(ResourceLock.objects.all()).get(
        bookable_type=bookable_type,
        bookable_id=bookable_id,
        booking_date=booking_date,
    )


def overlapping_holds(bookable_type: str, bookable_id: int, booking_date, start, end):
    return ReservationHold.objects.filter(
        bookable_type=bookable_type,
        bookable_id=bookable_id,
        booking_date=booking_date,
        start_time__lt=end,
        end_time__gt=start,
    ).select_related("booking")


def release(booking: Booking) -> int:
    """Drop the booking's hold. Safe to call when there is none."""
    deleted, _ = ReservationHold.objects.filter(booking=booking).delete()
    return deleted


def is_available(order, *, now=None) -> bool:
    """Read-only check used by the quote screen; ``reserve`` is the authority."""
    now = now or timezone.now()
    window = order.window
    for hold in overlapping_holds(order.bookable_type, order.bookable_id, order.date, window.start, window.end):
        if not hold.booking.is_overdue(now):
            return False
    return True


def reserve(
    order,
    breakdown,
    *,
    gateway: Optional[CatalogGateway] = None,
    now=None,
) -> Union[ReservationHold, Rejection]:
    """
    Create a pending booking and its hold, or return a rejection.

    Pending bookings past their TTL found in the way are expired on the
    spot and do not block the slot.
    """
    from . import state_machine

    gateway = gateway or get_catalog_gateway()
    now = now or timezone.now()

    bookable = gateway.get_bookable(order.bookable_type, order.bookable_id)
    if order.party_size > bookable.capacity:
        return Rejection(
            RESERVATION,
            CAPACITY_EXCEEDED,
            "",
            f"{bookable.name} takes at most {bookable.capacity} guests",
        )

    window = order.window
    with DjangoUnitOfWork() as uow:
        lock_resource(order.bookable_type, order.bookable_id, order.date)

        for hold in overlapping_holds(order.bookable_type, order.bookable_id, order.date, window.start, window.end):
            other = hold.booking
            if other.is_overdue(now):
                state_machine.expire_locked(other, uow, now=now)
                continue
            logger.info(
                f"Slot {order.bookable_type}:{order.bookable_id} {order.date} {window.start}-{window.end} "
                f"is held by {other.reference}"
            )
            return Rejection(RESERVATION, SLOT_UNAVAILABLE, "", "The selected time is no longer available")

        booking = Booking.objects.create(
            reference=generate_reference(),
            user_id=order.user_id,
            bookable_type=order.bookable_type,
            bookable_id=order.bookable_id,
            booking_date=order.date,
            start_time=window.start,
            end_time=window.end,
            duration_hours=order.duration_hours,
            party_size=order.party_size,
            package_id=breakdown.package_id,
            base_price=breakdown.base_price,
            subtotal=breakdown.subtotal,
            applied_discounts=[d.to_dict() for d in breakdown.discounts],
            discount_total=breakdown.discount_total,
            total_price=breakdown.total,
            currency=breakdown.currency,
            price_breakdown=breakdown.to_dict(),
            expires_at=now + settings.BOOKING_PENDING_TTL,
        )
        hold = ReservationHold.objects.create(
            booking=booking,
            bookable_type=booking.bookable_type,
            bookable_id=booking.bookable_id,
            booking_date=booking.booking_date,
            start_time=booking.start_time,
            end_time=booking.end_time,
        )
        uow.add_event(
            BookingCreated(
                aggregate_id=booking.reference,
                reference=booking.reference,
                user_id=booking.user_id,
                total_price=booking.total_price,
            )
        )

    logger.info(f"Booking {booking.reference} reserved until {booking.expires_at}, total {booking.total_price}")
    return hold
