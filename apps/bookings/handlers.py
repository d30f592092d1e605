"""Message bus subscribers for booking events."""

from __future__ import annotations

import structlog

from shared.application.message_bus import message_bus

from .events import BookingCancelled, BookingCreated, BookingExpired, BookingPaid

logger = structlog.get_logger(__name__)


@message_bus.subscribe(BookingCreated, BookingExpired)
def log_booking_event(event) -> None:
    logger.info("booking.event", event=type(event).__name__, reference=event.reference)


@message_bus.subscribe(BookingCancelled, BookingExpired)
def notify_guest(event) -> None:
    from apps.jobs.runner import enqueue

    template = "booking_expired" if isinstance(event, BookingExpired) else "booking_cancelled"
    enqueue("send_email", {"booking_reference": event.reference, "template": template})


@message_bus.subscribe(BookingPaid, BookingCancelled)
def nudge_job_runner(event) -> None:
    """The transition queued jobs; let a worker pick them up without waiting for beat."""
    from apps.jobs.tasks import process_due_jobs

    logger.info("booking.event", event=type(event).__name__, reference=event.reference)
    process_due_jobs.delay()
