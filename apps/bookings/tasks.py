"""Celery tasks for the booking lifecycle."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from . import state_machine

logger = logging.getLogger(__name__)


@shared_task(name="bookings.sweep_abandoned_bookings")
def sweep_abandoned_bookings() -> dict[str, int]:
    """
    Expire pending bookings whose payment window has elapsed.

    Runs every 5 minutes through Celery Beat. Each booking is expired
    at most once, so overlapping runs are harmless.

    Returns:
        dict: {"expired": number of bookings expired}
    """
    return {"expired": state_machine.sweep_abandoned()}


@shared_task(name="bookings.complete_past_bookings")
def complete_past_bookings() -> dict[str, int]:
    """
    Mark paid bookings as completed once their date has passed.

    Runs hourly.

    Returns:
        dict: {"completed": number of bookings completed}
    """
    return {"completed": state_machine.complete_past()}
