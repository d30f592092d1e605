"""Celery tasks for the discount ledgers."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from . import giftcards

logger = logging.getLogger(__name__)


@shared_task(name="discounts.expire_gift_cards")
def expire_gift_cards() -> dict[str, int]:
    """
    Expire active gift cards past ``valid_until``.

    Runs daily through Celery Beat.

    Returns:
        dict: {"expired": number of cards expired}
    """
    return {"expired": giftcards.expire_overdue()}
