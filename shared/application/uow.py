"""
Unit of Work Pattern

Wraps a settlement operation in one database transaction and publishes
the domain events it raised only after that transaction commits.
"""

from typing import List
import logging

from django.db import transaction

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class DjangoUnitOfWork:
    """
    Django implementation of Unit of Work

    Usage:
        with DjangoUnitOfWork() as uow:
            booking = lock_booking(reference)
            ...  # ledger mutations, status change, job rows
            uow.add_event(BookingPaid(reference=booking.reference))
        # events are published after the outermost commit

    An exception raised inside the block rolls back every row written
    in it and discards the collected events.
    """

    def __init__(self, savepoint: bool = True):
        self._events: List[DomainEvent] = []
        self._atomic = transaction.atomic(savepoint=savepoint)

    def __enter__(self):
        self._atomic.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self._atomic.__exit__(exc_type, exc_val, exc_tb)

    def add_event(self, event: DomainEvent) -> None:
        self._events.append(event)

    def commit(self):
        """Schedule event publishing for after the database commit."""
        events = self._events.copy()
        self._events.clear()
        logger.debug(f"Committing unit of work with {len(events)} events")
        if events:
            transaction.on_commit(lambda: self._publish_events(events))

    def rollback(self):
        if self._events:
            logger.warning(f"Rolling back unit of work, discarding {len(self._events)} events")
        self._events.clear()

    def _publish_events(self, events: List[DomainEvent]):
        from shared.application.message_bus import message_bus

        logger.info(f"Publishing {len(events)} domain events after commit")
        message_bus.publish_events(events)
