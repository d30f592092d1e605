"""Celery driver for the job queue."""

from __future__ import annotations

from celery import shared_task  # type: ignore

from . import runner


@shared_task(name="jobs.process_due_jobs")
def process_due_jobs(queue: str = "default") -> dict[str, int]:
    """
    Run one batch of ready jobs.

    Scheduled every 5 seconds through Celery Beat and nudged after
    payments and cancellations. Leases keep it safe alongside
    ``manage.py run_jobs``.

    Returns:
        dict: {"processed": n, "failed": n, "dead": n}
    """
    return runner.run_once(queue)
