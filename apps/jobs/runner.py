"""Job queue operations.

Leasing is a compare-and-set on ``reserved_at``: a worker only owns a
job if its conditional UPDATE changed the row, so concurrent runners
(the ``run_jobs`` command and the Celery beat task) never execute the
same job twice within a lease.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

import structlog
from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.db.models import F, Q  # type: ignore
from django.utils import timezone  # type: ignore

from shared.domain.errors import ProviderPermanentError, ValidationError

from .models import DeadLetterJob, Job

logger = structlog.get_logger(__name__)


class UnknownJobTypeError(LookupError):
    pass


class LeaseExpiredError(RuntimeError):
    """A worker took the job and never completed or released it."""


PERMANENT_ERRORS = (ValidationError, ProviderPermanentError, UnknownJobTypeError)


def enqueue(
    job_type: str,
    data: Optional[dict] = None,
    queue: str = "default",
    delay: int = 0,
    max_attempts: Optional[int] = None,
) -> Job:
    """Insert a job. Inside a transaction it becomes visible only on commit."""
    job = Job.objects.create(
        queue=queue,
        payload={"type": job_type, "data": data or {}},
        max_attempts=max_attempts or settings.JOB_MAX_ATTEMPTS,
        available_at=timezone.now() + timedelta(seconds=delay),
    )
    logger.info("job.enqueued", job_id=job.pk, job_type=job_type, queue=queue, delay=delay)
    return job


def _ready(queue: str, now):
    stale = now - timedelta(seconds=settings.JOB_LEASE_TIMEOUT)
    return (
        Job.objects.filter(queue=queue, available_at__lte=now)
        .filter(Q(reserved_at__isnull=True) | Q(reserved_at__lt=stale))
        .order_by("available_at", "id")
    )


def dequeue(queue: str = "default", now=None) -> Optional[Job]:
    """
    Lease the oldest ready job, or return None when the queue is idle.

    Taking over an abandoned lease counts as a failed attempt; a job
    whose attempts are already spent goes to the dead-letter queue
    instead of being handed out again.
    """
    now = now or timezone.now()
    for candidate in _ready(queue, now)[: settings.JOB_BATCH_SIZE]:
        seen = candidate.reserved_at
        claim = Job.objects.filter(pk=candidate.pk)
        if seen is None:
            taken = claim.filter(reserved_at__isnull=True).update(reserved_at=now)
        else:
            taken = claim.filter(reserved_at=seen).update(reserved_at=now, attempts=F("attempts") + 1)
        if taken != 1:
            logger.debug("job.lease_lost", job_id=candidate.pk)
            continue

        candidate.reserved_at = now
        if seen is None:
            return candidate
        logger.warning("job.lease_reclaimed", job_id=candidate.pk, job_type=candidate.job_type, attempts=candidate.attempts)
        if candidate.attempts >= candidate.max_attempts:
            dead_letter(candidate, LeaseExpiredError(f"lease taken at {seen.isoformat()} was never released"))
            continue
        candidate.attempts += 1
        return candidate
    return None


def complete(job: Job) -> None:
    Job.objects.filter(pk=job.pk).delete()
    logger.info("job.completed", job_id=job.pk, job_type=job.job_type)


@transaction.atomic
def dead_letter(job: Job, exc: BaseException) -> DeadLetterJob:
    dead = DeadLetterJob.objects.create(
        queue=job.queue,
        payload=job.payload,
        attempts=job.attempts,
        exception=f"{type(exc).__name__}: {exc}",
    )
    Job.objects.filter(pk=job.pk).delete()
    logger.error("job.dead_lettered", job_id=job.pk, job_type=job.job_type, attempts=job.attempts, error=str(exc))
    return dead


def fail(job: Job, exc: BaseException, now=None) -> Optional[DeadLetterJob]:
    """
    Release the job for a retry with exponential backoff, or dead-letter it.

    Returns the dead-letter row when the job has run out of attempts.
    """
    now = now or timezone.now()
    if job.attempts >= job.max_attempts:
        return dead_letter(job, exc)

    backoff = (2**job.attempts) * settings.JOB_BASE_DELAY
    job.available_at = now + timedelta(seconds=backoff)
    job.attempts += 1
    job.reserved_at = None
    job.save(update_fields=["available_at", "attempts", "reserved_at"])
    logger.warning(
        "job.retry_scheduled",
        job_id=job.pk,
        job_type=job.job_type,
        attempts=job.attempts,
        backoff=backoff,
        error=str(exc),
    )
    return None


def execute(job: Job) -> None:
    from .handlers import get_handler

    get_handler(job.job_type)(job.data)


def run_once(queue: str = "default", limit: Optional[int] = None) -> dict[str, int]:
    """Process up to ``limit`` ready jobs. Returns ``{processed, failed, dead}``."""
    limit = limit or settings.JOB_BATCH_SIZE
    counts = {"processed": 0, "failed": 0, "dead": 0}

    for _ in range(limit):
        job = dequeue(queue)
        if job is None:
            break
        try:
            execute(job)
        except PERMANENT_ERRORS as exc:
            dead_letter(job, exc)
            counts["dead"] += 1
        except Exception as exc:
            logger.exception("job.failed", job_id=job.pk, job_type=job.job_type)
            if fail(job, exc) is None:
                counts["failed"] += 1
            else:
                counts["dead"] += 1
        else:
            complete(job)
            counts["processed"] += 1

    if any(counts.values()):
        logger.info("jobs.batch_done", queue=queue, **counts)
    return counts


@transaction.atomic
def retry_dead_letter(dead_id: int) -> Job:
    """Move a dead-letter row back onto its queue with a fresh attempt budget."""
    dead = DeadLetterJob.objects.select_for_update().get(pk=dead_id)
    job = Job.objects.create(
        queue=dead.queue,
        payload=dead.payload,
        max_attempts=settings.JOB_MAX_ATTEMPTS,
    )
    dead.delete()
    logger.info("job.revived", dead_id=dead_id, job_id=job.pk, job_type=job.job_type)
    return job
