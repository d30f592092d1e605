"""Job queue: leasing, retries with backoff and the dead-letter queue."""

from __future__ import annotations

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from apps.jobs import handlers, runner
from apps.jobs.models import DeadLetterJob, Job
from apps.jobs.tasks import process_due_jobs

pytestmark = pytest.mark.django_db


@pytest.fixture
def job_settings(settings):
    settings.JOB_BASE_DELAY = 60
    settings.JOB_LEASE_TIMEOUT = 300
    settings.JOB_MAX_ATTEMPTS = 3
    return settings


@pytest.fixture
def calls(monkeypatch):
    seen = []
    monkeypatch.setitem(handlers.HANDLERS, "record", seen.append)
    return seen


@pytest.fixture
def flaky(monkeypatch):
    def handler(data):
        raise RuntimeError("smtp unavailable")

    monkeypatch.setitem(handlers.HANDLERS, "flaky", handler)


def test_enqueue_defaults(job_settings):
    job = runner.enqueue("record", {"n": 1}, delay=30)

    assert job.payload == {"type": "record", "data": {"n": 1}}
    assert job.max_attempts == 3
    assert job.attempts == 0
    assert job.available_at > timezone.now() + timedelta(seconds=25)


def test_delayed_job_is_not_ready(job_settings):
    runner.enqueue("record", delay=60)

    assert runner.dequeue() is None


def test_lease_is_exclusive(job_settings):
    job = runner.enqueue("record")

    leased = runner.dequeue()

    assert leased.pk == job.pk
    assert leased.reserved_at is not None
    assert runner.dequeue() is None


def test_abandoned_lease_is_reclaimed(job_settings):
    job = runner.enqueue("record")
    first = runner.dequeue()

    later = first.reserved_at + timedelta(seconds=301)
    again = runner.dequeue(now=later)

    assert again.pk == job.pk
    assert again.reserved_at == later
    assert again.attempts == 1
    assert Job.objects.get(pk=job.pk).attempts == 1


def test_lease_abandoned_every_time_ends_in_dead_letter(job_settings):
    job = runner.enqueue("record")
    leased = runner.dequeue()

    # a worker that dies mid-job never calls fail(); each takeover is counted
    for expected in (1, 2, 3):
        leased = runner.dequeue(now=leased.reserved_at + timedelta(seconds=301))
        assert leased.attempts == expected

    assert runner.dequeue(now=leased.reserved_at + timedelta(seconds=301)) is None
    assert not Job.objects.filter(pk=job.pk).exists()
    dead = DeadLetterJob.objects.get()
    assert dead.payload == {"type": "record", "data": {}}
    assert dead.exception.startswith("LeaseExpiredError: lease taken at")


def test_jobs_run_in_availability_order(job_settings, calls):
    runner.enqueue("record", {"n": 2}, delay=0)
    first = runner.enqueue("record", {"n": 1})
    Job.objects.filter(pk=first.pk).update(available_at=timezone.now() - timedelta(minutes=5))

    counts = runner.run_once()

    assert counts == {"processed": 2, "failed": 0, "dead": 0}
    assert calls == [{"n": 1}, {"n": 2}]
    assert not Job.objects.exists()


def test_queues_are_separate(job_settings, calls):
    runner.enqueue("record", {"n": 1}, queue="mail")

    assert runner.run_once()["processed"] == 0
    assert runner.run_once("mail")["processed"] == 1


def test_backoff_then_dead_letter(job_settings, flaky):
    job = runner.enqueue("flaky", {"to": "guest@example.com"})
    Job.objects.filter(pk=job.pk).update(attempts=2)

    before = timezone.now()
    counts = runner.run_once()

    assert counts == {"processed": 0, "failed": 1, "dead": 0}
    job.refresh_from_db()
    assert job.attempts == 3
    assert job.reserved_at is None
    delay = (job.available_at - before).total_seconds()
    assert 240 <= delay < 245

    Job.objects.filter(pk=job.pk).update(available_at=timezone.now())
    counts = runner.run_once()

    assert counts == {"processed": 0, "failed": 0, "dead": 1}
    assert not Job.objects.exists()
    dead = DeadLetterJob.objects.get()
    assert dead.attempts == 3
    assert dead.job_type == "flaky"
    assert dead.payload["data"] == {"to": "guest@example.com"}
    assert "RuntimeError: smtp unavailable" in dead.exception


def test_backoff_grows_exponentially(job_settings):
    job = runner.enqueue("flaky")
    now = timezone.now()

    delays = []
    for _ in range(3):
        runner.fail(job, RuntimeError("boom"), now=now)
        delays.append((job.available_at - now).total_seconds())

    assert delays == [60, 120, 240]
    assert runner.fail(job, RuntimeError("boom"), now=now) is not None


def test_unknown_job_type_is_dead_lettered(job_settings):
    runner.enqueue("teleport", {"where": "moon"})

    counts = runner.run_once()

    assert counts["dead"] == 1
    assert "UnknownJobTypeError" in DeadLetterJob.objects.get().exception


def test_retry_dead_letter(job_settings, calls):
    runner.enqueue("teleport")
    runner.run_once()
    dead = DeadLetterJob.objects.get()
    dead.payload = {"type": "record", "data": {"n": 7}}
    dead.save()

    revived = runner.retry_dead_letter(dead.pk)

    assert revived.attempts == 0
    assert not DeadLetterJob.objects.exists()
    assert runner.run_once()["processed"] == 1
    assert calls == [{"n": 7}]


def test_celery_task_runs_a_batch(job_settings, calls):
    runner.enqueue("record", {"n": 1})

    assert process_due_jobs() == {"processed": 1, "failed": 0, "dead": 0}


def test_run_jobs_once(job_settings, calls):
    runner.enqueue("record", {"n": 1})
    out = StringIO()

    call_command("run_jobs", "--once", stdout=out)

    assert "processed=1 failed=0 dead=0" in out.getvalue()
    assert calls == [{"n": 1}]
