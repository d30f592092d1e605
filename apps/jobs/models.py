"""Job queue tables."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore


class Job(models.Model):
    """
    Pending unit of work. ``payload`` is ``{"type": ..., "data": {...}}``.

    A job is leased by stamping ``reserved_at``; a lease older than
    ``JOB_LEASE_TIMEOUT`` is considered abandoned and can be taken over.
    """

    queue = models.CharField(max_length=50, default="default")
    payload = models.JSONField()
    attempts = models.PositiveSmallIntegerField(default=0)
    max_attempts = models.PositiveSmallIntegerField(default=3)
    available_at = models.DateTimeField(default=timezone.now)
    reserved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["available_at", "id"]
        indexes = [models.Index(fields=["queue", "available_at"])]

    def __str__(self) -> str:
        return f"Job #{self.pk} {self.job_type} ({self.queue})"

    @property
    def job_type(self) -> str:
        return (self.payload or {}).get("type", "")

    @property
    def data(self) -> dict:
        return (self.payload or {}).get("data") or {}


class DeadLetterJob(models.Model):
    queue = models.CharField(max_length=50)
    payload = models.JSONField()
    attempts = models.PositiveSmallIntegerField(default=0)
    exception = models.TextField(blank=True)
    failed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-failed_at"]
        indexes = [models.Index(fields=["queue", "failed_at"])]

    def __str__(self) -> str:
        return f"Dead job #{self.pk} {self.payload.get('type', '')}"

    @property
    def job_type(self) -> str:
        return (self.payload or {}).get("type", "")
