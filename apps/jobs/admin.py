"""Admin registration for the job queue."""

from __future__ import annotations

from django.contrib import admin

from . import runner
from .models import DeadLetterJob, Job


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = ("id", "queue", "job_type", "attempts", "max_attempts", "available_at", "reserved_at")
    list_filter = ("queue",)
    readonly_fields = ("created_at",)


@admin.register(DeadLetterJob)
class DeadLetterJobAdmin(admin.ModelAdmin):
    list_display = ("id", "queue", "job_type", "attempts", "failed_at")
    list_filter = ("queue",)
    readonly_fields = ("queue", "payload", "attempts", "exception", "failed_at")
    actions = ["retry"]

    @admin.action(description="Retry selected jobs")
    def retry(self, request, queryset):  # type: ignore
        count = 0
        for dead in queryset:
            runner.retry_dead_letter(dead.pk)
            count += 1
        self.message_user(request, f"Re-queued {count} jobs")
