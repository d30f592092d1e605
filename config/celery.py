import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("pyt_settlement")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Durable job queue: lease and run due jobs
    "process-due-jobs": {
        "task": "jobs.process_due_jobs",
        "schedule": 5.0,
        "options": {"expires": 4},
    },
    # Expire pending bookings past their hold TTL
    "sweep-abandoned-bookings": {
        "task": "bookings.sweep_abandoned_bookings",
        "schedule": 300.0,
        "options": {"expires": 290},
    },
    # Paid bookings whose trip date has passed
    "complete-past-bookings": {
        "task": "bookings.complete_past_bookings",
        "schedule": crontab(minute=15),
    },
    # Gift cards past valid_until
    "expire-gift-cards": {
        "task": "discounts.expire_gift_cards",
        "schedule": crontab(minute=30, hour=3),
    },
}

app.conf.timezone = "Asia/Bangkok"
