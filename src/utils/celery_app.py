"""
Celery Application
Background jobs for the billing engine
Source: https://docs.celeryq.dev/en/stable/userguide/periodic-tasks.html
Verified: 2026-10-19
"""

from celery import Celery
from celery.schedules import crontab

from src.api.config import settings

celery_app = Celery(
    "hcbs_billing",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Daily authorization expiry sweep
celery_app.conf.beat_schedule = {
    "process-authorization-expirations": {
        "task": "authorizations.process_expirations",
        "schedule": crontab(hour=settings.AUTHORIZATION_EXPIRY_HOUR_UTC, minute=0),
    },
}

# Tasks live in src/tasks/*.py
celery_app.autodiscover_tasks(["src.tasks"], related_name="authorization_expiry")
