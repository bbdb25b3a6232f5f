"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from deckster.config import settings

# Create Celery app
celery_app = Celery(
    "deckster",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["deckster.tasks.cleanup"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Abandoned draft purge: daily at 2am UTC
    "cleanup-abandoned-sessions": {
        "task": "deckster.tasks.cleanup.cleanup_abandoned_sessions",
        "schedule": crontab(minute=0, hour=2),
    },
}
