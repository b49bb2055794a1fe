"""Celery application with a periodic task to expire registration counters."""

from celery import Celery

from .config import settings


celery_app = Celery(
    "identity",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.beat_schedule = {
    "purge-registration-attempts": {
        "task": "identity.tasks.purge_registration_attempts",
        "schedule": settings.purge_frequency,
    }
}
celery_app.conf.timezone = "UTC"
