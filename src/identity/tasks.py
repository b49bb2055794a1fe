"""Celery tasks for housekeeping of the account tables."""

import logging

from prometheus_client import Counter

from .database import SessionLocal
from .registration_guard import purge_expired_attempts
from .worker import celery_app


logger = logging.getLogger(__name__)

ATTEMPTS_PURGED_COUNTER = Counter(
    "registration_attempts_purged_total", "Total registration attempts purged"
)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def purge_registration_attempts(self) -> int:
    """Delete registration attempts older than the guard window.

    Returns the number of records deleted.
    """
    session = SessionLocal()
    try:
        deleted = purge_expired_attempts(session)
        session.commit()
        ATTEMPTS_PURGED_COUNTER.inc(deleted)
        logger.info("purged %d registration attempts", deleted)
        return deleted
    except Exception as exc:  # pragma: no cover - executed on failure
        session.rollback()
        logger.exception("Failed to purge registration attempts")
        raise self.retry(exc=exc)
    finally:
        session.close()
