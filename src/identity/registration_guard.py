"""Per-IP flood control for account creation."""

import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from .config import settings
from .models.token import RegistrationAttempt

logger = logging.getLogger(__name__)

UNKNOWN_IP = "unknown"


class RegistrationGuard:
    """Count successful registrations per client IP inside a rolling window.

    Only successful registrations are recorded, so the guard caps the number
    of accounts created from an address rather than the number of attempts.
    The read-compare-record sequence is not atomic and may overshoot the cap
    slightly under concurrent requests.
    """

    def __init__(
        self,
        session: Session,
        max_attempts: int | None = None,
        window: timedelta | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.session = session
        self.max_attempts = (
            settings.registration_max_attempts if max_attempts is None else max_attempts
        )
        self.window = window or timedelta(hours=settings.registration_window_hours)
        self.clock = clock

    def attempts(self, client_ip: str | None) -> int:
        since = self.clock() - self.window
        return (
            self.session.query(RegistrationAttempt)
            .filter(
                RegistrationAttempt.ip == (client_ip or UNKNOWN_IP),
                RegistrationAttempt.attempted_at >= since,
            )
            .count()
        )

    def is_blocked(self, client_ip: str | None) -> bool:
        blocked = self.attempts(client_ip) >= self.max_attempts
        if blocked:
            logger.warning("registration blocked for ip=%s", client_ip)
        return blocked

    def record_success(self, client_ip: str | None) -> None:
        self.session.add(
            RegistrationAttempt(ip=client_ip or UNKNOWN_IP, attempted_at=self.clock())
        )
        self.session.flush()


def purge_expired_attempts(session: Session, now: datetime | None = None) -> int:
    """Delete attempts that fell out of the window; return how many were removed."""
    expiry = (now or datetime.utcnow()) - timedelta(hours=settings.registration_window_hours)
    return (
        session.query(RegistrationAttempt)
        .filter(RegistrationAttempt.attempted_at < expiry)
        .delete(synchronize_session=False)
    )
