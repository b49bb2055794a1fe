"""Lifecycle of validation tokens used for verification and password resets."""

import logging
from datetime import datetime, time, timedelta
from typing import Callable

from prometheus_client import Counter
from sqlalchemy.orm import Session

from .config import settings
from .errors import InvalidToken
from .models.token import ValidationToken
from .models.user import User

logger = logging.getLogger(__name__)

TOKEN_ISSUED_COUNTER = Counter(
    "validation_tokens_issued_total", "Total validation tokens issued", ["reason"]
)


def day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """Return the half-open ``[start, end)`` range of the day containing ``moment``."""
    start = datetime.combine(moment.date(), time.min)
    return start, start + timedelta(days=1)


class ValidationTokenManager:
    """Issue, resolve and invalidate validation tokens.

    Tokens are never deduplicated on issue. When several rows share a token
    string the one with the highest id is authoritative, which shadows the
    tokens left behind by abandoned flows.

    Methods only flush; committing is left to the caller so that a token
    update can share a transaction with the account it belongs to.
    """

    def __init__(
        self,
        session: Session,
        daily_limit: int | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.session = session
        self.daily_limit = settings.daily_token_limit if daily_limit is None else daily_limit
        self.clock = clock

    def issue(self, user: User, token: str, reason: str | None = None) -> ValidationToken:
        """Persist a new valid token for ``user``."""
        record = ValidationToken(
            user=user,
            token=token,
            token_valid=True,
            reason=reason,
            created_at=self.clock(),
        )
        self.session.add(record)
        self.session.flush()
        TOKEN_ISSUED_COUNTER.labels(reason=reason or "unspecified").inc()
        logger.info("issued validation token id=%s user=%s", record.id, user.id)
        return record

    def save(self, record: ValidationToken) -> ValidationToken:
        self.session.add(record)
        self.session.flush()
        return record

    def get(self, token_id: int) -> ValidationToken | None:
        return self.session.get(ValidationToken, token_id)

    def find_by_token(self, token: str | None) -> ValidationToken:
        if token is None:
            raise InvalidToken("Invalid Token")
        record = (
            self.session.query(ValidationToken)
            .filter(ValidationToken.token == token)
            .order_by(ValidationToken.id.desc())
            .first()
        )
        if record is None or not record.token_valid:
            raise InvalidToken("Invalid Token")
        return record

    def is_valid(self, token: str | None) -> bool:
        """Return the validity of ``token``.

        Empty input is simply not valid; an unknown or consumed token raises
        ``InvalidToken`` like ``find_by_token``.
        """
        if not token:
            return False
        return bool(self.find_by_token(token).token_valid)

    def invalidate(self, record: ValidationToken, reason: str) -> ValidationToken:
        record.token_valid = False
        record.reason = reason
        return self.save(record)

    def delete(self, token_id: int) -> None:
        record = self.get(token_id)
        if record is None:
            return
        self.session.delete(record)
        self.session.flush()
        logger.info("deleted validation token id=%s", token_id)

    def daily_issuance_count(self, user: User, now: datetime | None = None) -> int:
        start, end = day_bounds(now or self.clock())
        return (
            self.session.query(ValidationToken)
            .filter(
                ValidationToken.user_id == user.id,
                ValidationToken.created_at >= start,
                ValidationToken.created_at < end,
            )
            .count()
        )

    def is_daily_limit_exceeded(self, user: User | None, now: datetime | None = None) -> bool:
        if user is None:
            return True
        return self.daily_issuance_count(user, now) >= self.daily_limit
