"""Push notification tokens registered by user devices."""

import logging

from sqlalchemy.orm import Session

from .errors import AccountNotFound, InvalidInput
from .models.token import DeviceToken
from .models.user import User

logger = logging.getLogger(__name__)


class DeviceTokenService:
    """Keep at most one push token per user."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> DeviceToken | None:
        return (
            self.session.query(DeviceToken)
            .filter(DeviceToken.user_id == user_id)
            .first()
        )

    def save(self, user_id: int | None, token: str | None) -> DeviceToken:
        if user_id is None or not token:
            raise InvalidInput("userId or token can not be null")
        if self.session.get(User, user_id) is None:
            raise AccountNotFound(f"Could not find user with id {user_id}")
        record = self.get(user_id)
        if record is None:
            record = DeviceToken(user_id=user_id, token=token)
            self.session.add(record)
        else:
            record.token = token
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception("failed to store device token for user=%s", user_id)
            raise
        self.session.refresh(record)
        logger.info("stored device token for user=%s", user_id)
        return record
