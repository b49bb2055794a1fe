from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from ..database import Base


class ValidationToken(Base):
    """Single-use token backing email verification and password resets.

    There is no expiry column; a token stays valid until it is consumed or
    deleted.
    """

    __tablename__ = "validation_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    token = Column(String, index=True, nullable=False)
    token_valid = Column(Boolean, default=True, nullable=False)
    reason = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)

    user = relationship("User")


class RegistrationAttempt(Base):
    """One successful registration originating from ``ip``."""

    __tablename__ = "registration_attempts"

    id = Column(Integer, primary_key=True, index=True)
    ip = Column(String, index=True, nullable=False)
    attempted_at = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)


class DeviceToken(Base):
    """Push notification token registered by a user's device."""

    __tablename__ = "device_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    token = Column(String, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User")
