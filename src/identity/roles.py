"""Role catalog: maps canonical role keys to persisted role records."""

import logging

from sqlalchemy.orm import Session

from .errors import InvalidInput
from .models.user import Role, RoleKey

logger = logging.getLogger(__name__)


def parse_role_key(value: str | None) -> RoleKey:
    """Return the ``RoleKey`` named by ``value``, or ``ROLE_USER`` if unknown."""
    for key in RoleKey:
        if key.value == value:
            return key
    return RoleKey.ROLE_USER


def role_key_from_display_name(name: str | None) -> RoleKey:
    """Match ``name`` against display names ignoring case and surrounding blanks.

    Unknown names degrade to ``ROLE_USER``.
    """
    if name is None:
        return RoleKey.ROLE_USER
    wanted = name.strip().lower()
    for key in RoleKey:
        if key.display_name.strip().lower() == wanted:
            return key
    return RoleKey.ROLE_USER


def seed_roles(session: Session) -> None:
    """Insert any role of ``RoleKey`` missing from the catalog."""
    existing = {r.role for r in session.query(Role).all()}
    for key in RoleKey:
        if key.value not in existing:
            session.add(Role(role=key.value, name=key.display_name))
            logger.info("seeded role %s", key.value)
    session.flush()


class RoleCatalog:
    """Resolve role keys to the ``Role`` rows stored in the database."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def resolve(self, key: RoleKey) -> Role:
        role = self.session.query(Role).filter(Role.role == key.value).first()
        if role is None:
            logger.error("role catalog is missing %s", key.value)
            raise InvalidInput(f"Role {key.value} is not available")
        return role

    def resolve_by_display_name(self, name: str | None) -> RoleKey:
        return role_key_from_display_name(name)
