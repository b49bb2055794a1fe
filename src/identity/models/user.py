import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table
from sqlalchemy.orm import relationship

from ..database import Base


class RoleKey(str, enum.Enum):
    """Canonical role identifiers and their display names."""

    ROLE_ADMIN = "ROLE_ADMIN"
    ROLE_EMPLOYEE = "ROLE_EMPLOYEE"
    ROLE_FIELD_EMPLOYEE = "ROLE_FIELD_EMPLOYEE"
    ROLE_LANDLORD = "ROLE_LANDLORD"
    ROLE_USER = "ROLE_USER"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    RoleKey.ROLE_ADMIN: "Admin",
    RoleKey.ROLE_EMPLOYEE: "Employee",
    RoleKey.ROLE_FIELD_EMPLOYEE: "Field Employee",
    RoleKey.ROLE_LANDLORD: "LandLord",
    RoleKey.ROLE_USER: "User",
}


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    """A persisted role; created once when the catalog is seeded."""

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    role = Column(String, unique=True, index=True, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == RoleKey.ROLE_ADMIN.value


class User(Base):
    """SQLAlchemy model for application accounts."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=True)
    username = Column(String, unique=True, index=True, nullable=False)
    phone_number = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, index=True, nullable=True)
    password_hash = Column(String, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    roles = relationship("Role", secondary=user_roles, collection_class=set, lazy="selectin")

    def grant_role(self, role: Role) -> None:
        self.roles.add(role)

    def change_role(self, role: Role) -> None:
        """Replace every role the account holds with ``role``."""
        self.roles.clear()
        self.roles.add(role)

    def has_role(self, key: RoleKey) -> bool:
        return any(r.role == key.value for r in self.roles)

    @property
    def is_admin(self) -> bool:
        return any(r.is_admin for r in self.roles)

    @property
    def role_keys(self) -> set:
        return {r.role for r in self.roles}
