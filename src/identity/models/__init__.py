from .user import Role, RoleKey, User, user_roles
from .token import DeviceToken, RegistrationAttempt, ValidationToken

__all__ = [
    "DeviceToken",
    "RegistrationAttempt",
    "Role",
    "RoleKey",
    "User",
    "ValidationToken",
    "user_roles",
]
