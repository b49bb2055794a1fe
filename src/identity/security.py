"""Password hashing and random token helpers."""

import base64
import secrets

import bcrypt

from .config import settings

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    encoded = password.encode()
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError("password longer than 72 bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode()


def verify_password(password_hash: str | None, password: str | None) -> bool:
    """Return True when ``password`` matches ``password_hash``.

    ``bcrypt.checkpw`` compares in constant time. Missing or oversized input
    never matches.
    """
    if not password_hash or password is None:
        return False
    encoded = password.encode()
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode())
    except ValueError:
        # stored value is not a bcrypt digest
        return False


def generate_session_id() -> str:
    """Return 130 random bits rendered as a lower-case base-32 string."""
    raw = secrets.randbits(130).to_bytes(17, "big")
    return base64.b32encode(raw).decode().rstrip("=").lower()


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))
