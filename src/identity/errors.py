"""Error kinds raised by the account services.

Each error is an ``HTTPException`` so the API layer can let it propagate
unchanged; ``kind`` is the stable identifier callers should branch on.
"""

from fastapi import HTTPException, status


class AccountError(HTTPException):
    """Base class for all account service failures."""

    kind = "unknown"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=self.default_status, detail=detail)

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}"


class InvalidInput(AccountError):
    kind = "invalid"
    default_status = status.HTTP_400_BAD_REQUEST


class InvalidToken(AccountError):
    kind = "invalid_token"
    default_status = status.HTTP_403_FORBIDDEN


class AccountNotFound(AccountError):
    kind = "account_not_found"
    default_status = status.HTTP_404_NOT_FOUND


class AlreadyExists(AccountError):
    kind = "already_exists"
    default_status = status.HTTP_409_CONFLICT


class Forbidden(AccountError):
    kind = "forbidden"
    default_status = status.HTTP_403_FORBIDDEN


class RateLimited(AccountError):
    kind = "rate_limited"
    default_status = status.HTTP_429_TOO_MANY_REQUESTS


class DeliveryFailed(AccountError):
    kind = "delivery_failed"
    default_status = status.HTTP_502_BAD_GATEWAY


class UnknownError(AccountError):
    kind = "unknown"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
