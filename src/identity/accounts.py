"""Account service: registration, authentication, recovery and role changes."""

import logging
from datetime import timedelta
from typing import Iterable, List, Sequence, Tuple, Type

from prometheus_client import Counter
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings, settings as default_settings
from .errors import (
    AccountError,
    AccountNotFound,
    AlreadyExists,
    DeliveryFailed,
    Forbidden,
    InvalidInput,
    RateLimited,
    UnknownError,
)
from .models.token import ValidationToken
from .models.user import Role, RoleKey, User
from .notifications import Notifier
from .registration_guard import RegistrationGuard
from .roles import RoleCatalog, parse_role_key
from .security import (
    MAX_PASSWORD_BYTES,
    generate_otp,
    generate_session_id,
    hash_password,
    verify_password,
)
from .tokens import ValidationTokenManager

logger = logging.getLogger(__name__)

PAGE_SIZE = 20

REASON_VERIFICATION_REQUEST = "Account Verification Request"
REASON_VERIFIED = "Account Verified"
REASON_RESET_REQUEST = "Password Reset Request"
REASON_PASSWORD_RESET = "Password Reset"

REGISTRATION_COUNTER = Counter("registrations_total", "Total accounts registered")
PASSWORD_RESET_COUNTER = Counter(
    "password_resets_total", "Total passwords reset with a validation token"
)


class AccountManager:
    """Orchestrates every account operation exposed to the API layer.

    A manager is bound to one database session. Each public operation that
    writes ends with a single commit; on failure the session is rolled back
    and the error is re-raised as an ``AccountError``.
    """

    def __init__(
        self,
        session: Session,
        notifier: Notifier | None = None,
        config: Settings | None = None,
        tokens: ValidationTokenManager | None = None,
        guard: RegistrationGuard | None = None,
        catalog: RoleCatalog | None = None,
    ) -> None:
        self.session = session
        self.config = config or default_settings
        self.notifier = notifier or Notifier(self.config)
        self.tokens = tokens or ValidationTokenManager(
            session, daily_limit=self.config.daily_token_limit
        )
        self.guard = guard or RegistrationGuard(
            session,
            max_attempts=self.config.registration_max_attempts,
            window=timedelta(hours=self.config.registration_window_hours),
        )
        self.catalog = catalog or RoleCatalog(session)

    # ------------------------------------------------------------------
    # error handling
    # ------------------------------------------------------------------
    def _handle_error(self, exc: Exception) -> None:
        """Rollback the session and re-raise ``exc`` as an ``AccountError``."""
        self.session.rollback()
        if isinstance(exc, AccountError):
            logger.info("account operation rejected: %s", exc)
            raise exc
        logger.exception("account service error", exc_info=exc)
        if isinstance(exc, SQLAlchemyError):
            raise UnknownError("Database error") from exc
        raise UnknownError("Unexpected error") from exc

    def _check_password(self, password: str | None, error: Type[AccountError]) -> None:
        minimum = self.config.min_password_length
        if password is None or len(password) < minimum:
            raise error(f"Password length must be at least {minimum}")
        if len(password.encode()) > MAX_PASSWORD_BYTES:
            raise error(f"Password must not exceed {MAX_PASSWORD_BYTES} bytes")

    @property
    def admin_phones(self) -> set:
        return {p for p in (self.config.admin_phone1, self.config.admin_phone2) if p}

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------
    def find_one(self, user_id: int | None) -> User:
        if user_id is None:
            raise AccountNotFound("User id can not be null!")
        user = self.session.get(User, user_id)
        if user is None:
            raise AccountNotFound(f"Could not find user with id {user_id}")
        return user

    def find_by_username(self, username: str | None) -> User:
        if username is None:
            raise AccountNotFound("Username can not be null!")
        user = self.session.query(User).filter(User.username == username).first()
        if user is None:
            raise AccountNotFound("Could not find user")
        return user

    def find_by_phone_number(self, phone_number: str | None) -> User:
        if phone_number is None:
            raise AccountNotFound("Phone number can not be null!")
        user = self.session.query(User).filter(User.phone_number == phone_number).first()
        if user is None:
            raise AccountNotFound("Could not find user")
        return user

    def find_by_email(self, email: str | None) -> User:
        if email is None:
            raise AccountNotFound("Email can not be null!")
        user = (
            self.session.query(User)
            .filter(User.email == email)
            .order_by(User.id)
            .first()
        )
        if user is None:
            raise AccountNotFound("Could not find user")
        return user

    def find_by_username_or_phone(self, username_or_phone: str | None) -> User:
        user = None
        if username_or_phone is not None:
            user = (
                self.session.query(User)
                .filter(User.username == username_or_phone)
                .first()
            )
            if user is None:
                user = (
                    self.session.query(User)
                    .filter(User.phone_number == username_or_phone)
                    .first()
                )
        if user is None:
            raise AccountNotFound("Could not find user with this username or phone")
        return user

    def exists(self, user: User | None) -> bool:
        if user is None:
            raise InvalidInput("User can not be null!")
        query = self.session.query(User).filter(
            or_(User.username == user.username, User.phone_number == user.phone_number)
        )
        if user.id is not None:
            query = query.filter(User.id != user.id)
        return query.first() is not None

    # ------------------------------------------------------------------
    # listing
    # ------------------------------------------------------------------
    def _page(self, query, page: int, size: int = PAGE_SIZE) -> Tuple[List[User], int]:
        page = max(page, 0)
        total = query.count()
        items = query.order_by(User.id.desc()).offset(page * size).limit(size).all()
        return items, total

    def find_all(self, page: int = 0) -> Tuple[List[User], int]:
        return self._page(self.session.query(User), page)

    def search(self, query: str, page: int = 0, size: int = PAGE_SIZE) -> Tuple[List[User], int]:
        pattern = f"%{query or ''}%"
        q = self.session.query(User).filter(
            or_(
                User.name.ilike(pattern),
                User.username.ilike(pattern),
                User.email.ilike(pattern),
            )
        )
        return self._page(q, page, size)

    def find_by_role(self, role: str, page: int = 0) -> Tuple[List[User], int]:
        q = self.session.query(User).join(User.roles).filter(Role.role == role)
        return self._page(q, page)

    def find_users_in(self, user_ids: Iterable[int], page: int = 0) -> Tuple[List[User], int]:
        q = self.session.query(User).filter(User.id.in_(list(user_ids)))
        return self._page(q, page)

    # ------------------------------------------------------------------
    # registration and authentication
    # ------------------------------------------------------------------
    def register(
        self,
        username: str | None,
        phone_number: str | None,
        password: str | None,
        email: str | None = None,
        name: str | None = None,
        client_ip: str | None = None,
    ) -> User:
        """Create a new account.

        The base user role is always granted; the admin role is granted when
        the phone number is one of the configured administrator phones.
        """
        logger.info("register account ip=%s", client_ip)
        try:
            if password is None:
                raise InvalidInput("User invalid")
            user = User(
                username=username or phone_number,
                phone_number=phone_number,
                email=email,
                name=name,
            )
            if self.exists(user):
                raise AlreadyExists("User already exists with this phone number or username")
            if not phone_number:
                raise InvalidInput("Phone number is required")
            self._check_password(password, InvalidInput)

            user.grant_role(self.catalog.resolve(RoleKey.ROLE_USER))
            user.password_hash = hash_password(password)
            if phone_number in self.admin_phones:
                user.grant_role(self.catalog.resolve(RoleKey.ROLE_ADMIN))

            if self.guard.is_blocked(client_ip):
                raise RateLimited("Maximum limit exceeded!")
            self.guard.record_success(client_ip)

            self.session.add(user)
            self.session.commit()
            self.session.refresh(user)
            REGISTRATION_COUNTER.inc()
            logger.info("registered account id=%s roles=%s", user.id, sorted(user.role_keys))
            return user
        except Exception as exc:
            self._handle_error(exc)

    def _save(self, user: User) -> User:
        """Stage ``user`` for commit; every saved account holds the user role."""
        user.grant_role(self.catalog.resolve(RoleKey.ROLE_USER))
        self.session.add(user)
        self.session.flush()
        return user

    def authenticate(self, username_or_phone: str | None, password: str | None) -> User | None:
        """Return the account when the password matches, otherwise ``None``."""
        user = self.find_by_username_or_phone(username_or_phone)
        if verify_password(user.password_hash, password):
            return user
        logger.info("authentication failed for account id=%s", user.id)
        return None

    # ------------------------------------------------------------------
    # verification and password recovery
    # ------------------------------------------------------------------
    def confirmation_link(self, path: str, token: str) -> str:
        return f"{self.config.base_url_api.strip()}{path}?token={token}&enabled=true"

    def request_account_validation_by_email(
        self, email: str | None, validation_path: str | None = None
    ) -> ValidationToken:
        """Issue a verification token and email it to the account owner.

        Without ``validation_path`` the raw token is sent; otherwise the
        message contains a confirmation link.
        """
        try:
            if email is None:
                raise InvalidInput("Email invalid!")
            user = self.find_by_email(email)
            record = self.tokens.issue(user, generate_session_id(), REASON_VERIFICATION_REQUEST)
            self.session.commit()

            app_name = self.config.application_name
            if validation_path is None:
                subject = f"{app_name} verification token"
                body = f"Your verification token is: {record.token}"
            else:
                subject = f"Please verify your {app_name} account"
                body = (
                    "Please verify your email by clicking this link "
                    + self.confirmation_link(validation_path, record.token)
                )
            if not self.notifier.send_email(user.email, subject, body):
                raise DeliveryFailed("Could not send verification email")
            return record
        except Exception as exc:
            self._handle_error(exc)

    def verify_account(self, token: str | None) -> User:
        """Consume a verification token and mark the owner's email verified."""
        try:
            record = self.tokens.find_by_token(token)
            user = record.user
            user.email_verified = True
            self.tokens.invalidate(record, REASON_VERIFIED)
            self.session.commit()
            logger.info("verified account id=%s", user.id)
            return user
        except Exception as exc:
            self._handle_error(exc)

    def handle_password_reset_request(self, username_or_phone: str | None) -> ValidationToken:
        """Send a one-time password by SMS, at most ``daily_token_limit`` a day.

        The token is committed before the SMS goes out and is kept when the
        delivery fails.
        """
        try:
            user = self.find_by_username_or_phone(username_or_phone)
            if self.tokens.is_daily_limit_exceeded(user):
                raise RateLimited("Limit exceeded!")

            otp = generate_otp()
            record = self.tokens.issue(user, otp, REASON_RESET_REQUEST)
            self.session.commit()

            message = f"Your {self.config.application_name} OTP is: {otp}"
            try:
                sent = self.notifier.send_sms(user.phone_number, message)
            except Exception as exc:
                raise UnknownError("Could not send SMS") from exc
            if not sent:
                raise DeliveryFailed("Could not send SMS")
            return record
        except Exception as exc:
            self._handle_error(exc)

    def reset_password(
        self, username: str | None, token: str | None, password: str | None
    ) -> User:
        """Set a new password using a validation token owned by ``username``.

        The password change and the token invalidation commit together.
        """
        try:
            record = self.tokens.find_by_token(token)
            user = record.user
            if username is None or username != user.username:
                raise Forbidden("You are not authorized to do this action!")
            self._check_password(password, Forbidden)

            user.password_hash = hash_password(password)
            self.tokens.invalidate(record, REASON_PASSWORD_RESET)
            self._save(user)
            self.session.commit()
            PASSWORD_RESET_COUNTER.inc()
            logger.info("password reset for account id=%s", user.id)
            return user
        except Exception as exc:
            self._handle_error(exc)

    def get_token(self, token_id: int) -> ValidationToken | None:
        return self.tokens.get(token_id)

    def is_token_valid(self, token: str | None) -> bool:
        return self.tokens.is_valid(token)

    def delete_token(self, token_id: int) -> None:
        try:
            self.tokens.delete(token_id)
            self.session.commit()
        except Exception as exc:
            self._handle_error(exc)

    # ------------------------------------------------------------------
    # passwords and roles
    # ------------------------------------------------------------------
    def change_password(
        self, user_id: int, current_password: str | None, new_password: str | None
    ) -> User:
        try:
            user = self.find_one(user_id)
            if not verify_password(user.password_hash, current_password):
                raise Forbidden("Password doesn't match")
            self._check_password(new_password, InvalidInput)
            user.password_hash = hash_password(new_password)
            self.session.commit()
            logger.info("password changed for account id=%s", user.id)
            return user
        except Exception as exc:
            self._handle_error(exc)

    def set_password(self, actor: User | None, user_id: int, new_password: str | None) -> User:
        """Overwrite another account's password; ``actor`` must be an admin."""
        try:
            if actor is None or not actor.is_admin:
                raise Forbidden("You are not authorised to do this action.")
            user = self.find_one(user_id)
            self._check_password(new_password, InvalidInput)
            user.password_hash = hash_password(new_password)
            self.session.commit()
            logger.info("password of account id=%s set by admin id=%s", user.id, actor.id)
            return user
        except Exception as exc:
            self._handle_error(exc)

    def change_role(self, user_id: int, role: str | None) -> User:
        """Replace all roles with the single role named by ``role``.

        Unknown role keys resolve to the user role.
        """
        try:
            user = self.find_one(user_id)
            user.change_role(self.catalog.resolve(parse_role_key(role)))
            self.session.commit()
            logger.info("role of account id=%s changed to %s", user.id, role)
            return user
        except Exception as exc:
            self._handle_error(exc)

    def set_roles(self, user_id: int, role_names: Sequence[str]) -> User:
        """Replace the roles from display names, never dropping admin."""
        try:
            user = self.find_one(user_id)
            was_admin = user.is_admin
            user.roles.clear()
            if was_admin:
                user.roles.add(self.catalog.resolve(RoleKey.ROLE_ADMIN))
            for name in role_names or []:
                key = self.catalog.resolve_by_display_name(name)
                try:
                    role = self.catalog.resolve(key)
                except InvalidInput:
                    continue
                user.grant_role(role)
            self._save(user)
            self.session.commit()
            logger.info("roles of account id=%s set to %s", user.id, sorted(user.role_keys))
            return user
        except Exception as exc:
            self._handle_error(exc)
