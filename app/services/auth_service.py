"""Auth service: registration, login, token validation, profile and refresh-token rotation."""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from app.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    TokenManager,
    fingerprint,
    generate_refresh_secret,
    hash_password,
    verify_password,
)
from app.models import User
from app.services.credential_store import CredentialStore, DuplicateRecordError

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "user"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AuthErrorCodes:
    INVALID_INPUT = "INVALID_INPUT"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_DISABLED = "ACCOUNT_DISABLED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_MALFORMED = "TOKEN_MALFORMED"
    PERMISSION_DENIED = "PERMISSION_DENIED"


class AuthServiceError(Exception):
    """Business-rule failure; reported to callers as success=false, not as a transport error."""

    code = "AUTH_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidInputError(AuthServiceError):
    code = AuthErrorCodes.INVALID_INPUT


class AlreadyExistsError(AuthServiceError):
    code = AuthErrorCodes.ALREADY_EXISTS


class InvalidCredentialsError(AuthServiceError):
    code = AuthErrorCodes.INVALID_CREDENTIALS


class AccountDisabledError(AuthServiceError):
    code = AuthErrorCodes.ACCOUNT_DISABLED


class NotFoundError(AuthServiceError):
    code = AuthErrorCodes.NOT_FOUND


class InvalidTokenError(AuthServiceError):
    code = AuthErrorCodes.INVALID_TOKEN


class PermissionDeniedError(AuthServiceError):
    code = AuthErrorCodes.PERMISSION_DENIED


@dataclass(frozen=True)
class IssuedSession:
    """Result of a successful login."""

    user: User
    access_token: str
    refresh_token: str
    expires_at: datetime


@dataclass(frozen=True)
class RotatedTokens:
    """Result of a successful refresh."""

    access_token: str
    refresh_token: str
    expires_at: datetime


def _validate_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not email or len(email) > 255 or not _EMAIL_RE.match(email):
        raise InvalidInputError("A valid email address is required.")
    return email


def _validate_username(username: str) -> str:
    username = (username or "").strip()
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        raise InvalidInputError(
            f"Username must be between {USERNAME_MIN_LEN} and {USERNAME_MAX_LEN} characters."
        )
    return username


def _validate_password(password: str) -> None:
    if not (PASSWORD_MIN_LEN <= len(password or "") <= PASSWORD_MAX_LEN):
        raise InvalidInputError(
            f"Password must be between {PASSWORD_MIN_LEN} and {PASSWORD_MAX_LEN} characters."
        )


class AuthService:
    """
    Identity operations over the credential store and token manager.

    User state lives in record flags (is_active); refresh-token state is the
    presence of an unexpired row. Settings are read-only.
    """

    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenManager,
        settings: "Settings",
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.settings = settings

    def register(
        self,
        email: str,
        username: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> tuple[User, str]:
        """Create an active user with role 'user' and return it with an access token."""
        email = _validate_email(email)
        username = _validate_username(username)
        _validate_password(password)
        if not (first_name or "").strip() or not (last_name or "").strip():
            raise InvalidInputError("First name and last name are required.")

        if self.store.get_by_email(email) is not None:
            raise AlreadyExistsError("User with email already exists.")
        if self.store.get_by_username(username) is not None:
            raise AlreadyExistsError("Username already taken.")

        user = User(
            email=email,
            username=username,
            password_hash=hash_password(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            role=DEFAULT_ROLE,
            is_active=True,
        )
        try:
            user = self.store.create_user(user)
        except DuplicateRecordError as e:
            # Lost a race with a concurrent registration for the same email or username.
            raise AlreadyExistsError("User with email or username already exists.") from e

        access_token, _ = self._issue_access_token(user)
        logger.info("User registered", extra={"user_id": user.id})
        return user, access_token

    def login(self, email: str, password: str) -> IssuedSession:
        """Check credentials; issue an access token and a new single-use refresh secret."""
        user = self.store.get_by_email((email or "").strip().lower())
        if user is None or not verify_password(password or "", user.password_hash):
            raise InvalidCredentialsError("Invalid credentials.")
        if not user.is_active:
            raise AccountDisabledError("Account is disabled.")

        access_token, expires_at = self._issue_access_token(user)
        refresh_secret = generate_refresh_secret()
        self.store.save_refresh_token(
            user.id,
            fingerprint(refresh_secret),
            datetime.now(UTC) + self.settings.refresh_token_ttl,
        )
        logger.info("User logged in", extra={"user_id": user.id})
        return IssuedSession(
            user=user,
            access_token=access_token,
            refresh_token=refresh_secret,
            expires_at=expires_at,
        )

    def validate_token(self, token: str) -> User:
        """
        Verify the token, then re-read the user so deletion or deactivation
        takes effect before the token expires.

        Raises TokenError for expired/malformed tokens.
        """
        claims = self.tokens.validate(token)
        user = self.store.get_by_id(claims.user_id)
        if user is None:
            raise NotFoundError("User not found.")
        if not user.is_active:
            raise AccountDisabledError("Account is disabled.")
        return user

    def get_user(self, user_id: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def update_profile(
        self,
        user_id: str,
        first_name: str = "",
        last_name: str = "",
        username: str = "",
    ) -> User:
        """Overwrite only the non-empty fields; a new username must still be unique."""
        user = self.get_user(user_id)

        if username and username != user.username:
            username = _validate_username(username)
            existing = self.store.get_by_username(username)
            if existing is not None and existing.id != user.id:
                raise AlreadyExistsError("Username already taken.")
            user.username = username
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if first_name:
            user.first_name = first_name
        if last_name:
            user.last_name = last_name

        try:
            return self.store.update_user(user)
        except DuplicateRecordError as e:
            raise AlreadyExistsError("Username already taken.") from e

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        """
        Replace the password hash after verifying the current password.

        Previously issued access and refresh tokens stay valid.
        """
        user = self.get_user(user_id)
        if not verify_password(current_password or "", user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect.")
        _validate_password(new_password)
        self.store.update_password(user.id, hash_password(new_password))
        logger.info("Password changed", extra={"user_id": user.id})

    def refresh_token(self, raw_secret: str) -> RotatedTokens:
        """Redeem a refresh secret exactly once for a new access token and refresh secret."""
        if not raw_secret:
            raise InvalidTokenError("Invalid refresh token.")
        token_hash = fingerprint(raw_secret)

        stored = self.store.get_live_refresh_token(token_hash)
        if stored is None:
            raise InvalidTokenError("Invalid refresh token.")

        user = self.store.get_by_id(stored.user_id)
        if user is None:
            raise NotFoundError("User not found.")
        if not user.is_active:
            raise AccountDisabledError("Account is disabled.")

        access_token, expires_at = self._issue_access_token(user)
        new_secret = generate_refresh_secret()
        rotated = self.store.rotate_refresh_token(
            token_hash,
            user.id,
            fingerprint(new_secret),
            datetime.now(UTC) + self.settings.refresh_token_ttl,
        )
        if not rotated:
            raise InvalidTokenError("Invalid refresh token.")

        logger.info("Refresh token rotated", extra={"user_id": user.id})
        return RotatedTokens(
            access_token=access_token,
            refresh_token=new_secret,
            expires_at=expires_at,
        )

    def _issue_access_token(self, user: User) -> tuple[str, datetime]:
        ttl = self.settings.access_token_ttl
        expires_at = datetime.now(UTC) + ttl
        token = self.tokens.issue(user.id, user.email, user.username, user.role, ttl)
        return token, expires_at
