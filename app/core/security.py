"""Credential hashing and JWT issuance/validation for the auth service."""

import enum
import hashlib
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import bcrypt
import jwt

if TYPE_CHECKING:
    from app.core.config import Settings

# Bcrypt cost (rounds). Fixed between bcrypt's minimum (4) and maximum (31).
BCRYPT_ROUNDS = 12

# Raw refresh secrets carry this many bytes of randomness.
REFRESH_SECRET_BYTES = 32

USERNAME_MIN_LEN = 3
USERNAME_MAX_LEN = 50
PASSWORD_MIN_LEN = 6
PASSWORD_MAX_LEN = 128

_REQUIRED_CLAIMS = ("sub", "email", "username", "role", "exp")


class HashingError(Exception):
    """Raised when the hashing library cannot produce a hash."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class TokenErrorKind(str, enum.Enum):
    EXPIRED = "expired"
    MALFORMED = "malformed"


class TokenError(Exception):
    """Raised when an access token is expired or cannot be verified."""

    def __init__(self, kind: TokenErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims embedded in a signed access token."""

    user_id: str
    email: str
    username: str
    role: str
    expires_at: datetime


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")
    except (ValueError, TypeError) as e:
        raise HashingError("Failed to hash password.", cause=e) from e


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def fingerprint(secret: str) -> str:
    """Deterministic SHA-256 hex digest used to look refresh tokens up by hash."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def generate_refresh_secret() -> str:
    """Return a fresh, URL-safe refresh secret."""
    return secrets.token_urlsafe(REFRESH_SECRET_BYTES)


class TokenManager:
    """
    Issues and validates signed access tokens.

    Holds the signing key for the life of the process; validation is stateless
    and never touches the database.
    """

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        if not secret:
            raise ValueError("TokenManager requires a non-empty secret")
        self._secret = secret
        self._algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TokenManager":
        return cls(settings.JWT_SECRET.get_secret_value(), settings.JWT_ALGORITHM)

    def issue(
        self,
        user_id: str,
        email: str,
        username: str,
        role: str,
        ttl: timedelta,
    ) -> str:
        """Create a JWT carrying the user's identity claims, valid for ttl."""
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": str(user_id),
            "email": email,
            "username": username,
            "role": role,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def validate(self, token: str) -> TokenClaims:
        """
        Verify signature and expiry; return the embedded claims.

        Raises TokenError(EXPIRED) when past exp, TokenError(MALFORMED) otherwise.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": list(_REQUIRED_CLAIMS)},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenError(TokenErrorKind.EXPIRED, "Token has expired") from e
        except jwt.PyJWTError as e:
            raise TokenError(TokenErrorKind.MALFORMED, "Token is malformed") from e

        sub = payload.get("sub")
        if not sub or not isinstance(sub, str):
            raise TokenError(TokenErrorKind.MALFORMED, "Token is malformed")
        return TokenClaims(
            user_id=sub,
            email=str(payload["email"]),
            username=str(payload["username"]),
            role=str(payload["role"]),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), UTC),
        )
