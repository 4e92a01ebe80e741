"""Credential store: users and hashed refresh tokens in the relational database."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import RefreshToken, User

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the database cannot complete a read or write."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class DuplicateRecordError(StorageError):
    """Raised when an insert or update violates a unique constraint."""


class CredentialStore:
    """
    Lookup/insert/update of users and refresh tokens.

    Every write commits its own transaction. Unique indexes on users.email and
    users.username are the real guarantee against duplicates.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _write(self, action: str) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateRecordError(f"Failed to {action}: duplicate record.", cause=e) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Credential store write failed", extra={"action": action})
            raise StorageError(f"Failed to {action}.", cause=e) from e

    @contextmanager
    def _read(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error("Credential store read failed", extra={"action": action})
            raise StorageError(f"Failed to {action}.", cause=e) from e

    # Users

    def get_by_id(self, user_id: str) -> User | None:
        with self._read("get user by id"):
            return self.session.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> User | None:
        with self._read("get user by email"):
            return self.session.query(User).filter(User.email == email.lower()).first()

    def get_by_username(self, username: str) -> User | None:
        with self._read("get user by username"):
            return self.session.query(User).filter(User.username == username).first()

    def create_user(self, user: User) -> User:
        with self._write("create user"):
            self.session.add(user)
        self.session.refresh(user)
        return user

    def update_user(self, user: User) -> User:
        """Persist changes already applied to a loaded user."""
        with self._write("update user"):
            self.session.add(user)
        self.session.refresh(user)
        return user

    def update_password(self, user_id: str, password_hash: str) -> None:
        with self._write("update password"):
            self.session.query(User).filter(User.id == user_id).update(
                {User.password_hash: password_hash, User.updated_at: datetime.now(UTC)},
                synchronize_session="fetch",
            )

    def set_active(self, user_id: str, is_active: bool) -> bool:
        """Enable or disable a user. Returns False when the user does not exist."""
        with self._write("set user active flag"):
            updated = (
                self.session.query(User)
                .filter(User.id == user_id)
                .update(
                    {User.is_active: is_active, User.updated_at: datetime.now(UTC)},
                    synchronize_session="fetch",
                )
            )
        return updated > 0

    def delete_user(self, user_id: str) -> bool:
        """Delete a user; its refresh tokens go with it (ON DELETE CASCADE)."""
        with self._write("delete user"):
            user = self.session.query(User).filter(User.id == user_id).first()
            if user is None:
                return False
            self.session.delete(user)
        return True

    # Refresh tokens

    def save_refresh_token(self, user_id: str, token_hash: str, expires_at: datetime) -> RefreshToken:
        token = RefreshToken(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        with self._write("save refresh token"):
            self.session.add(token)
        return token

    def get_live_refresh_token(self, token_hash: str, now: datetime | None = None) -> RefreshToken | None:
        """Return the refresh token with this hash unless it has expired."""
        now = now or datetime.now(UTC)
        with self._read("get refresh token"):
            return (
                self.session.query(RefreshToken)
                .filter(RefreshToken.token_hash == token_hash, RefreshToken.expires_at > now)
                .first()
            )

    def rotate_refresh_token(
        self,
        old_hash: str,
        user_id: str,
        new_hash: str,
        expires_at: datetime,
    ) -> bool:
        """
        Delete the redeemed token and store its replacement in one transaction.

        Returns False (and writes nothing) when the old token was already gone,
        i.e. a concurrent refresh redeemed it first.
        """
        try:
            deleted = (
                self.session.query(RefreshToken)
                .filter(RefreshToken.token_hash == old_hash)
                .delete(synchronize_session=False)
            )
            if deleted == 0:
                self.session.rollback()
                return False
            self.session.add(
                RefreshToken(user_id=user_id, token_hash=new_hash, expires_at=expires_at)
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Credential store write failed", extra={"action": "rotate refresh token"})
            raise StorageError("Failed to rotate refresh token.", cause=e) from e
        return True

    def purge_expired_refresh_tokens(self, now: datetime | None = None) -> int:
        """Delete refresh tokens whose expires_at is at or before now."""
        now = now or datetime.now(UTC)
        with self._write("delete expired refresh tokens"):
            deleted = (
                self.session.query(RefreshToken)
                .filter(RefreshToken.expires_at <= now)
                .delete(synchronize_session=False)
            )
        return deleted
