"""Shared test wiring: in-memory SQLite, fast bcrypt, and settings without a .env file."""

from unittest.mock import patch

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.security import TokenManager
from app.models import Base

TEST_JWT_SECRET = "test-secret"


def make_session_factory() -> sessionmaker:
    """Fresh in-memory database with the full schema and enforced foreign keys."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def make_settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "DATABASE_URL": "sqlite://",
        "JWT_SECRET": TEST_JWT_SECRET,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_token_manager() -> TokenManager:
    return TokenManager(TEST_JWT_SECRET, "HS256")


def fast_hashing():
    """Patch bcrypt's cost down to its minimum so suites stay quick."""
    return patch("app.core.security.BCRYPT_ROUNDS", 4)
