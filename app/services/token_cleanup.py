"""Refresh-token cleanup: delete rows whose expires_at has passed."""

import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.services.credential_store import CredentialStore

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


def run_token_cleanup(session: Session, settings: "Settings") -> int:
    """
    Delete expired refresh tokens and return how many were removed.

    Lookups already reject expired rows, so this only reclaims space.
    Idempotent: safe to run repeatedly.
    """
    if not settings.REFRESH_TOKEN_CLEANUP_ENABLED:
        logger.info("Refresh token cleanup is disabled (REFRESH_TOKEN_CLEANUP_ENABLED=false); skipping.")
        return 0

    deleted_count = CredentialStore(session).purge_expired_refresh_tokens()
    if deleted_count > 0:
        logger.info("Refresh token cleanup run: tokens_deleted=%s", deleted_count)
    return deleted_count
