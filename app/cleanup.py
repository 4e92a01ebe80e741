"""
CLI entrypoint for the refresh-token cleanup job. Run from cron, e.g.:

  python -m app.cleanup

Or hourly: 0 * * * * cd /path/to/storefront-auth && .venv/bin/python -m app.cleanup
"""

import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.services.credential_store import StorageError
from app.services.token_cleanup import run_token_cleanup

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Delete refresh tokens whose expiry has passed."""
    settings = get_settings()
    db = SessionLocal()
    try:
        tokens_deleted = run_token_cleanup(db, settings)
        logger.info("Refresh token cleanup completed: tokens_deleted=%s", tokens_deleted)
        return 0
    except StorageError as e:
        logger.exception("Refresh token cleanup failed: %s", e.message)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
