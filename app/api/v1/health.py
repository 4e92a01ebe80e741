"""Auth service health check, including database reachability."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import check_db_connected, get_db
from app.schemas.health import HealthResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(db: Annotated[Session, Depends(get_db)]) -> HealthResponse:
    """
    Report liveness and whether the credential database answers.

    Always 200 so probes can tell "process up, database down" apart from a dead process.
    """
    connected = check_db_connected(db)
    if not connected:
        logger.warning("Health check: database unreachable", extra={"service": "auth-service"})

    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        database="connected" if connected else "disconnected",
    )
