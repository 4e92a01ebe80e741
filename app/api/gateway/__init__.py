"""Gateway edge routes."""

from fastapi import APIRouter

from app.api.gateway import auth

router = APIRouter()
router.include_router(auth.router, prefix="/api/auth", tags=["auth"])
