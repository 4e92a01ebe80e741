"""Schemas used only at the gateway edge."""

from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.auth import UserOut


class RequestIdentity(BaseModel):
    """Identity resolved by the auth middleware for the current request."""

    user: UserOut
    token: str = Field(..., description="Raw bearer token, forwarded to the auth service")


class ProfileUpdateBody(BaseModel):
    """Partial profile update; empty fields are left unchanged."""

    first_name: str = ""
    last_name: str = ""
    username: str = ""


class ChangePasswordBody(BaseModel):
    current_password: str = ""
    new_password: str = ""


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out successfully"


class GatewayHealthResponse(BaseModel):
    status: Literal["healthy"] = "healthy"
    service: str = "api-gateway"
