"""Pydantic request/response schemas."""

from app.schemas.auth import (
    ChangePasswordRequest,
    ChangePasswordResponse,
    GetUserRequest,
    GetUserResponse,
    LoginRequest,
    LoginResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RegisterRequest,
    RegisterResponse,
    ResponseStatus,
    UpdateProfileRequest,
    UpdateProfileResponse,
    UserOut,
    ValidateTokenRequest,
    ValidateTokenResponse,
)
from app.schemas.gateway import (
    ChangePasswordBody,
    GatewayHealthResponse,
    LogoutResponse,
    ProfileUpdateBody,
    RequestIdentity,
)
from app.schemas.health import HealthResponse

__all__ = [
    "ChangePasswordBody",
    "ChangePasswordRequest",
    "ChangePasswordResponse",
    "GatewayHealthResponse",
    "GetUserRequest",
    "GetUserResponse",
    "HealthResponse",
    "LoginRequest",
    "LoginResponse",
    "LogoutResponse",
    "ProfileUpdateBody",
    "RefreshTokenRequest",
    "RefreshTokenResponse",
    "RegisterRequest",
    "RegisterResponse",
    "RequestIdentity",
    "ResponseStatus",
    "UpdateProfileRequest",
    "UpdateProfileResponse",
    "UserOut",
    "ValidateTokenRequest",
    "ValidateTokenResponse",
]
