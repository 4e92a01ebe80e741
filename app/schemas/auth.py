"""Request/response schemas for the auth service's remote procedure surface."""

from datetime import datetime

from pydantic import BaseModel, Field


class ResponseStatus(BaseModel):
    """Envelope carried by every auth service response."""

    success: bool = Field(..., description="False for business-rule failures")
    message: str = Field(default="", description="Human-readable outcome")
    code: str | None = Field(
        default=None,
        description="Machine-readable failure code (e.g. INVALID_CREDENTIALS)",
    )


class UserOut(BaseModel):
    """Public view of a user (no password hash)."""

    id: str
    email: str
    username: str
    first_name: str = ""
    last_name: str = ""
    role: str = "user"
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class RegisterRequest(BaseModel):
    email: str = ""
    username: str = ""
    password: str = ""
    first_name: str = ""
    last_name: str = ""


class RegisterResponse(BaseModel):
    response: ResponseStatus
    user: UserOut | None = None
    access_token: str = ""


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class LoginResponse(BaseModel):
    response: ResponseStatus
    user: UserOut | None = None
    access_token: str = ""
    refresh_token: str = ""
    expires_at: int = Field(default=0, description="Access token expiry (Unix seconds)")


class ValidateTokenRequest(BaseModel):
    token: str = ""


class ValidateTokenResponse(BaseModel):
    response: ResponseStatus
    valid: bool = False
    user: UserOut | None = None


class GetUserRequest(BaseModel):
    user_id: str = ""
    token: str = ""


class GetUserResponse(BaseModel):
    response: ResponseStatus
    user: UserOut | None = None


class UpdateProfileRequest(BaseModel):
    user_id: str = ""
    token: str = ""
    first_name: str = ""
    last_name: str = ""
    username: str = ""


class UpdateProfileResponse(BaseModel):
    response: ResponseStatus
    user: UserOut | None = None


class ChangePasswordRequest(BaseModel):
    user_id: str = ""
    token: str = ""
    current_password: str = ""
    new_password: str = ""


class ChangePasswordResponse(BaseModel):
    response: ResponseStatus


class RefreshTokenRequest(BaseModel):
    refresh_token: str = ""


class RefreshTokenResponse(BaseModel):
    response: ResponseStatus
    access_token: str = ""
    refresh_token: str = ""
    expires_at: int = Field(default=0, description="Access token expiry (Unix seconds)")
