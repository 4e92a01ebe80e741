"""Auth service remote procedures. Business failures return success=false; only infrastructure failures are HTTP errors."""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.security import HashingError, TokenError, TokenErrorKind, TokenManager
from app.models import User
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
from app.services.auth_service import (
    AuthErrorCodes,
    AuthService,
    AuthServiceError,
    PermissionDeniedError,
)
from app.services.credential_store import CredentialStore, StorageError

logger = logging.getLogger(__name__)
router = APIRouter()

ADMIN_ROLE = "admin"


@lru_cache
def get_token_manager() -> TokenManager:
    """Single TokenManager built from settings at first use."""
    return TokenManager.from_settings(get_settings())


def get_auth_service(
    db: Annotated[Session, Depends(get_db)],
    tokens: Annotated[TokenManager, Depends(get_token_manager)],
) -> AuthService:
    return AuthService(CredentialStore(db), tokens, get_settings())


def _failure(e: AuthServiceError | TokenError) -> ResponseStatus:
    if isinstance(e, TokenError):
        code = (
            AuthErrorCodes.TOKEN_EXPIRED
            if e.kind == TokenErrorKind.EXPIRED
            else AuthErrorCodes.TOKEN_MALFORMED
        )
        return ResponseStatus(success=False, message=f"Invalid token: {e.message}", code=code)
    return ResponseStatus(success=False, message=e.message, code=e.code)


def _internal_error(operation: str, e: StorageError | HashingError) -> HTTPException:
    logger.error(
        "Auth service operation failed",
        extra={"operation": operation, "reason": e.message[:500]},
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )


class _InvalidCallerToken(AuthServiceError):
    code = AuthErrorCodes.INVALID_TOKEN

    def __init__(self) -> None:
        super().__init__("Invalid token")


def _authorize(svc: AuthService, token: str, user_id: str, *, allow_admin: bool = False) -> User:
    """Validate the caller's token and check it may act on user_id."""
    try:
        caller = svc.validate_token(token)
    except (AuthServiceError, TokenError) as e:
        logger.info("Token validation failed", extra={"reason": str(e)})
        raise _InvalidCallerToken() from e
    if caller.id != user_id and not (allow_admin and caller.role == ADMIN_ROLE):
        raise PermissionDeniedError("Access denied.")
    return caller


@router.post("/register", response_model=RegisterResponse)
def register(
    body: RegisterRequest,
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> RegisterResponse:
    """Create a user account and return it with an access token (no refresh token)."""
    logger.info("Register request", extra={"username": body.username})
    try:
        user, token = svc.register(
            body.email, body.username, body.password, body.first_name, body.last_name
        )
    except AuthServiceError as e:
        logger.info("Register rejected", extra={"code": e.code})
        return RegisterResponse(response=_failure(e))
    except (StorageError, HashingError) as e:
        raise _internal_error("register", e) from e
    return RegisterResponse(
        response=ResponseStatus(success=True, message="User registered successfully"),
        user=UserOut.model_validate(user),
        access_token=token,
    )


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> LoginResponse:
    """Authenticate by email and password; returns access token and refresh secret."""
    try:
        session = svc.login(body.email, body.password)
    except AuthServiceError as e:
        logger.info("Login rejected", extra={"code": e.code})
        return LoginResponse(response=_failure(e))
    except StorageError as e:
        raise _internal_error("login", e) from e
    return LoginResponse(
        response=ResponseStatus(success=True, message="Login successful"),
        user=UserOut.model_validate(session.user),
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=int(session.expires_at.timestamp()),
    )


@router.post("/validate-token", response_model=ValidateTokenResponse)
def validate_token(
    body: ValidateTokenRequest,
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> ValidateTokenResponse:
    """Check an access token against its signature, expiry and the live user record."""
    try:
        user = svc.validate_token(body.token)
    except (AuthServiceError, TokenError) as e:
        return ValidateTokenResponse(response=_failure(e), valid=False)
    except StorageError as e:
        raise _internal_error("validate-token", e) from e
    return ValidateTokenResponse(
        response=ResponseStatus(success=True, message="Token is valid"),
        valid=True,
        user=UserOut.model_validate(user),
    )


@router.post("/get-user", response_model=GetUserResponse)
def get_user(
    body: GetUserRequest,
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> GetUserResponse:
    """Fetch a user; callers may read their own record, admins any record."""
    try:
        _authorize(svc, body.token, body.user_id, allow_admin=True)
        user = svc.get_user(body.user_id)
    except AuthServiceError as e:
        return GetUserResponse(response=_failure(e))
    except StorageError as e:
        raise _internal_error("get-user", e) from e
    return GetUserResponse(
        response=ResponseStatus(success=True, message="User retrieved successfully"),
        user=UserOut.model_validate(user),
    )


@router.post("/update-profile", response_model=UpdateProfileResponse)
def update_profile(
    body: UpdateProfileRequest,
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> UpdateProfileResponse:
    """Partially update the caller's own profile."""
    try:
        _authorize(svc, body.token, body.user_id)
        user = svc.update_profile(
            body.user_id,
            first_name=body.first_name,
            last_name=body.last_name,
            username=body.username,
        )
    except AuthServiceError as e:
        return UpdateProfileResponse(response=_failure(e))
    except StorageError as e:
        raise _internal_error("update-profile", e) from e
    return UpdateProfileResponse(
        response=ResponseStatus(success=True, message="Profile updated successfully"),
        user=UserOut.model_validate(user),
    )


@router.post("/change-password", response_model=ChangePasswordResponse)
def change_password(
    body: ChangePasswordRequest,
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> ChangePasswordResponse:
    """Change the caller's own password. Existing tokens are not revoked."""
    try:
        _authorize(svc, body.token, body.user_id)
        svc.change_password(body.user_id, body.current_password, body.new_password)
    except AuthServiceError as e:
        return ChangePasswordResponse(response=_failure(e))
    except (StorageError, HashingError) as e:
        raise _internal_error("change-password", e) from e
    return ChangePasswordResponse(
        response=ResponseStatus(success=True, message="Password changed successfully"),
    )


@router.post("/refresh-token", response_model=RefreshTokenResponse)
def refresh_token(
    body: RefreshTokenRequest,
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> RefreshTokenResponse:
    """Redeem a refresh secret once; returns a new access token and refresh secret."""
    try:
        rotated = svc.refresh_token(body.refresh_token)
    except AuthServiceError as e:
        logger.info("Refresh rejected", extra={"code": e.code})
        return RefreshTokenResponse(response=_failure(e))
    except StorageError as e:
        raise _internal_error("refresh-token", e) from e
    return RefreshTokenResponse(
        response=ResponseStatus(success=True, message="Token refreshed successfully"),
        access_token=rotated.access_token,
        refresh_token=rotated.refresh_token,
        expires_at=int(rotated.expires_at.timestamp()),
    )
