"""Gateway /api/auth routes: decode, check required fields, forward to the auth service, map status codes."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse

from app.api.gateway.deps import get_auth_client, optional_identity, require_identity
from app.schemas.auth import (
    ChangePasswordRequest,
    GetUserRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    UpdateProfileRequest,
    ValidateTokenRequest,
)
from app.schemas.gateway import (
    ChangePasswordBody,
    LogoutResponse,
    ProfileUpdateBody,
    RequestIdentity,
)
from app.services.auth_client import AuthClient, AuthServiceUnavailableError
from app.services.auth_service import AuthErrorCodes

logger = logging.getLogger(__name__)
router = APIRouter()

ADMIN_ROLE = "admin"

# Failure codes whose HTTP status does not depend on the route.
_STATUS_BY_CODE = {
    AuthErrorCodes.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    AuthErrorCodes.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthErrorCodes.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    AuthErrorCodes.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
}


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _internal_error(operation: str, e: AuthServiceUnavailableError) -> HTTPException:
    # Never leak upstream error text to clients.
    logger.error(
        "Auth service call failed",
        extra={"operation": operation, "reason": e.message[:500]},
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )


def _respond(resp: Any, success_status: int, failure_status: int) -> JSONResponse:
    """Echo the auth service envelope with a status picked from its outcome."""
    outcome = resp.response
    if outcome.success:
        code = success_status
    else:
        code = _STATUS_BY_CODE.get(outcome.code, failure_status)
    return JSONResponse(status_code=code, content=resp.model_dump(mode="json"))


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    client: Annotated[AuthClient, Depends(get_auth_client)],
) -> JSONResponse:
    """Register a new user. 201 on success, 400 on validation or duplicate."""
    if not body.email or not body.username or not body.password:
        raise _bad_request("Email, username, and password are required")
    try:
        resp = await client.register(body)
    except AuthServiceUnavailableError as e:
        raise _internal_error("register", e) from e
    return _respond(resp, status.HTTP_201_CREATED, status.HTTP_400_BAD_REQUEST)


@router.post("/login")
async def login(
    body: LoginRequest,
    client: Annotated[AuthClient, Depends(get_auth_client)],
) -> JSONResponse:
    """Log in with email and password. 401 on bad credentials or disabled account."""
    if not body.email or not body.password:
        raise _bad_request("Email and password are required")
    try:
        resp = await client.login(body)
    except AuthServiceUnavailableError as e:
        raise _internal_error("login", e) from e
    return _respond(resp, status.HTTP_200_OK, status.HTTP_401_UNAUTHORIZED)


@router.post("/refresh")
async def refresh(
    body: RefreshTokenRequest,
    client: Annotated[AuthClient, Depends(get_auth_client)],
) -> JSONResponse:
    """Exchange a refresh secret for a new access token and refresh secret."""
    if not body.refresh_token:
        raise _bad_request("Refresh token is required")
    try:
        resp = await client.refresh_token(body)
    except AuthServiceUnavailableError as e:
        raise _internal_error("refresh-token", e) from e
    return _respond(resp, status.HTTP_200_OK, status.HTTP_401_UNAUTHORIZED)


@router.post("/validate")
async def validate(
    client: Annotated[AuthClient, Depends(get_auth_client)],
    authorization: Annotated[str | None, Header()] = None,
) -> JSONResponse:
    """Report whether the Authorization header's token is valid ('Bearer ' prefix optional)."""
    if not authorization:
        raise _bad_request("Authorization header required")
    token = authorization
    if len(authorization) > 7 and authorization[:7].lower() == "bearer ":
        token = authorization[7:]
    if not token.strip():
        raise _bad_request("Token is required")
    try:
        resp = await client.validate_token(ValidateTokenRequest(token=token))
    except AuthServiceUnavailableError as e:
        raise _internal_error("validate-token", e) from e
    code = status.HTTP_200_OK if resp.response.success and resp.valid else status.HTTP_401_UNAUTHORIZED
    return JSONResponse(status_code=code, content=resp.model_dump(mode="json"))


@router.get("/profile")
async def get_profile(
    identity: Annotated[RequestIdentity, Depends(require_identity)],
    client: Annotated[AuthClient, Depends(get_auth_client)],
) -> JSONResponse:
    """Return the authenticated user's profile."""
    try:
        resp = await client.get_user(GetUserRequest(user_id=identity.user.id, token=identity.token))
    except AuthServiceUnavailableError as e:
        raise _internal_error("get-user", e) from e
    return _respond(resp, status.HTTP_200_OK, status.HTTP_400_BAD_REQUEST)


@router.put("/profile")
async def update_profile(
    body: ProfileUpdateBody,
    identity: Annotated[RequestIdentity, Depends(require_identity)],
    client: Annotated[AuthClient, Depends(get_auth_client)],
) -> JSONResponse:
    """Partially update the authenticated user's profile; empty fields are ignored."""
    req = UpdateProfileRequest(
        user_id=identity.user.id,
        token=identity.token,
        first_name=body.first_name,
        last_name=body.last_name,
        username=body.username,
    )
    try:
        resp = await client.update_profile(req)
    except AuthServiceUnavailableError as e:
        raise _internal_error("update-profile", e) from e
    return _respond(resp, status.HTTP_200_OK, status.HTTP_400_BAD_REQUEST)


@router.post("/change-password")
async def change_password(
    body: ChangePasswordBody,
    identity: Annotated[RequestIdentity, Depends(require_identity)],
    client: Annotated[AuthClient, Depends(get_auth_client)],
) -> JSONResponse:
    """Change the authenticated user's password."""
    if not body.current_password or not body.new_password:
        raise _bad_request("Current password and new password are required")
    req = ChangePasswordRequest(
        user_id=identity.user.id,
        token=identity.token,
        current_password=body.current_password,
        new_password=body.new_password,
    )
    try:
        resp = await client.change_password(req)
    except AuthServiceUnavailableError as e:
        raise _internal_error("change-password", e) from e
    return _respond(resp, status.HTTP_200_OK, status.HTTP_400_BAD_REQUEST)


@router.get("/users/{user_id}")
async def get_user_by_id(
    user_id: str,
    identity: Annotated[RequestIdentity, Depends(require_identity)],
    client: Annotated[AuthClient, Depends(get_auth_client)],
) -> JSONResponse:
    """Fetch a user by id: own profile, or any profile for admins."""
    if identity.user.id != user_id and identity.user.role != ADMIN_ROLE:
        logger.info(
            "Access denied",
            extra={"caller_id": identity.user.id, "target_id": user_id},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    try:
        resp = await client.get_user(GetUserRequest(user_id=user_id, token=identity.token))
    except AuthServiceUnavailableError as e:
        raise _internal_error("get-user", e) from e
    return _respond(resp, status.HTTP_200_OK, status.HTTP_404_NOT_FOUND)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    identity: Annotated[RequestIdentity | None, Depends(optional_identity)],
) -> LogoutResponse:
    """
    Acknowledge logout. Access tokens are stateless, so the client discards
    them; nothing is revoked server-side.
    """
    if identity is not None:
        logger.info("User logged out", extra={"user_id": identity.user.id})
    return LogoutResponse()
