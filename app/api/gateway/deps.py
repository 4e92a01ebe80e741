"""Auth middleware for the gateway: bearer extraction, remote validation, typed request identity."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from app.schemas.auth import ValidateTokenRequest
from app.schemas.gateway import RequestIdentity
from app.services.auth_client import AuthClient, AuthServiceUnavailableError

logger = logging.getLogger(__name__)


def get_auth_client(request: Request) -> AuthClient:
    """Dependency: the process-wide auth service client created at startup."""
    return request.app.state.auth_client


def parse_bearer(authorization: str | None) -> str | None:
    """Return the token from a literal 'Bearer <token>' header, else None."""
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


class TokenRejectedError(Exception):
    """Raised when the auth service answers that a token is not valid."""

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


async def _resolve(client: AuthClient, token: str) -> RequestIdentity:
    """
    Ask the auth service about token.

    Raises TokenRejectedError when it is not valid, AuthServiceUnavailableError
    when the service cannot answer.
    """
    resp = await client.validate_token(ValidateTokenRequest(token=token))
    if not resp.response.success or not resp.valid or resp.user is None:
        logger.info("Token rejected by auth service", extra={"code": resp.response.code})
        raise TokenRejectedError(resp.response.message or "Invalid token", resp.response.code)
    return RequestIdentity(user=resp.user, token=token)


async def require_identity(
    client: Annotated[AuthClient, Depends(get_auth_client)],
    authorization: Annotated[str | None, Header()] = None,
) -> RequestIdentity:
    """Dependency: require a valid bearer token; raises 401 otherwise."""
    if not authorization:
        raise _unauthorized("Authorization header required")
    token = parse_bearer(authorization)
    if token is None:
        raise _unauthorized("Invalid authorization header format")

    try:
        return await _resolve(client, token)
    except AuthServiceUnavailableError as e:
        logger.warning("Token validation error", extra={"reason": e.message})
        raise _unauthorized("Token validation failed") from e
    except TokenRejectedError as e:
        raise _unauthorized(e.message) from e


async def optional_identity(
    client: Annotated[AuthClient, Depends(get_auth_client)],
    authorization: Annotated[str | None, Header()] = None,
) -> RequestIdentity | None:
    """Dependency: resolve the caller when possible; never rejects the request."""
    token = parse_bearer(authorization)
    if token is None:
        return None
    try:
        return await _resolve(client, token)
    except TokenRejectedError:
        return None
    except AuthServiceUnavailableError as e:
        logger.warning("Optional token validation error", extra={"reason": e.message})
        return None
