"""Gateway client for the auth service's remote procedures (JSON over HTTP)."""

import logging
import time
from typing import TYPE_CHECKING, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

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
    UpdateProfileRequest,
    UpdateProfileResponse,
    ValidateTokenRequest,
    ValidateTokenResponse,
)

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class AuthServiceUnavailableError(Exception):
    """Raised when the auth service cannot be reached, times out, or answers with an error status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.cause = cause
        super().__init__(message)


class AuthClient:
    """
    Calls the auth service with a bounded timeout per call and no retries.

    Validation uses a shorter timeout than the other operations because it
    runs on every protected request.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_prefix: str = "/api/v1",
        timeout: float = 10.0,
        validate_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._prefix = f"{api_prefix.rstrip('/')}/auth"
        self._timeout = timeout
        self._validate_timeout = validate_timeout
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), transport=transport)

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "AuthClient":
        return cls(
            settings.AUTH_SERVICE_URL,
            api_prefix=settings.API_V1_PREFIX,
            timeout=settings.AUTH_REQUEST_TIMEOUT_SEC,
            validate_timeout=settings.AUTH_VALIDATE_TIMEOUT_SEC,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def register(self, req: RegisterRequest) -> RegisterResponse:
        return await self._call("register", req, RegisterResponse, self._timeout)

    async def login(self, req: LoginRequest) -> LoginResponse:
        return await self._call("login", req, LoginResponse, self._timeout)

    async def validate_token(self, req: ValidateTokenRequest) -> ValidateTokenResponse:
        return await self._call("validate-token", req, ValidateTokenResponse, self._validate_timeout)

    async def get_user(self, req: GetUserRequest) -> GetUserResponse:
        return await self._call("get-user", req, GetUserResponse, self._timeout)

    async def update_profile(self, req: UpdateProfileRequest) -> UpdateProfileResponse:
        return await self._call("update-profile", req, UpdateProfileResponse, self._timeout)

    async def change_password(self, req: ChangePasswordRequest) -> ChangePasswordResponse:
        return await self._call("change-password", req, ChangePasswordResponse, self._timeout)

    async def refresh_token(self, req: RefreshTokenRequest) -> RefreshTokenResponse:
        return await self._call("refresh-token", req, RefreshTokenResponse, self._timeout)

    async def _call(
        self,
        operation: str,
        payload: BaseModel,
        response_model: type[ResponseT],
        timeout: float,
    ) -> ResponseT:
        """POST one procedure call and parse its envelope. Raises AuthServiceUnavailableError."""
        url = f"{self._prefix}/{operation}"
        start = time.perf_counter()
        try:
            response = await self._client.post(
                url,
                json=payload.model_dump(),
                timeout=httpx.Timeout(timeout),
            )
        except httpx.TimeoutException as e:
            self._log_failure(operation, start, "timeout")
            raise AuthServiceUnavailableError(
                f"Auth service request timed out ({operation}).", cause=e
            ) from e
        except httpx.HTTPError as e:
            self._log_failure(operation, start, "unreachable")
            raise AuthServiceUnavailableError(
                f"Auth service is unreachable ({operation}).", cause=e
            ) from e

        if response.status_code != 200:
            self._log_failure(operation, start, f"status_{response.status_code}")
            raise AuthServiceUnavailableError(
                f"Auth service returned status {response.status_code} ({operation}).",
                status_code=response.status_code,
            )

        try:
            parsed = response_model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            self._log_failure(operation, start, "invalid_response")
            raise AuthServiceUnavailableError(
                f"Auth service response is not valid ({operation}).", cause=e
            ) from e

        logger.debug(
            "Auth service call completed",
            extra={
                "operation": operation,
                "latency_seconds": time.perf_counter() - start,
            },
        )
        return parsed

    @staticmethod
    def _log_failure(operation: str, start: float, reason: str) -> None:
        logger.warning(
            "Auth service call failed",
            extra={
                "operation": operation,
                "latency_seconds": time.perf_counter() - start,
                "status": "error",
                "reason": reason,
            },
        )
