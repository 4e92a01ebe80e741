"""API gateway entrypoint. No business logic; only wiring and middleware.

  uvicorn app.gateway:app --port 8080
"""

from dotenv import load_dotenv

load_dotenv()

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.gateway import router as gateway_router
from app.api.gateway.middleware import RequestLoggingMiddleware
from app.core.config import settings
from app.schemas.gateway import GatewayHealthResponse
from app.services.auth_client import AuthClient

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    owns_client = getattr(app.state, "auth_client", None) is None
    if owns_client:
        app.state.auth_client = AuthClient.from_settings(settings)
        logger.info("Auth service client ready", extra={"auth_service_url": settings.AUTH_SERVICE_URL})
    try:
        yield
    finally:
        if owns_client:
            await app.state.auth_client.aclose()


async def _invalid_body_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request body"},
    )


def create_app(auth_client: AuthClient | None = None) -> FastAPI:
    """Build the gateway; pass auth_client to reuse an existing client (tests, embedding)."""
    app = FastAPI(
        title="Storefront API Gateway",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    if auth_client is not None:
        app.state.auth_client = auth_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_ENV == "dev" else settings.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(RequestValidationError, _invalid_body_handler)

    app.include_router(gateway_router)

    @app.get("/health", response_model=GatewayHealthResponse)
    def health() -> GatewayHealthResponse:
        """Liveness probe for the gateway itself."""
        return GatewayHealthResponse()

    return app


app = create_app()
