"""Request logging for the gateway."""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("app.gateway")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, client, status and duration for every request."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Request failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                },
            )
            raise
        logger.info(
            "%s %s %s %s",
            request.method,
            request.url.path,
            request.client.host if request.client else "-",
            response.status_code,
            extra={"duration_ms": int((time.perf_counter() - start) * 1000)},
        )
        return response
