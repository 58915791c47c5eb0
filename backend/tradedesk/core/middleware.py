"""
FastAPI Middleware Configuration
Request logging, CORS and error responses
"""

import time
import uuid
from typing import Callable, List, Optional
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp
from fastapi import status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from tradedesk.core.config import settings
from tradedesk.core.exceptions import TradeDeskException
from tradedesk.core.logging import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log incoming HTTP requests with timing"""

    def __init__(self, app: ASGIApp, quiet_paths: Optional[List[str]] = None):
        super().__init__(app)
        self.quiet_paths = quiet_paths or ["/health"]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start_time = time.time()
        quiet = request.url.path.rstrip("/") in self.quiet_paths

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.bind(
                request_id=request_id,
                method=request.method,
                error=str(e),
                process_time_ms=round(process_time * 1000, 2)
            ).error(f"Request failed: {request.method} {request.url.path} - {e}")
            raise

        process_time = time.time() - start_time
        if not quiet:
            logger.bind(
                request_id=request_id,
                method=request.method,
                status_code=response.status_code,
                process_time_ms=round(process_time * 1000, 2),
                client_ip=request.client.host if request.client else "unknown"
            ).info(f"Request completed: {request.method} {request.url.path} - {response.status_code} ({process_time:.3f}s)")

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.3f}"
        return response


async def tradedesk_exception_handler(request: Request, exc: TradeDeskException) -> JSONResponse:
    """Render TradeDesk exceptions as JSON 400 responses"""
    logger.bind(
        error_code=exc.error_code.value,
        details=exc.details,
        path=request.url.path
    ).error(f"TradeDesk exception: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=exc.to_dict()
    )


def setup_cors_middleware(app):
    """Configure CORS middleware"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Process-Time"]
    )


def setup_middleware(app):
    """Setup middleware and exception handlers"""
    app.add_middleware(RequestLoggingMiddleware)
    setup_cors_middleware(app)
    app.add_exception_handler(TradeDeskException, tradedesk_exception_handler)
    logger.debug("Middleware configured")


__all__ = [
    "RequestLoggingMiddleware",
    "tradedesk_exception_handler",
    "setup_cors_middleware",
    "setup_middleware",
]
