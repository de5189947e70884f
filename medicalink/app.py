from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from medicalink.api.error_handling import register_exception_handlers, unhandled_error_response
from medicalink.api.routes import get_runtime, router
from medicalink.api.schemas import Envelope, HealthResponse
from medicalink.logging import get_logger, set_correlation_id
from medicalink.service.runtime import Runtime

logger = get_logger(__name__)

__version__ = "0.1.0"

HEALTH_CHECK_TIMEOUT_SECONDS = 3


def _allowed_origins(runtime: Runtime) -> List[str]:
    if runtime.settings.cors_allow_origins:
        return runtime.settings.cors_allow_origins
    return ["http://localhost:3000", "http://127.0.0.1:3000"]


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    """Build the API around one ``Runtime``.

    The runtime, and with it the cache connection, is created here unless one
    is passed in, and is closed when the application shuts down.
    """
    runtime = runtime or Runtime()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if await runtime.check_cache():
            logger.info("cache_connected")
        else:
            logger.warning("cache_unreachable_at_startup")
        yield
        try:
            await runtime.close()
        except Exception as exc:
            logger.error("shutdown_failed", error=str(exc))

    app = FastAPI(title="MedicaLink Staff Auth", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(runtime),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=3600,
    )

    @app.middleware("http")
    async def add_correlation_id(request, call_next):
        """Take X-Request-ID from the client or generate one, and echo it back."""
        correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
        # Uncaught errors become the 500 envelope inside the header middleware
        try:
            response = await call_next(request)
        except Exception as exc:
            response = unhandled_error_response(request, exc)
        response.headers["X-Request-ID"] = correlation_id
        return response

    @app.middleware("http")
    async def add_security_headers(request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        # Tokens travel in these bodies
        response.headers.setdefault("Cache-Control", "no-store")
        return response

    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/health", response_model=Envelope, tags=["health"])
    async def health(request: Request):
        """Report cache reachability; a down cache is reported, not raised."""
        try:
            cache_ok = await asyncio.wait_for(
                get_runtime(request).check_cache(), HEALTH_CHECK_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            logger.error("health_check_timeout", component="cache")
            cache_ok = False
        return Envelope(
            status="ok",
            data=HealthResponse(
                status="healthy" if cache_ok else "degraded",
                cache="up" if cache_ok else "down",
            ).model_dump(by_alias=True),
        )

    return app
