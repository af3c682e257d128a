"""Rugalika Backend - FastAPI Application Factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import api_router
from app.api.health import router as health_router
from app.core import async_session_maker, create_tables, settings, setup_logging
from app.core.logging import get_logger
from app.middleware import (
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    rate_limit_cleanup_loop,
)
from app.services.auth import AuthSessionService
from app.services.email import get_email_delivery
from app.services.one_time_code import OneTimeCodeStore
from app.services.token_blacklist import TokenBlacklistStore
from app.services.tokens import TokenIssuer
from app.services.user_directory import SQLUserDirectory

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


async def _token_cleanup_loop(app: FastAPI) -> None:
    """Periodically purge expired blacklist entries and one-time codes."""
    while True:
        await asyncio.sleep(settings.token_cleanup_interval_seconds)
        try:
            async with async_session_maker() as db:
                service = AuthSessionService(
                    codes=OneTimeCodeStore(db),
                    tokens=app.state.token_issuer,
                    blacklist=TokenBlacklistStore(db),
                    users=SQLUserDirectory(db),
                    mailer=app.state.email_delivery,
                    code_purge_grace=timedelta(
                        seconds=settings.one_time_code_purge_grace_seconds
                    ),
                )
                result = await service.purge_expired()
                if not result.success:
                    logger.warning(f"Expired token cleanup failed: {result.message}")
        except Exception:
            logger.exception("Error cleaning up expired tokens")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(settings.log_level, "dev" if settings.debug else "structured")
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    if settings.is_sqlite:
        await create_tables()

    tasks: list[asyncio.Task[None]] = []
    for name, coro in (
        ("token-cleanup", _token_cleanup_loop(app)),
        ("rate-limit-cleanup", rate_limit_cleanup_loop()),
    ):
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(task_done_callback)
        tasks.append(task)

    yield

    logger.info("Shutting down...")
    for task in tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


def _envelope(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "data": None, "message": message},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error in the ``{success, data, message}`` envelope."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return _envelope(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
            for err in exc.errors()
        ]
        return _envelope(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation failed: " + "; ".join(errors),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Raises ConfigurationError if the JWT secrets are missing or identical.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Rugalika citizen portal backend",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.state.token_issuer = TokenIssuer.from_settings(settings)
    app.state.email_delivery = get_email_delivery(settings)

    register_exception_handlers(app)

    # Security headers middleware
    app.add_middleware(SecurityHeadersMiddleware)

    # Rate limiting middleware - login endpoints carry their own stricter limits
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.rate_limit_requests_per_minute,
    )

    # CORS middleware - MUST be outermost (added last in Starlette LIFO order)
    # so that CORS headers are present on ALL responses, including 429s.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "Accept",
            "X-Request-ID",
        ],
    )

    app.include_router(health_router)  # Health at root level
    app.include_router(api_router)  # API at /api

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
        }

    return app


# Application instance
app = create_app()
