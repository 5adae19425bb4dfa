from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from territory_api.core.logging import configure_logging, correlation_id_var, user_id_var
from territory_api.core.settings import get_app_settings
from territory_api.db.run_migrations import upgrade_head
from territory_api.db.session import dispose_engine, get_engine, session_scope
from territory_api.repositories.sessions import SessionRepository
from territory_api.schemas.common import ErrorInfo, ErrorResponse, MessageResponse

from territory_api.api.routes.auth import router as auth_router
from territory_api.api.routes.layers import router as layers_router
from territory_api.api.routes.territories import router as territories_router
from territory_api.api.routes.user_config import router as user_config_router
from territory_api.api.routes.users import router as users_router

settings = get_app_settings()

# Root logging is set up before any router module logs
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "System", "description": "Ping."},
    {"name": "Health", "description": "Database readiness."},
    {"name": "Auth", "description": "Registration, e-mail confirmation, cookie sessions and password reset."},
    {"name": "Users", "description": "Current user and user search."},
    {"name": "Territories", "description": "GPX data, generated images and complete saves."},
    {"name": "Layers", "description": "Paint layers drawn over territory images."},
    {"name": "User Config", "description": "Per-user image generation settings."},
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# Cookies need credentials, so origins are listed explicitly
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def correlation_middleware(request: Request, call_next):
    """Tag logs and the response with a correlation id taken from the request or generated."""
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    token_corr = correlation_id_var.set(corr)
    token_user = user_id_var.set(None)
    request.state.correlation_id = corr

    logger.debug("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = corr
        return response
    finally:
        correlation_id_var.reset(token_corr)
        user_id_var.reset(token_user)


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """JSONResponse carrying an ErrorResponse envelope for `request`."""
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=getattr(request.state, "correlation_id", None),
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"), headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Global handler for HTTP errors; the detail (an i18n message key) becomes the message.
    """
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=detail,
        details=None if isinstance(exc.detail, str) else exc.detail,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Global handler for request validation errors, answered with 400.

    The first validator message (e.g. api.error.auth.username.tooShort) is the error message.
    """
    errors = exc.errors()
    message = "Request validation failed"
    if errors:
        first = str(errors[0].get("msg", ""))
        if "api.error." in first:
            message = first[first.index("api.error."):]
    return _build_error_response(
        request=request,
        status_code=400,
        error_type="validation_error",
        message=message,
        details=jsonable_encoder(errors),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log the traceback and answer 500 `api.error.internalServerError`."""
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="api.error.internalServerError",
        details=None,
    )


async def sweep_expired_sessions(interval: int) -> None:
    """Delete expired sessions every `interval` seconds until cancelled."""
    while True:
        try:
            async with session_scope() as session:
                removed = await SessionRepository(session).delete_expired_sessions()
            if removed:
                logger.info("Removed %d expired sessions", removed)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Expired session sweep failed")
        await asyncio.sleep(interval)


@app.on_event("startup")
async def on_startup() -> None:
    """
    Run migrations and start the expired session sweep.

    Migrations run over PyMySQL in a worker thread so the event loop stays free.
    """
    logger.info(
        "Starting %s %s (environment=%s)",
        settings.APP_NAME,
        settings.APP_VERSION,
        settings.ENVIRONMENT or "unset",
    )
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            await run_in_threadpool(upgrade_head)
        except Exception as exc:
            logger.exception("Schema upgrade failed at startup: %s", exc)
            # Transient DB issues are left to the readiness probe.

    if settings.SESSION_SWEEP_INTERVAL_SECONDS > 0:
        app.state.session_sweeper = asyncio.create_task(
            sweep_expired_sessions(settings.SESSION_SWEEP_INTERVAL_SECONDS)
        )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    """Stop the sweep and close pooled database connections."""
    sweeper = getattr(app.state, "session_sweeper", None)
    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    await dispose_engine()


api = APIRouter(prefix=settings.API_PREFIX)


# PUBLIC_INTERFACE
@api.get(
    "/ping",
    summary="Ping",
    tags=["System"],
)
def ping() -> Dict[str, bool]:
    """Liveness probe answering `{"pong": true}`."""
    return {"pong": True}


# PUBLIC_INTERFACE
@api.get(
    "/health",
    response_model=MessageResponse,
    summary="Health",
    description="Checks that the database answers.",
    tags=["Health"],
)
async def health_check() -> JSONResponse:
    """
    Readiness check.

    Returns:
        MessageResponse: "Healthy", or 503 with "Database unavailable".
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check failed")
        return JSONResponse(status_code=503, content={"message": "Database unavailable", "details": None})
    return JSONResponse(status_code=200, content={"message": "Healthy", "details": None})


# Include all routers under API_PREFIX
api.include_router(auth_router)
api.include_router(users_router)
api.include_router(territories_router)
api.include_router(layers_router)
api.include_router(user_config_router)

app.include_router(api)

# Generated images
static_root = Path(settings.STATIC_PATH)
static_root.mkdir(parents=True, exist_ok=True)
app.mount(f"{settings.API_PREFIX}/p", StaticFiles(directory=str(static_root)), name="static")
