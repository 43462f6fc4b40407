from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
import logging
import time
import uuid

import anyio
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from jose import JWTError

from procurement.core.config import get_settings
from procurement.core.errors import ProcurementError
from procurement.core.logging import (
    configure_logging,
    reset_actor_id,
    reset_request_id,
    set_actor_id,
    set_request_id,
)
from procurement.core.runtime_state import mark_shutdown_started, mark_startup, record_sweep
from procurement.core.time import utcnow
from procurement.db.db import engine, SessionLocal
from procurement.db.models import Base
from procurement.db.seed import seed
from procurement.security.security import decode_token
from procurement.services.edit_permissions import cleanup_expired_permissions
from .api.routes import router as api_router

settings = get_settings()
configure_logging(
    settings.log_level,
    log_format=settings.log_format,
    redact_fields=settings.log_redact_fields,
)

logger = logging.getLogger("procurement.main")


def startup_sync() -> None:
    """Sync part of the startup process."""
    Base.metadata.create_all(engine)
    if settings.seed_default_users:
        with SessionLocal() as db:
            seed(db)
        logger.info("Default users ensured")


def shutdown_sync() -> None:
    """Sync part of the shutdown process."""
    engine.dispose()


def sweep_expired_permissions_sync() -> None:
    with SessionLocal() as db:
        result = cleanup_expired_permissions(db, utcnow())
    record_sweep(cleaned=result.cleaned_count, failed=result.failed)


async def permission_sweep_loop(interval_seconds: int) -> None:
    while True:
        try:
            await anyio.to_thread.run_sync(sweep_expired_permissions_sync)
        except Exception as exc:
            logger.exception("Permission sweep failed")
            record_sweep(cleaned=0, failed=0, error=str(exc))
        await anyio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app."""
    sweep_interval = settings.permission_sweep_interval_seconds
    mark_startup(sweep_enabled=sweep_interval > 0)
    await anyio.to_thread.run_sync(startup_sync)
    async with anyio.create_task_group() as tg:
        if sweep_interval > 0:
            tg.start_soon(permission_sweep_loop, sweep_interval)
        yield
        mark_shutdown_started()
        tg.cancel_scope.cancel()
    await anyio.to_thread.run_sync(shutdown_sync)


def _actor_from_request(request: Request) -> str:
    scheme, _, token = (request.headers.get("authorization") or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return "-"
    try:
        return decode_token(token.strip())
    except JWTError:
        return "-"


def create_app() -> FastAPI:
    """Create and configure the FastAPI app."""
    app = FastAPI(title="Pengadaan API", lifespan=lifespan)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = set_request_id(request_id)
        actor_token = set_actor_id(_actor_from_request(request))
        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "Request completed %s %s -> %s in %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
            )
            return response
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                "Request failed %s %s in %.2fms",
                request.method,
                request.url.path,
                duration_ms,
            )
            raise
        finally:
            reset_actor_id(actor_token)
            reset_request_id(token)

    # Exception handlers
    @app.exception_handler(ProcurementError)
    async def procurement_error_handler(request: Request, exc: ProcurementError):
        logger.info("%s %s %s (%s)", exc.status_code, request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.as_dict()})

    @app.exception_handler(JWTError)
    async def jwt_error_handler(request: Request, exc: JWTError):
        logger.info("401 %s %s (%s)", request.method, request.url.path, str(exc) or "JWTError")
        return JSONResponse(status_code=401, content={"detail": "Invalid or expired token"})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.info("%s %s %s (%s)", exc.status_code, request.method, request.url.path, str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("500 %s %s (%s)", request.method, request.url.path, str(exc))
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    # Include API routes
    app.include_router(api_router)
    return app

# Create the FastAPI app instance
app = create_app()
