"""Catalogue Console FastAPI application.

Routers are mounted under ``/api``; ``/healthz`` and ``/version`` sit at the
root. Repository errors carry their HTTP status and are rendered as
``{"detail": message}``.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.middleware.authentication import AuthenticationMiddleware

from catalogue_console import __version__
from catalogue_console.api import admin, auth, catalogue, dictionary, forms, health, submissions
from catalogue_console.auth.api_key import APIKeyBackend, CSRFError, get_api_key_store
from catalogue_console.auth.session import get_session_store
from catalogue_console.config import AUTH_ENABLED, SESSION_CLEANUP_INTERVAL, get_auth_exempt_paths
from catalogue_console.core.logging import configure_logging
from catalogue_console.db import init_database
from catalogue_console.store.errors import StoreError

configure_logging()
log = logging.getLogger("catalogue-console")

ROUTERS = (health, auth, catalogue, dictionary, forms, submissions, admin)


async def _expire_sessions() -> None:
    while True:
        await asyncio.sleep(SESSION_CLEANUP_INTERVAL)
        try:
            removed = await get_session_store().cleanup_expired()
        except Exception as e:
            log.error(f"Session cleanup failed: {e}")
            continue
        if removed:
            log.debug(f"Removed {removed} expired sessions")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()

    sweeper = None
    if AUTH_ENABLED:
        log.info(f"Auth enabled with {get_api_key_store().key_count} API keys")
        sweeper = asyncio.create_task(_expire_sessions())
    else:
        log.warning("Auth disabled (CONSOLE_AUTH_ENABLED=false): every caller is an admin")

    log.info(f"Catalogue Console {__version__} ready")
    yield

    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    log.info("Catalogue Console stopped")


def _auth_failed(conn, exc) -> JSONResponse:
    if isinstance(exc, CSRFError):
        return JSONResponse(status_code=403, content={"detail": str(exc)})
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def _database_down(request: Request, exc: OperationalError) -> JSONResponse:
    log.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Database unavailable"})


async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
    log.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


async def _not_found(request: Request, exc) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": getattr(exc, "detail", None) or "Not found"})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Catalogue Console",
        version=__version__,
        description="Data furnisher catalogue, vocabulary dictionary and forms builder",
        lifespan=lifespan,
    )

    if AUTH_ENABLED:
        app.add_middleware(
            AuthenticationMiddleware,
            backend=APIKeyBackend(exempt_paths=get_auth_exempt_paths()),
            on_error=_auth_failed,
        )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        log.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                "route": request.url.path,
                "method": request.method,
                "status": response.status_code,
                "duration_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return response

    for module in ROUTERS:
        app.include_router(module.router)

    app.add_exception_handler(StoreError, _store_error)
    app.add_exception_handler(OperationalError, _database_down)
    app.add_exception_handler(Exception, _unexpected)
    app.add_exception_handler(404, _not_found)
    return app


app = create_app()
