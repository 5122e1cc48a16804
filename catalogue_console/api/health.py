"""Health check and version endpoints."""

import logging
import os

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from catalogue_console import __version__
from catalogue_console.api.models import HealthResponse, VersionResponse
from catalogue_console.db import get_db_session

log = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


def _assets_writable() -> bool:
    from catalogue_console.config import ASSETS_PATH

    try:
        ASSETS_PATH.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        log.warning(f"Health check warning: assets path unavailable: {e}")
        return False
    return os.access(ASSETS_PATH, os.W_OK)


def _database_reachable() -> bool:
    try:
        with get_db_session() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        log.warning(f"Health check warning: database unavailable: {e}")
        return False
    return True


@router.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    """Health check endpoint.

    ``ok`` is true when the catalogue documents can be written; the forms
    database is reported separately.
    """
    catalogue = _assets_writable()
    return HealthResponse(ok=catalogue, catalogue=catalogue, database=_database_reachable())


@router.get("/version", response_model=VersionResponse)
async def version() -> VersionResponse:
    return VersionResponse(
        service="catalogue-console",
        version=__version__,
        git_sha=os.getenv("GIT_SHA", "unknown"),
    )
