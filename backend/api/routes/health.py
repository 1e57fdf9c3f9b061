"""Liveness and database health endpoints."""

import asyncio
import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.config import get_settings
from infrastructure.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()

DB_CHECK_TIMEOUT = 5.0


def _service_info() -> dict:
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "integrations": {
            # Analyses still succeed without a key, via the fallback generator
            "ai_analysis": bool(settings.anthropic_api_key) and settings.recipe_analysis_use_ai,
            "billing": bool(settings.stripe_secret_key),
        },
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/health")
async def health_check():
    """Liveness probe. Never touches the database."""
    return {"status": "healthy", **_service_info()}


@router.get("/health/db")
async def health_check_db(db: AsyncSession = Depends(get_db)):
    try:
        result = await asyncio.wait_for(db.execute(text("SELECT 1")), timeout=DB_CHECK_TIMEOUT)
        result.scalar()
        db_status = "connected"
    except TimeoutError:
        logger.error("Database health check timed out after %.0fs", DB_CHECK_TIMEOUT)
        db_status = "error: database timeout"
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        db_status = "error: database check failed"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
        **_service_info(),
    }
