"""
Health check API endpoints.

Routes: GET /health, GET /health/db

Dependencies: backup_pipeline.api.deps
System role: Health check HTTP API
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from backup_pipeline.api.deps import get_engine

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    message: str


router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check."""
    return HealthResponse(status="healthy", message="Server Healthy")


@router.get("/db", response_model=HealthResponse)
async def health_check_db(engine: AsyncEngine = Depends(get_engine)) -> HealthResponse:
    """
    Record store health check.

    Raises:
        HTTPException(503): Database unreachable
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Record store health check failed", extra={"error_msg": str(e)})
        raise HTTPException(status_code=503, detail="Database connection failed")
    return HealthResponse(status="healthy", message="Database connection OK")
