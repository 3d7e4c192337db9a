"""
Health Check Routes
Service health monitoring endpoints
Source: https://microservices.io/patterns/observability/health-check-api.html
Verified: 2026-10-19
"""

from typing import Any

from fastapi import APIRouter

from src.db.connection import check_db_connection
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])

SERVICE_NAME = "hcbs-billing-engine"


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Liveness check for load balancers."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
    }


@router.get("/health/db")
async def database_health_check() -> dict[str, Any]:
    """Readiness check including the database connection."""
    db_healthy = await check_db_connection()
    if not db_healthy:
        logger.warning("Database health check failed")

    return {
        "status": "healthy" if db_healthy else "unhealthy",
        "service": SERVICE_NAME,
        "checks": {
            "database": "healthy" if db_healthy else "unhealthy",
        },
    }
