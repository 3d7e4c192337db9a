"""
FastAPI Main Application
Entry point for the billing engine API
Source: https://fastapi.tiangolo.com/
Verified: 2026-10-19
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.config import settings
from src.api.routes import authorizations, billing, claims, health, submissions
from src.core.config import get_billing_settings
from src.db.connection import close_db_connection
from src.gateways.clearinghouse_gateway import HttpClearinghouseClient
from src.gateways.payer_gateway import HttpPayerSubmissionClient
from src.utils.errors import register_exception_handlers
from src.utils.logging import get_logger, setup_logging

# Setup logging
setup_logging(
    level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE,
    json_logs=settings.is_production,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
    """
    Application lifespan manager.

    Submission clients hold connection pools, so they live for the whole
    process and are closed on shutdown.
    """
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")
    billing_settings = get_billing_settings()
    app.state.clearinghouse = HttpClearinghouseClient(billing_settings)
    app.state.payer_client = HttpPayerSubmissionClient(billing_settings)

    yield

    logger.info("Shutting down application")
    await app.state.clearinghouse.close()
    await app.state.payer_client.close()
    await close_db_connection()
    logger.info("Database connections closed")


app = FastAPI(
    title="HCBS Billing Engine API",
    description="Authorization ledger, claim conversion, lifecycle and submission",
    version="1.0.0",
    docs_url="/docs" if not settings.is_production else None,  # Disable docs in production
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
)

register_exception_handlers(app)

# Include routers
app.include_router(health.router)
app.include_router(authorizations.router)
app.include_router(billing.router)
app.include_router(claims.router)
app.include_router(submissions.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "name": "HCBS Billing Engine API",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if not settings.is_production else "disabled",
    }
