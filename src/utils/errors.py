"""
HTTP Error Translation
Maps billing and integration errors onto HTTP responses
Source: https://fastapi.tiangolo.com/tutorial/handling-errors/#install-custom-exception-handlers
Verified: 2026-10-19
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.core.errors import BillingError, BusinessRuleError, NotFoundError
from src.gateways.base import IntegrationError
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Business rule codes that describe malformed input rather than a state conflict
UNPROCESSABLE_CODE_PREFIXES = ("invalid-", "empty-", "missing-")


def status_for_billing_error(error: BillingError) -> int:
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, BusinessRuleError):
        if error.code.startswith(UNPROCESSABLE_CODE_PREFIXES) and error.code != "invalid-status-transition":
            return status.HTTP_422_UNPROCESSABLE_ENTITY
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


def status_for_integration_error(error: IntegrationError) -> int:
    if error.retryable:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_502_BAD_GATEWAY


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    status_code = status_for_billing_error(exc)
    logger.warning(f"{request.method} {request.url.path} -> {status_code} ({exc.code}): {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


async def integration_error_handler(request: Request, exc: IntegrationError) -> JSONResponse:
    status_code = status_for_integration_error(exc)
    logger.error(f"{request.method} {request.url.path} -> {status_code} ({exc.code}): {exc.message}")
    headers = {"Retry-After": "30"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BillingError, billing_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrationError, integration_error_handler)  # type: ignore[arg-type]
