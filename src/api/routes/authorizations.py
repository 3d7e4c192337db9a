"""
Authorization API Endpoints.

Provides:
- Authorization create / update / cancel
- Status transitions
- Utilization lookup and tracking
- Overlap checks and expiration queries
- Service validation against authorizations

Source: Design Document 02_authorization_and_billing_consistency.md Section 4.1-4.2
Verified: 2026-10-19
"""

from datetime import date
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from src.api.deps import get_acting_user_id, get_ledger, get_validator
from src.core.enums import AuthorizationStatus
from src.models import Authorization
from src.services.authorization_ledger import (
    AuthorizationCreateDTO,
    AuthorizationLedger,
    AuthorizationUpdateDTO,
)
from src.services.authorization_validator import ServiceAuthorizationValidator
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/authorizations",
    tags=["authorizations"],
)


# =============================================================================
# Request/Response Schemas
# =============================================================================


class AuthorizationCreateRequest(BaseModel):
    client_id: UUID
    program_id: UUID
    authorization_number: str = Field(..., min_length=1, max_length=100)
    issuer: str = Field(..., min_length=1, max_length=200)
    start_date: date
    end_date: Optional[date] = None
    authorized_units: int = Field(..., ge=0)
    service_type_ids: list[UUID] = Field(..., min_length=1)
    status: AuthorizationStatus = AuthorizationStatus.APPROVED
    notes: Optional[str] = None
    issued_date: Optional[date] = None
    issued_by: Optional[str] = Field(None, max_length=200)


class AuthorizationUpdateRequest(BaseModel):
    """Fields left out are unchanged; clear_end_date makes the authorization open-ended."""

    client_id: Optional[UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    clear_end_date: bool = False
    authorized_units: Optional[int] = Field(None, ge=0)
    service_type_ids: Optional[list[UUID]] = None
    status: Optional[AuthorizationStatus] = None
    notes: Optional[str] = None


class AuthorizationResponse(BaseModel):
    id: str
    client_id: str
    program_id: str
    authorization_number: str
    issuer: str
    status: str
    start_date: date
    end_date: Optional[date] = None
    authorized_units: int
    service_type_ids: list[str]
    notes: Optional[str] = None


class StatusChangeRequest(BaseModel):
    status: AuthorizationStatus
    notes: Optional[str] = Field(None, max_length=1000)


class StatusChangeResponse(BaseModel):
    authorization: AuthorizationResponse
    previous_status: str
    services_reverted: int


class TrackUtilizationRequest(BaseModel):
    units: int = Field(..., ge=0)
    is_addition: bool = True


class OverlapCheckRequest(BaseModel):
    client_id: UUID
    service_type_ids: list[UUID]
    start_date: date
    end_date: Optional[date] = None
    exclude_id: Optional[UUID] = None


class ServiceValidationRequest(BaseModel):
    service_ids: list[UUID] = Field(..., min_length=1, max_length=500)


def _authorization_to_response(authorization: Authorization) -> AuthorizationResponse:
    return AuthorizationResponse(
        id=str(authorization.id),
        client_id=str(authorization.client_id),
        program_id=str(authorization.program_id),
        authorization_number=authorization.authorization_number,
        issuer=authorization.issuer,
        status=authorization.status.value,
        start_date=authorization.start_date,
        end_date=authorization.end_date,
        authorized_units=authorization.authorized_units,
        service_type_ids=[str(i) for i in authorization.service_type_ids],
        notes=authorization.notes,
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "",
    response_model=AuthorizationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_authorization(
    data: AuthorizationCreateRequest,
    ledger: AuthorizationLedger = Depends(get_ledger),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> AuthorizationResponse:
    """Create an authorization with zero utilization."""
    authorization = await ledger.create_authorization(
        AuthorizationCreateDTO(**data.model_dump(), created_by=user_id)
    )
    return _authorization_to_response(authorization)


@router.get("/expiring", response_model=list[AuthorizationResponse])
async def list_expiring_authorizations(
    days: int = Query(30, ge=1, le=365),
    as_of: Optional[date] = None,
    ledger: AuthorizationLedger = Depends(get_ledger),
) -> list[AuthorizationResponse]:
    authorizations = await ledger.find_expiring_authorizations(days_threshold=days, as_of=as_of)
    return [_authorization_to_response(a) for a in authorizations]


@router.post("/overlap-check")
async def check_overlap(
    data: OverlapCheckRequest,
    ledger: AuthorizationLedger = Depends(get_ledger),
) -> dict[str, Any]:
    overlapping = await ledger.check_overlapping_authorizations(
        data.client_id, data.service_type_ids, data.start_date, data.end_date, data.exclude_id
    )
    return {"overlapping": overlapping}


@router.post("/validate-services")
async def validate_services(
    data: ServiceValidationRequest,
    validator: ServiceAuthorizationValidator = Depends(get_validator),
) -> dict[str, Any]:
    """Validate services against their (or the best matching) authorization."""
    checks = await validator.validate_services(data.service_ids)
    results = [check.to_dict() for check in checks.values()]
    return {
        "results": results,
        "valid_count": sum(1 for r in results if r["is_valid"]),
        "invalid_count": sum(1 for r in results if not r["is_valid"]),
    }


@router.patch("/{authorization_id}", response_model=AuthorizationResponse)
async def update_authorization(
    authorization_id: UUID,
    data: AuthorizationUpdateRequest,
    ledger: AuthorizationLedger = Depends(get_ledger),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> AuthorizationResponse:
    authorization = await ledger.update_authorization(
        authorization_id, AuthorizationUpdateDTO(**data.model_dump()), user_id=user_id
    )
    return _authorization_to_response(authorization)


@router.delete("/{authorization_id}", response_model=AuthorizationResponse)
async def cancel_authorization(
    authorization_id: UUID,
    ledger: AuthorizationLedger = Depends(get_ledger),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> AuthorizationResponse:
    """Soft delete (CANCELLED); refused while services reference it."""
    authorization = await ledger.cancel_authorization(authorization_id, user_id=user_id)
    return _authorization_to_response(authorization)


@router.post("/{authorization_id}/status", response_model=StatusChangeResponse)
async def change_authorization_status(
    authorization_id: UUID,
    data: StatusChangeRequest,
    ledger: AuthorizationLedger = Depends(get_ledger),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> StatusChangeResponse:
    result = await ledger.update_status(authorization_id, data.status, data.notes, user_id)
    return StatusChangeResponse(
        authorization=_authorization_to_response(result.authorization),
        previous_status=result.previous_status.value,
        services_reverted=result.services_reverted,
    )


@router.get("/{authorization_id}/utilization")
async def get_utilization(
    authorization_id: UUID,
    ledger: AuthorizationLedger = Depends(get_ledger),
) -> dict[str, Any]:
    summary = await ledger.get_utilization(authorization_id)
    return summary.to_dict()


@router.post("/{authorization_id}/utilization")
async def track_utilization(
    authorization_id: UUID,
    data: TrackUtilizationRequest,
    ledger: AuthorizationLedger = Depends(get_ledger),
) -> dict[str, Any]:
    summary = await ledger.track_utilization(authorization_id, data.units, data.is_addition)
    return summary.to_dict()


@router.get("/{authorization_id}/expiration")
async def check_expiration(
    authorization_id: UUID,
    days: int = Query(30, ge=1, le=365),
    as_of: Optional[date] = None,
    ledger: AuthorizationLedger = Depends(get_ledger),
) -> dict[str, Any]:
    result = await ledger.check_authorization_expiration(authorization_id, days, as_of)
    return {
        "is_expiring": result.is_expiring,
        "is_expired": result.is_expired,
        "days_remaining": result.days_remaining,
        "expiration_date": result.expiration_date.isoformat() if result.expiration_date else None,
    }
