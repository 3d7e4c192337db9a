"""
Billing API Endpoints.

Provides:
- Service-to-claim conversion (single and batch)
- Billable service listing

Source: Design Document 02_authorization_and_billing_consistency.md Section 4.4
Verified: 2026-10-19
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.api.deps import get_acting_user_id, get_converter
from src.models import Service
from src.services.claim_converter import ConversionGroup, ServiceToClaimConverter
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/billing",
    tags=["billing"],
)


# =============================================================================
# Request/Response Schemas
# =============================================================================


class ConvertServicesRequest(BaseModel):
    service_ids: list[UUID] = Field(default_factory=list)
    payer_id: Optional[UUID] = None
    notes: Optional[str] = Field(None, max_length=2000)


class BatchConvertRequest(BaseModel):
    groups: list[ConvertServicesRequest] = Field(..., min_length=1, max_length=200)


class BillableServiceResponse(BaseModel):
    id: str
    client_id: str
    service_type_id: str
    service_date: date
    units: int
    amount: Decimal
    authorization_id: Optional[str] = None


class BillableServiceListResponse(BaseModel):
    items: list[BillableServiceResponse]
    total: int
    page: int
    size: int


def _service_to_response(service: Service) -> BillableServiceResponse:
    return BillableServiceResponse(
        id=str(service.id),
        client_id=str(service.client_id),
        service_type_id=str(service.service_type_id),
        service_date=service.service_date,
        units=service.units,
        amount=service.amount,
        authorization_id=str(service.authorization_id) if service.authorization_id else None,
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/claims")
async def convert_services_to_claim(
    data: ConvertServicesRequest,
    converter: ServiceToClaimConverter = Depends(get_converter),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> JSONResponse:
    """
    Create a DRAFT claim from billable services.

    Returns 201 with the claim, or 422 with the validation errors.
    """
    result = await converter.convert_services_to_claim(
        data.service_ids, data.payer_id, data.notes, user_id
    )
    status_code = status.HTTP_201_CREATED if result.success else status.HTTP_422_UNPROCESSABLE_ENTITY
    return JSONResponse(status_code=status_code, content=result.to_dict())


@router.post("/claims/batch")
async def batch_convert_services(
    data: BatchConvertRequest,
    converter: ServiceToClaimConverter = Depends(get_converter),
) -> dict[str, Any]:
    groups = [
        ConversionGroup(service_ids=g.service_ids, payer_id=g.payer_id, notes=g.notes)
        for g in data.groups
    ]
    result = await converter.batch_convert_services_to_claims(groups)
    return result.to_dict()


@router.get("/services/billable", response_model=BillableServiceListResponse)
async def list_billable_services(
    page: int = Query(1, ge=1),
    size: int = Query(25, ge=1, le=100),
    client_id: Optional[UUID] = None,
    converter: ServiceToClaimConverter = Depends(get_converter),
) -> BillableServiceListResponse:
    result = await converter.find_billable_services(page=page, page_size=size, client_id=client_id)
    return BillableServiceListResponse(
        items=[_service_to_response(s) for s in result.items],
        total=result.total,
        page=result.page,
        size=result.page_size,
    )
