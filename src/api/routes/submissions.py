"""
Claim Submission API Endpoints.

Provides:
- Single claim submission
- Batch submission
- Submission attempt log

Source: Design Document 02_authorization_and_billing_consistency.md Section 4.5
Verified: 2026-10-19
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.api.deps import get_acting_user_id, get_orchestrator
from src.core.enums import SubmissionMethod
from src.services.submission_orchestrator import (
    BatchSubmissionRequest,
    SubmissionOrchestrator,
    SubmissionRequest,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/submissions",
    tags=["submissions"],
)


class SubmitClaimRequest(BaseModel):
    claim_id: UUID
    submission_method: SubmissionMethod
    options: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = Field(None, max_length=2000)


class SubmitBatchRequest(BaseModel):
    claim_ids: list[UUID] = Field(..., min_length=1, max_length=1000)
    submission_method: SubmissionMethod
    options: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = Field(None, max_length=2000)


@router.post("")
async def submit_claim(
    data: SubmitClaimRequest,
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> JSONResponse:
    """
    Submit a DRAFT or VALIDATED claim.

    Returns 200 on success and 422 when the claim fails submission
    validation; external failures map to 502/503.
    """
    result = await orchestrator.submit_claim(
        SubmissionRequest(
            claim_id=data.claim_id,
            submission_method=data.submission_method,
            options=data.options,
            notes=data.notes,
            user_id=user_id,
        )
    )
    status_code = status.HTTP_200_OK if result.success else status.HTTP_422_UNPROCESSABLE_ENTITY
    return JSONResponse(status_code=status_code, content=result.to_dict())


@router.post("/batch")
async def submit_batch(
    data: SubmitBatchRequest,
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> dict[str, Any]:
    result = await orchestrator.submit_batch(
        BatchSubmissionRequest(
            claim_ids=data.claim_ids,
            submission_method=data.submission_method,
            options=data.options,
            notes=data.notes,
            user_id=user_id,
        )
    )
    return result.to_dict()


@router.get("/claims/{claim_id}/attempts")
async def list_submission_attempts(
    claim_id: UUID,
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
) -> list[dict[str, Any]]:
    attempts = await orchestrator.list_attempts(claim_id)
    return [
        {
            "id": str(a.id),
            "channel": a.channel.value,
            "success": a.success,
            "confirmation_number": a.confirmation_number,
            "external_claim_id": a.external_claim_id,
            "errors": a.errors,
            "correlation_id": a.correlation_id,
            "attempted_at": a.attempted_at.isoformat() if a.attempted_at else None,
        }
        for a in attempts
    ]
