"""
Claim Lifecycle API Endpoints.

Provides:
- Status transitions
- Void and appeal
- Status history

Source: Design Document 02_authorization_and_billing_consistency.md Section 4.3
Verified: 2026-10-19
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.deps import get_acting_user_id, get_lifecycle
from src.core.enums import ClaimStatus
from src.services.claim_state_machine import (
    CLAIM_TRANSITIONS,
    ClaimLifecycle,
    get_status_display_name,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/claims",
    tags=["claims"],
)


# =============================================================================
# Request/Response Schemas
# =============================================================================


class ClaimTransitionRequest(BaseModel):
    status: ClaimStatus
    notes: Optional[str] = Field(None, max_length=2000)


class ClaimActionRequest(BaseModel):
    """Request for claim actions (void/appeal)."""

    notes: Optional[str] = Field(None, max_length=2000)


class StatusHistoryEntry(BaseModel):
    id: str
    previous_status: Optional[str] = None
    new_status: str
    new_status_display: str
    changed_at: Optional[datetime] = None
    changed_by: Optional[str] = None
    notes: Optional[str] = None


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/transitions")
async def list_transitions() -> dict[str, list[str]]:
    """Allowed next statuses for every claim status."""
    return {
        s.value: sorted(t.value for t in CLAIM_TRANSITIONS.allowed_targets(s))
        for s in ClaimStatus
    }


@router.post("/{claim_id}/status")
async def transition_claim_status(
    claim_id: UUID,
    data: ClaimTransitionRequest,
    lifecycle: ClaimLifecycle = Depends(get_lifecycle),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> dict[str, Any]:
    result = await lifecycle.transition_claim_status(claim_id, data.status, data.notes, user_id)
    return result.to_dict()


@router.post("/{claim_id}/void")
async def void_claim(
    claim_id: UUID,
    data: ClaimActionRequest,
    lifecycle: ClaimLifecycle = Depends(get_lifecycle),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> dict[str, Any]:
    """Void a claim and release its services for re-billing."""
    result = await lifecycle.void_claim(claim_id, data.notes, user_id)
    return result.to_dict()


@router.post("/{claim_id}/appeal")
async def appeal_claim(
    claim_id: UUID,
    data: ClaimActionRequest,
    lifecycle: ClaimLifecycle = Depends(get_lifecycle),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> dict[str, Any]:
    result = await lifecycle.appeal_claim(claim_id, data.notes, user_id)
    return result.to_dict()


@router.get("/{claim_id}/history", response_model=list[StatusHistoryEntry])
async def get_claim_history(
    claim_id: UUID,
    lifecycle: ClaimLifecycle = Depends(get_lifecycle),
) -> list[StatusHistoryEntry]:
    history = await lifecycle.get_status_history(claim_id)
    return [
        StatusHistoryEntry(
            id=str(entry.id),
            previous_status=entry.previous_status.value if entry.previous_status else None,
            new_status=entry.new_status.value,
            new_status_display=get_status_display_name(entry.new_status),
            changed_at=entry.changed_at,
            changed_by=str(entry.changed_by) if entry.changed_by else None,
            notes=entry.notes,
        )
        for entry in history
    ]
