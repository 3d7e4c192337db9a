"""
Claim Status State Machine.

Provides:
- Valid claim status transitions (as a table)
- Central transition operation with status history
- Member-service side effects on payment and void
- Void / appeal helpers

Source: Design Document 02_authorization_and_billing_consistency.md Section 4.3
Verified: 2026-10-19

State Diagram:
    DRAFT        -> VALIDATED | VOID
    VALIDATED    -> SUBMITTED | DRAFT | VOID
    SUBMITTED    -> ACKNOWLEDGED | DENIED | VOID
    ACKNOWLEDGED -> PENDING | DENIED | VOID
    PENDING      -> PAID | PARTIAL_PAID | DENIED | VOID
    PARTIAL_PAID -> PAID | DENIED | VOID
    PAID         -> VOID
    DENIED       -> APPEALED | VOID
    APPEALED     -> PENDING | PAID | PARTIAL_PAID | FINAL_DENIED | VOID
    FINAL_DENIED -> VOID
    VOID         (terminal)
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from src.core.enums import BillingStatus, ClaimStatus
from src.core.errors import BusinessRuleError, ClaimNotSubmittableError, NotFoundError
from src.core.transitions import TransitionTable
from src.db.unit_of_work import BillingUnitOfWork, UnitOfWorkFactory
from src.models import Claim, ClaimStatusHistory

logger = logging.getLogger(__name__)


# =============================================================================
# Valid Transitions Definition
# =============================================================================


CLAIM_TRANSITIONS: TransitionTable[ClaimStatus] = TransitionTable(
    "claim",
    {
        ClaimStatus.DRAFT: {ClaimStatus.VALIDATED, ClaimStatus.VOID},
        ClaimStatus.VALIDATED: {ClaimStatus.SUBMITTED, ClaimStatus.DRAFT, ClaimStatus.VOID},
        ClaimStatus.SUBMITTED: {ClaimStatus.ACKNOWLEDGED, ClaimStatus.DENIED, ClaimStatus.VOID},
        ClaimStatus.ACKNOWLEDGED: {ClaimStatus.PENDING, ClaimStatus.DENIED, ClaimStatus.VOID},
        ClaimStatus.PENDING: {
            ClaimStatus.PAID,
            ClaimStatus.PARTIAL_PAID,
            ClaimStatus.DENIED,
            ClaimStatus.VOID,
        },
        ClaimStatus.PARTIAL_PAID: {ClaimStatus.PAID, ClaimStatus.DENIED, ClaimStatus.VOID},
        ClaimStatus.PAID: {ClaimStatus.VOID},
        ClaimStatus.DENIED: {ClaimStatus.APPEALED, ClaimStatus.VOID},
        ClaimStatus.APPEALED: {
            ClaimStatus.PENDING,
            ClaimStatus.PAID,
            ClaimStatus.PARTIAL_PAID,
            ClaimStatus.FINAL_DENIED,
            ClaimStatus.VOID,
        },
        ClaimStatus.FINAL_DENIED: {ClaimStatus.VOID},
        ClaimStatus.VOID: set(),
    },
)

SUBMITTABLE_STATUSES = frozenset({ClaimStatus.DRAFT, ClaimStatus.VALIDATED})

# Statuses that record a payer decision
ADJUDICATED_STATUSES = frozenset(
    {ClaimStatus.PAID, ClaimStatus.PARTIAL_PAID, ClaimStatus.DENIED, ClaimStatus.FINAL_DENIED}
)


@dataclass
class ClaimTransitionResult:
    """Result of an applied claim transition."""

    claim: Claim
    previous_status: ClaimStatus
    new_status: ClaimStatus
    services_updated: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": str(self.claim.id),
            "claim_number": self.claim.claim_number,
            "previous_status": self.previous_status.value,
            "new_status": self.new_status.value,
            "services_updated": self.services_updated,
        }


# =============================================================================
# Claim Lifecycle
# =============================================================================


class ClaimLifecycle:
    """Owns every claim status write except creation."""

    def __init__(self, uow_factory: UnitOfWorkFactory):
        self.uow_factory = uow_factory

    async def transition_claim_status(
        self,
        claim_id: UUID,
        target_status: ClaimStatus,
        notes: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> ClaimTransitionResult:
        """
        Move a claim to target_status.

        Raises:
            NotFoundError: claim does not exist
            InvalidStatusTransitionError: move not in the table (nothing written)
        """
        async with self.uow_factory() as uow:
            claim = await uow.claims.get_for_update(claim_id)
            if claim is None:
                raise NotFoundError("claim", claim_id)
            result = await self.apply_transition(uow, claim, target_status, notes, user_id)
            await uow.commit()
        return result

    async def apply_transition(
        self,
        uow: BillingUnitOfWork,
        claim: Claim,
        target_status: ClaimStatus,
        notes: Optional[str] = None,
        user_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> ClaimTransitionResult:
        """Apply a transition inside the caller's unit of work."""
        previous = claim.status
        CLAIM_TRANSITIONS.require(previous, target_status)

        claim.status = target_status
        if target_status in ADJUDICATED_STATUSES:
            claim.adjudication_date = date.today()
        if target_status in (ClaimStatus.DENIED, ClaimStatus.FINAL_DENIED) and notes:
            claim.denial_reason = notes[:500]

        services_updated = 0
        if target_status == ClaimStatus.PAID:
            services_updated = await self._mark_services_billed(uow, claim)
        elif target_status == ClaimStatus.VOID:
            services_updated = await self._release_services(uow, claim)

        await uow.claims.add_status_history(
            ClaimStatusHistory(
                id=uuid4(),
                claim_id=claim.id,
                previous_status=previous,
                new_status=target_status,
                changed_at=datetime.now(timezone.utc),
                changed_by=user_id,
                notes=notes,
                details=details,
            )
        )

        logger.info(
            f"Claim {claim.claim_number} transitioned: {previous.value} -> {target_status.value}"
        )
        return ClaimTransitionResult(claim, previous, target_status, services_updated)

    @staticmethod
    def ensure_submittable(claim: Claim) -> None:
        if claim.status not in SUBMITTABLE_STATUSES:
            raise ClaimNotSubmittableError(
                f"Claim {claim.claim_number} cannot be submitted from status {claim.status.value}",
                details={"claim_id": str(claim.id), "status": claim.status.value},
            )

    async def void_claim(
        self,
        claim_id: UUID,
        notes: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> ClaimTransitionResult:
        async with self.uow_factory() as uow:
            claim = await uow.claims.get_for_update(claim_id)
            if claim is None:
                raise NotFoundError("claim", claim_id)
            if claim.status == ClaimStatus.VOID:
                raise BusinessRuleError(
                    f"Claim {claim.claim_number} is already void", code="claim-already-voided"
                )
            result = await self.apply_transition(
                uow, claim, ClaimStatus.VOID, notes or "Claim voided", user_id
            )
            await uow.commit()
        return result

    async def appeal_claim(
        self,
        claim_id: UUID,
        notes: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> ClaimTransitionResult:
        async with self.uow_factory() as uow:
            claim = await uow.claims.get_for_update(claim_id)
            if claim is None:
                raise NotFoundError("claim", claim_id)
            if claim.status != ClaimStatus.DENIED:
                raise BusinessRuleError(
                    f"Only denied claims can be appealed; claim is {claim.status.value}",
                    code="claim-not-denied",
                )
            result = await self.apply_transition(
                uow, claim, ClaimStatus.APPEALED, notes or "Claim appealed", user_id
            )
            await uow.commit()
        return result

    async def get_status_history(self, claim_id: UUID) -> list[ClaimStatusHistory]:
        async with self.uow_factory() as uow:
            claim = await uow.claims.get(claim_id)
            if claim is None:
                raise NotFoundError("claim", claim_id)
            return await uow.claims.list_status_history(claim_id)

    # =========================================================================
    # Member Service Side Effects
    # =========================================================================

    @staticmethod
    async def _mark_services_billed(uow: BillingUnitOfWork, claim: Claim) -> int:
        updated = 0
        for service in await uow.services.list_by_claim(claim.id, for_update=True):
            if service.billing_status == BillingStatus.IN_CLAIM:
                service.billing_status = BillingStatus.BILLED
                updated += 1
        return updated

    @staticmethod
    async def _release_services(uow: BillingUnitOfWork, claim: Claim) -> int:
        """Return still-claimed services to the billable pool."""
        released = 0
        for service in await uow.services.list_by_claim(claim.id, for_update=True):
            if service.billing_status == BillingStatus.IN_CLAIM:
                service.billing_status = BillingStatus.READY_FOR_BILLING
                service.claim_id = None
                service.append_note(f"Released from voided claim {claim.claim_number}")
                released += 1
        if released:
            logger.info(f"Claim {claim.claim_number} voided; {released} services released")
        return released


# =============================================================================
# Status Helpers
# =============================================================================


def is_terminal_status(status: ClaimStatus) -> bool:
    """Check if status is terminal (no further transitions)."""
    return CLAIM_TRANSITIONS.is_terminal(status)


def get_status_display_name(status: ClaimStatus) -> str:
    """Get human-readable status name."""
    display_names = {
        ClaimStatus.DRAFT: "Draft",
        ClaimStatus.VALIDATED: "Validated",
        ClaimStatus.SUBMITTED: "Submitted",
        ClaimStatus.ACKNOWLEDGED: "Acknowledged",
        ClaimStatus.PENDING: "In Adjudication",
        ClaimStatus.PAID: "Paid",
        ClaimStatus.PARTIAL_PAID: "Partially Paid",
        ClaimStatus.DENIED: "Denied",
        ClaimStatus.APPEALED: "Appealed",
        ClaimStatus.FINAL_DENIED: "Final Denial",
        ClaimStatus.VOID: "Void",
    }
    return display_names.get(status, status.value)
