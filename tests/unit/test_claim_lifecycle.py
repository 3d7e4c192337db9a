"""
Unit tests for the claim status state machine.
"""

from uuid import uuid4

import pytest

from src.core.enums import BillingStatus, ClaimStatus
from src.core.errors import (
    BusinessRuleError,
    ClaimNotSubmittableError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from src.services.claim_state_machine import (
    CLAIM_TRANSITIONS,
    ClaimLifecycle,
    get_status_display_name,
    is_terminal_status,
)


@pytest.fixture
def lifecycle(uow_factory):
    return ClaimLifecycle(uow_factory)


@pytest.fixture
def claim_with_services(seed):
    payer = seed.payer()
    client_id = seed.client()
    services = [seed.service(client_id=client_id) for _ in range(2)]

    def build(status=ClaimStatus.DRAFT):
        return seed.claim(payer, services, status=status), services

    return build


class TestClaimTransitionTable:
    """Tests for the claim transition table."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (ClaimStatus.DRAFT, ClaimStatus.VALIDATED),
            (ClaimStatus.VALIDATED, ClaimStatus.SUBMITTED),
            (ClaimStatus.VALIDATED, ClaimStatus.DRAFT),
            (ClaimStatus.PENDING, ClaimStatus.PARTIAL_PAID),
            (ClaimStatus.PARTIAL_PAID, ClaimStatus.PAID),
            (ClaimStatus.DENIED, ClaimStatus.APPEALED),
            (ClaimStatus.APPEALED, ClaimStatus.FINAL_DENIED),
            (ClaimStatus.PAID, ClaimStatus.VOID),
        ],
    )
    def test_allowed(self, current, target):
        assert CLAIM_TRANSITIONS.can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ClaimStatus.DRAFT, ClaimStatus.PAID),
            (ClaimStatus.DRAFT, ClaimStatus.SUBMITTED),
            (ClaimStatus.SUBMITTED, ClaimStatus.PAID),
            (ClaimStatus.PAID, ClaimStatus.DENIED),
            (ClaimStatus.FINAL_DENIED, ClaimStatus.APPEALED),
            (ClaimStatus.VOID, ClaimStatus.DRAFT),
        ],
    )
    def test_rejected(self, current, target):
        assert not CLAIM_TRANSITIONS.can_transition(current, target)

    def test_every_non_void_status_can_be_voided(self):
        for status in ClaimStatus:
            if status != ClaimStatus.VOID:
                assert CLAIM_TRANSITIONS.can_transition(status, ClaimStatus.VOID)

    def test_void_is_the_only_terminal_status(self):
        assert [s for s in ClaimStatus if is_terminal_status(s)] == [ClaimStatus.VOID]

    def test_display_names(self):
        assert get_status_display_name(ClaimStatus.PENDING) == "In Adjudication"
        assert get_status_display_name(ClaimStatus.FINAL_DENIED) == "Final Denial"


class TestTransitionClaimStatus:
    """Tests for applying transitions to stored claims."""

    @pytest.mark.asyncio
    async def test_valid_transition_writes_history(self, lifecycle, claim_with_services, store):
        claim, _ = claim_with_services()
        user_id = uuid4()

        result = await lifecycle.transition_claim_status(
            claim.id, ClaimStatus.VALIDATED, "Checked", user_id
        )

        assert result.previous_status == ClaimStatus.DRAFT
        assert store.claims[claim.id].status == ClaimStatus.VALIDATED
        history = await lifecycle.get_status_history(claim.id)
        assert len(history) == 1
        assert history[0].previous_status == ClaimStatus.DRAFT
        assert history[0].new_status == ClaimStatus.VALIDATED
        assert history[0].changed_by == user_id

    @pytest.mark.asyncio
    async def test_draft_to_paid_is_rejected(self, lifecycle, claim_with_services, store):
        claim, _ = claim_with_services()

        with pytest.raises(InvalidStatusTransitionError):
            await lifecycle.transition_claim_status(claim.id, ClaimStatus.PAID)

        assert store.claims[claim.id].status == ClaimStatus.DRAFT
        assert store.status_history == {}

    @pytest.mark.asyncio
    async def test_paid_bills_member_services(self, lifecycle, claim_with_services):
        claim, services = claim_with_services(ClaimStatus.PENDING)

        result = await lifecycle.transition_claim_status(claim.id, ClaimStatus.PAID)

        assert result.services_updated == 2
        assert all(s.billing_status == BillingStatus.BILLED for s in services)
        assert claim.adjudication_date is not None

    @pytest.mark.asyncio
    async def test_denial_records_reason_and_keeps_services(self, lifecycle, claim_with_services):
        claim, services = claim_with_services(ClaimStatus.SUBMITTED)

        await lifecycle.transition_claim_status(claim.id, ClaimStatus.DENIED, "Missing modifier")

        assert claim.denial_reason == "Missing modifier"
        assert all(s.billing_status == BillingStatus.IN_CLAIM for s in services)

    @pytest.mark.asyncio
    async def test_missing_claim(self, lifecycle):
        with pytest.raises(NotFoundError):
            await lifecycle.transition_claim_status(uuid4(), ClaimStatus.VALIDATED)


class TestVoidAndAppeal:
    """Tests for the void and appeal helpers."""

    @pytest.mark.asyncio
    async def test_void_releases_services(self, lifecycle, claim_with_services):
        claim, services = claim_with_services(ClaimStatus.SUBMITTED)

        result = await lifecycle.void_claim(claim.id, "Duplicate")

        assert result.new_status == ClaimStatus.VOID
        assert result.services_updated == 2
        for service in services:
            assert service.billing_status == BillingStatus.READY_FOR_BILLING
            assert service.claim_id is None
            assert claim.claim_number in service.notes

    @pytest.mark.asyncio
    async def test_void_twice_is_rejected(self, lifecycle, claim_with_services):
        claim, _ = claim_with_services(ClaimStatus.VOID)

        with pytest.raises(BusinessRuleError) as exc_info:
            await lifecycle.void_claim(claim.id)
        assert exc_info.value.code == "claim-already-voided"

    @pytest.mark.asyncio
    async def test_appeal_denied_claim(self, lifecycle, claim_with_services):
        claim, _ = claim_with_services(ClaimStatus.DENIED)

        result = await lifecycle.appeal_claim(claim.id, "Documentation attached")

        assert result.new_status == ClaimStatus.APPEALED

    @pytest.mark.asyncio
    async def test_appeal_requires_denial(self, lifecycle, claim_with_services):
        claim, _ = claim_with_services(ClaimStatus.PENDING)

        with pytest.raises(BusinessRuleError) as exc_info:
            await lifecycle.appeal_claim(claim.id)
        assert exc_info.value.code == "claim-not-denied"


class TestEnsureSubmittable:
    """Tests for the submit guard."""

    @pytest.mark.parametrize("status", [ClaimStatus.DRAFT, ClaimStatus.VALIDATED])
    def test_submittable(self, claim_with_services, status):
        claim, _ = claim_with_services(status)
        ClaimLifecycle.ensure_submittable(claim)

    @pytest.mark.parametrize("status", [ClaimStatus.SUBMITTED, ClaimStatus.PAID, ClaimStatus.VOID])
    def test_not_submittable(self, claim_with_services, status):
        claim, _ = claim_with_services(status)
        with pytest.raises(ClaimNotSubmittableError):
            ClaimLifecycle.ensure_submittable(claim)
