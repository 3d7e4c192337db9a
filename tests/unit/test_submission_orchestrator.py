"""
Unit tests for claim submission orchestration.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from src.core.enums import AuthorizationStatus, BillingStatus, ClaimStatus, SubmissionMethod
from src.core.errors import ClaimNotSubmittableError, NotFoundError, UnsupportedSubmissionMethodError
from src.gateways.base import IntegrationTimeoutError, IntegrationUnavailableError
from src.services.submission_orchestrator import (
    BatchSubmissionRequest,
    SubmissionOrchestrator,
    SubmissionRequest,
)
from tests.fakes import FakeSubmissionAttemptRepository, StubClearinghouse, StubPayerClient


@pytest.fixture
def clearinghouse():
    return StubClearinghouse()


@pytest.fixture
def payer_client():
    return StubPayerClient()


@pytest.fixture
def orchestrator(uow_factory, billing_settings, clearinghouse, payer_client):
    return SubmissionOrchestrator(
        uow_factory,
        clearinghouse=clearinghouse,
        payer_client=payer_client,
        settings=billing_settings,
    )


@pytest.fixture
def make_claim(seed):
    """Claim for one client with two recent, complete services."""
    payer = seed.payer()

    def build(status=ClaimStatus.DRAFT, claim_payer=None, **service_overrides):
        client_id = seed.client()
        recent = date.today() - timedelta(days=10)
        services = [
            seed.service(client_id=client_id, service_date=recent, **service_overrides)
            for _ in range(2)
        ]
        return seed.claim(claim_payer or payer, services, status=status)

    build.payer = payer
    return build


def _request(claim, method=SubmissionMethod.CLEARINGHOUSE, **kwargs):
    return SubmissionRequest(claim_id=claim.id, submission_method=method, **kwargs)


# =============================================================================
# Single Submission Tests
# =============================================================================


class TestSubmitClaim:
    """Tests for single-claim submission."""

    @pytest.mark.asyncio
    async def test_clearinghouse_success(self, orchestrator, make_claim, clearinghouse, store):
        claim = make_claim()
        user_id = uuid4()

        response = await orchestrator.submit_claim(_request(claim, user_id=user_id))

        assert response.success
        assert response.claim_status == ClaimStatus.SUBMITTED
        assert response.confirmation_number == f"TRK-{claim.claim_number}"
        assert claim.status == ClaimStatus.SUBMITTED
        assert claim.submission_method == SubmissionMethod.CLEARINGHOUSE
        assert claim.tracking_number == response.confirmation_number
        assert claim.external_claim_id == f"EXT-{claim.claim_number}"
        assert clearinghouse.claims[0].billing_format == "x12_837p"

        history = sorted(store.status_history.values(), key=lambda h: h.changed_at)
        assert [(h.previous_status, h.new_status) for h in history] == [
            (ClaimStatus.DRAFT, ClaimStatus.VALIDATED),
            (ClaimStatus.VALIDATED, ClaimStatus.SUBMITTED),
        ]
        attempts = list(store.attempts.values())
        assert len(attempts) == 1
        assert attempts[0].success
        assert attempts[0].attempted_by == user_id

    @pytest.mark.asyncio
    async def test_validated_claim_goes_straight_to_submitted(self, orchestrator, make_claim, store):
        claim = make_claim(ClaimStatus.VALIDATED)

        await orchestrator.submit_claim(_request(claim))

        assert [h.new_status for h in store.status_history.values()] == [ClaimStatus.SUBMITTED]

    @pytest.mark.asyncio
    async def test_paid_claim_is_not_submittable(self, orchestrator, make_claim, clearinghouse, store):
        claim = make_claim(ClaimStatus.PAID)

        with pytest.raises(ClaimNotSubmittableError):
            await orchestrator.submit_claim(_request(claim))

        assert clearinghouse.claims == []
        assert store.attempts == {}
        assert claim.status == ClaimStatus.PAID

    @pytest.mark.asyncio
    async def test_missing_claim(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.submit_claim(
                SubmissionRequest(uuid4(), SubmissionMethod.CLEARINGHOUSE)
            )

    @pytest.mark.asyncio
    async def test_integration_failure_leaves_claim_unchanged(
        self, uow_factory, billing_settings, make_claim, store
    ):
        failing = StubClearinghouse(error=IntegrationTimeoutError("clearinghouse timed out"))
        orchestrator = SubmissionOrchestrator(
            uow_factory, clearinghouse=failing, settings=billing_settings
        )
        claim = make_claim()

        with pytest.raises(IntegrationTimeoutError):
            await orchestrator.submit_claim(_request(claim))

        assert claim.status == ClaimStatus.DRAFT
        assert claim.submission_date is None
        assert store.status_history == {}
        attempts = list(store.attempts.values())
        assert len(attempts) == 1
        assert not attempts[0].success
        assert attempts[0].errors[0]["code"] == "integration-timeout"

    @pytest.mark.asyncio
    async def test_attempt_log_failure_does_not_block_submission(
        self, orchestrator, make_claim, store, monkeypatch
    ):
        claim = make_claim()

        async def broken_add(self, attempt):
            raise SQLAlchemyError("attempt log unavailable")

        monkeypatch.setattr(FakeSubmissionAttemptRepository, "add", broken_add)

        response = await orchestrator.submit_claim(_request(claim))

        assert response.success
        assert store.attempts == {}
        assert claim.status == ClaimStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_validation_failure_returns_result(self, orchestrator, make_claim, clearinghouse):
        claim = make_claim()
        payer = make_claim.payer
        payer.clearinghouse_id = None

        response = await orchestrator.submit_claim(_request(claim))

        assert not response.success
        assert "missing-clearinghouse-id" in response.validation_result.error_codes
        assert response.claim_status == ClaimStatus.DRAFT
        assert clearinghouse.claims == []

    @pytest.mark.asyncio
    async def test_payer_api_submission(self, orchestrator, make_claim, payer_client):
        claim = make_claim()

        response = await orchestrator.submit_claim(_request(claim, SubmissionMethod.DIRECT))

        assert response.confirmation_number == "CONF-1"
        assert response.external_claim_id == "PAYER-1"
        assert payer_client.calls[0][0] == make_claim.payer.electronic_endpoint

    @pytest.mark.asyncio
    async def test_electronic_requires_payer_acceptance(self, orchestrator, make_claim, payer_client):
        make_claim.payer.accepts_electronic_claims = False
        claim = make_claim()

        response = await orchestrator.submit_claim(_request(claim, SubmissionMethod.ELECTRONIC))

        assert response.validation_result.error_codes == ["electronic-claims-not-accepted"]
        assert payer_client.calls == []

    @pytest.mark.asyncio
    async def test_portal_returns_instructions(self, orchestrator, make_claim):
        claim = make_claim()

        response = await orchestrator.submit_claim(_request(claim, SubmissionMethod.PORTAL))

        assert response.success
        assert claim.claim_number in response.instructions
        assert make_claim.payer.portal_url in response.instructions

    @pytest.mark.asyncio
    async def test_paper_is_unsupported(self, orchestrator, make_claim):
        claim = make_claim()

        with pytest.raises(UnsupportedSubmissionMethodError):
            await orchestrator.submit_claim(_request(claim, SubmissionMethod.PAPER))

        assert claim.status == ClaimStatus.DRAFT

    @pytest.mark.asyncio
    async def test_unconfigured_payer_client(self, uow_factory, billing_settings, make_claim):
        orchestrator = SubmissionOrchestrator(uow_factory, settings=billing_settings)
        claim = make_claim()

        with pytest.raises(IntegrationUnavailableError) as exc_info:
            await orchestrator.submit_claim(_request(claim, SubmissionMethod.DIRECT))
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_failed_commit_is_not_logged_as_success(self, orchestrator, make_claim, store):
        claim = make_claim()
        store.fail_commits = 1

        with pytest.raises(SQLAlchemyError):
            await orchestrator.submit_claim(_request(claim))

        assert claim.status == ClaimStatus.DRAFT
        assert store.status_history == {}
        attempts = list(store.attempts.values())
        assert len(attempts) == 1
        assert not attempts[0].success
        assert attempts[0].confirmation_number == f"TRK-{claim.claim_number}"
        assert attempts[0].errors[0]["code"] == "persistence-failed"

    @pytest.mark.asyncio
    async def test_list_attempts(self, orchestrator, make_claim):
        claim = make_claim()
        await orchestrator.submit_claim(_request(claim))

        attempts = await orchestrator.list_attempts(claim.id)

        assert [a.channel for a in attempts] == [SubmissionMethod.CLEARINGHOUSE]


# =============================================================================
# Validation Tests
# =============================================================================


class TestSubmissionValidation:
    """Tests for pre-submission checks."""

    @pytest.mark.asyncio
    async def test_authorization_findings_are_included(self, orchestrator, seed, make_claim):
        authorization = seed.authorization(
            status=AuthorizationStatus.ACTIVE, start_date=date.today() + timedelta(days=1), end_date=None
        )
        claim = make_claim(authorization_id=authorization.id)

        response = await orchestrator.submit_claim(_request(claim))

        assert not response.success
        assert "service-date-before-authorization-start" in response.validation_result.error_codes

    @pytest.mark.asyncio
    async def test_fully_used_authorization_is_submittable(self, orchestrator, seed, clearinghouse):
        recent = date.today() - timedelta(days=10)
        authorization = seed.authorization(
            authorized_units=10, used_units=10, start_date=recent - timedelta(days=30), end_date=None
        )
        service = seed.service(
            client_id=authorization.client_id,
            service_type_id=authorization.service_type_ids[0],
            authorization_id=authorization.id,
            service_date=recent,
            units=10,
        )
        claim = seed.claim(seed.payer(), [service])

        response = await orchestrator.submit_claim(_request(claim))

        assert response.success
        assert "exceeds-authorized-units" not in response.validation_result.error_codes
        assert len(clearinghouse.claims) == 1

    @pytest.mark.asyncio
    async def test_non_positive_total(self, orchestrator, make_claim):
        claim = make_claim(amount=Decimal("0.00"))

        response = await orchestrator.submit_claim(_request(claim))

        assert "invalid-total-amount" in response.validation_result.error_codes

    def test_filing_deadline_passed(self, orchestrator, make_claim):
        claim = make_claim()
        payer = make_claim.payer
        payer.filing_deadline_days = 90
        claim.service_end_date = date(2026, 1, 1)

        result = orchestrator.validate_filing_deadline(claim, payer, as_of=date(2026, 4, 2))

        assert result.error_codes == ["filing-deadline-passed"]

    def test_filing_deadline_approaching(self, orchestrator, make_claim):
        claim = make_claim()
        payer = make_claim.payer
        payer.filing_deadline_days = 90
        claim.service_end_date = date(2026, 1, 1)

        result = orchestrator.validate_filing_deadline(claim, payer, as_of=date(2026, 3, 20))

        assert result.is_valid
        assert result.warning_codes == ["filing-deadline-approaching"]
        assert result.warnings[0].context["days_remaining"] == 12

    def test_default_deadline_when_payer_has_none(self, orchestrator, make_claim):
        claim = make_claim()
        payer = make_claim.payer
        payer.filing_deadline_days = None
        claim.service_end_date = date(2025, 1, 1)

        result = orchestrator.validate_filing_deadline(claim, payer, as_of=date(2026, 1, 2))

        assert result.error_codes == ["filing-deadline-passed"]


# =============================================================================
# Batch Tests
# =============================================================================


class TestSubmitBatch:
    """Tests for batch submission."""

    @pytest.mark.asyncio
    async def test_clearinghouse_batch_groups_by_payer(self, orchestrator, seed, make_claim, clearinghouse):
        other_payer = seed.payer(clearinghouse_id="CH-002")
        first, second = make_claim(), make_claim()
        third = make_claim(claim_payer=other_payer)
        missing_id = uuid4()

        response = await orchestrator.submit_batch(
            BatchSubmissionRequest(
                claim_ids=[first.id, missing_id, second.id, third.id],
                submission_method=SubmissionMethod.CLEARINGHOUSE,
            )
        )

        assert response.total_processed == 4
        assert response.success_count == 3
        assert response.errors == [
            {"claim_id": str(missing_id), "message": f"Claim not found: {missing_id}", "code": "not-found"}
        ]
        assert [len(b) for b in clearinghouse.batches] == [2, 1]
        assert all(c.status == ClaimStatus.SUBMITTED for c in (first, second, third))

    @pytest.mark.asyncio
    async def test_rejected_items_stay_unsubmitted(self, uow_factory, billing_settings, make_claim, store):
        accepted, rejected = make_claim(), make_claim()
        clearinghouse = StubClearinghouse(rejected=[rejected.claim_number])
        orchestrator = SubmissionOrchestrator(
            uow_factory, clearinghouse=clearinghouse, settings=billing_settings
        )

        response = await orchestrator.submit_batch(
            BatchSubmissionRequest([accepted.id, rejected.id], SubmissionMethod.CLEARINGHOUSE)
        )

        assert response.processed_claim_ids == [accepted.id]
        assert response.errors[0]["message"] == "Invalid member id"
        assert accepted.status == ClaimStatus.SUBMITTED
        assert rejected.status == ClaimStatus.DRAFT
        outcomes = {a.claim_id: a.success for a in store.attempts.values()}
        assert outcomes == {accepted.id: True, rejected.id: False}

    @pytest.mark.asyncio
    async def test_one_bad_claim_does_not_block_others(self, orchestrator, make_claim):
        good = make_claim()
        paid = make_claim(ClaimStatus.PAID)

        response = await orchestrator.submit_batch(
            BatchSubmissionRequest([good.id, paid.id], SubmissionMethod.DIRECT)
        )

        assert response.success_count == 1
        assert response.errors[0]["claim_id"] == str(paid.id)
        assert response.errors[0]["code"] == "claim-not-submittable"
        assert good.status == ClaimStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_database_failure_on_one_claim_does_not_block_others(
        self, orchestrator, make_claim, payer_client, store
    ):
        first, second = make_claim(), make_claim()
        store.fail_commits = 1

        response = await orchestrator.submit_batch(
            BatchSubmissionRequest([first.id, second.id], SubmissionMethod.DIRECT)
        )

        assert response.total_processed == 2
        assert response.processed_claim_ids == [second.id]
        assert response.errors[0]["claim_id"] == str(first.id)
        assert "simulated commit failure" in response.errors[0]["message"]
        assert first.status == ClaimStatus.DRAFT
        assert second.status == ClaimStatus.SUBMITTED
        assert len(payer_client.calls) == 2

    @pytest.mark.asyncio
    async def test_batch_outage_marks_every_claim_failed(self, uow_factory, billing_settings, make_claim):
        claims = [make_claim(), make_claim()]
        orchestrator = SubmissionOrchestrator(
            uow_factory,
            clearinghouse=StubClearinghouse(error=IntegrationUnavailableError("down")),
            settings=billing_settings,
        )

        response = await orchestrator.submit_batch(
            BatchSubmissionRequest([c.id for c in claims], SubmissionMethod.CLEARINGHOUSE)
        )

        assert response.error_count == 2
        assert {e["code"] for e in response.errors} == {"integration-unavailable"}
        assert all(c.status == ClaimStatus.DRAFT for c in claims)

    @pytest.mark.asyncio
    async def test_services_stay_in_claim_after_submission(self, orchestrator, make_claim, store):
        claim = make_claim()

        await orchestrator.submit_claim(_request(claim))

        services = [s for s in store.services.values() if s.claim_id == claim.id]
        assert services
        assert all(s.billing_status == BillingStatus.IN_CLAIM for s in services)
