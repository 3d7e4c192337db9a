"""
Unit tests for error to HTTP status mapping.
"""

from uuid import uuid4

import pytest

from src.core.enums import ClaimStatus
from src.core.errors import (
    BillingError,
    BusinessRuleError,
    ClaimNotSubmittableError,
    ExceedsAuthorizedUnitsError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from src.gateways.base import (
    IntegrationError,
    IntegrationRejectedError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)
from src.utils.errors import status_for_billing_error, status_for_integration_error


@pytest.mark.unit
class TestBillingErrorStatus:
    def test_not_found(self):
        assert status_for_billing_error(NotFoundError("claim", uuid4())) == 404

    @pytest.mark.parametrize(
        "code", ["invalid-date-range", "empty-service-ids", "missing-payer-id", "invalid-units"]
    )
    def test_input_rule_codes_are_unprocessable(self, code):
        assert status_for_billing_error(BusinessRuleError("bad input", code=code)) == 422

    def test_state_conflicts(self):
        assert status_for_billing_error(ExceedsAuthorizedUnitsError("too many")) == 409
        assert status_for_billing_error(ClaimNotSubmittableError("paid")) == 409

    def test_invalid_transition_is_a_conflict(self):
        error = InvalidStatusTransitionError("claim", ClaimStatus.DRAFT, ClaimStatus.PAID)
        assert error.code == "invalid-status-transition"
        assert status_for_billing_error(error) == 409

    def test_other_billing_errors(self):
        assert status_for_billing_error(BillingError("unexpected")) == 400

    def test_to_dict(self):
        error = NotFoundError("payer", "p-1")
        assert error.to_dict() == {
            "code": "not-found",
            "message": "Payer not found: p-1",
            "details": {"entity": "payer", "entity_id": "p-1"},
        }


@pytest.mark.unit
class TestIntegrationErrorStatus:
    @pytest.mark.parametrize(
        "error",
        [IntegrationTimeoutError("slow"), IntegrationUnavailableError("down")],
    )
    def test_retryable_is_service_unavailable(self, error):
        assert status_for_integration_error(error) == 503

    def test_permanent_is_bad_gateway(self):
        assert status_for_integration_error(IntegrationRejectedError("no")) == 502

    def test_retryable_override(self):
        error = IntegrationUnavailableError("not configured", retryable=False)
        assert status_for_integration_error(error) == 502
        assert status_for_integration_error(IntegrationError("boom", retryable=True)) == 503
