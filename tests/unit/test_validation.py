"""
Unit tests for validation results.
"""

import pytest

from src.core.enums import ValidationSeverity
from src.core.validation import ValidationIssue, ValidationResult


@pytest.mark.unit
class TestValidationIssue:
    def test_defaults(self):
        issue = ValidationIssue("units-low", "Few units left")

        assert issue.severity == ValidationSeverity.ERROR
        assert issue.field is None
        assert issue.context == {}

    def test_context_is_not_shared(self):
        first = ValidationIssue("a", "first")
        second = ValidationIssue("b", "second")
        first.context["service_id"] = "s-1"

        assert second.context == {}


@pytest.mark.unit
class TestValidationResult:
    def test_errors_and_warnings(self):
        result = ValidationResult()
        result.add_error("invalid-units", "Units must be positive", field="units", units=-1)
        result.add_warning("approaching-limit", "Close to the limit")

        assert not result.is_valid
        assert result.error_codes == ["invalid-units"]
        assert result.warning_codes == ["approaching-limit"]
        assert result.errors[0].field == "units"
        assert result.errors[0].context == {"units": -1}

    def test_merge(self):
        result = ValidationResult.failure("empty-service-ids", "No services", "service_ids")
        other = ValidationResult()
        other.add_warning("filing-deadline-approaching", "Soon")

        merged = result.merge(other)

        assert merged is result
        assert result.error_codes == ["empty-service-ids"]
        assert result.warning_codes == ["filing-deadline-approaching"]

    def test_to_dict(self):
        result = ValidationResult.failure("missing-payer-id", "Payer is required", "payer_id")

        assert result.to_dict() == {
            "is_valid": False,
            "errors": [
                {
                    "code": "missing-payer-id",
                    "message": "Payer is required",
                    "severity": "error",
                    "field": "payer_id",
                    "context": {},
                }
            ],
            "warnings": [],
        }
