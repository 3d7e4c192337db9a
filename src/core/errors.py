"""
Domain Exceptions for the HCBS Billing Engine.
Source: Design Document 02_authorization_and_billing_consistency.md Section 7
Verified: 2026-10-19

Provides:
- BillingError base carrying a machine-readable code
- NotFoundError for missing claims, authorizations, payers, services
- BusinessRuleError and its coded subclasses for rule violations

Integration failures live with the gateways (src/gateways/base.py).
"""

from typing import Any, Optional


class BillingError(Exception):
    """Base exception for billing engine errors."""

    code: str = "billing-error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API error bodies and batch reports."""
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(BillingError):
    """Raised when a referenced entity does not exist."""

    code = "not-found"

    def __init__(self, entity: str, entity_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{entity.capitalize()} not found: {entity_id}",
            details={"entity": entity, "entity_id": str(entity_id)},
        )
        self.entity = entity
        self.entity_id = entity_id


class BusinessRuleError(BillingError):
    """Raised when a billing rule is violated."""

    code = "business-rule-violation"


class OverlappingAuthorizationError(BusinessRuleError):
    """Raised when an authorization would double-cover a client's services."""

    code = "overlapping-authorization"


class ExceedsAuthorizedUnitsError(BusinessRuleError):
    """Raised when usage would exceed the authorized unit count."""

    code = "exceeds-authorized-units"


class InvalidStatusTransitionError(BusinessRuleError):
    """Raised when a status change is not in the transition table."""

    code = "invalid-status-transition"

    def __init__(self, entity: str, current: Any, target: Any):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Invalid {entity} status transition: {current_value} -> {target_value}",
            details={
                "entity": entity,
                "current_status": current_value,
                "target_status": target_value,
            },
        )
        self.current = current
        self.target = target


class ClaimNotSubmittableError(BusinessRuleError):
    """Raised when a claim is not in DRAFT or VALIDATED status."""

    code = "claim-not-submittable"


class UnsupportedSubmissionMethodError(BusinessRuleError):
    """Raised when no dispatcher exists for a submission method."""

    code = "unsupported-submission-method"
