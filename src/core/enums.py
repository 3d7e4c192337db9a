"""
Core Enumerations for the HCBS Billing Engine.
Source: Design Document 02_authorization_and_billing_consistency.md
Verified: 2026-10-19
"""

from enum import Enum


# =============================================================================
# Authorization Enums
# =============================================================================


class AuthorizationStatus(str, Enum):
    """Lifecycle status of a service authorization."""

    REQUESTED = "requested"
    APPROVED = "approved"
    ACTIVE = "active"
    EXPIRING = "expiring"  # Near end date or utilization threshold
    EXPIRED = "expired"
    DENIED = "denied"
    CANCELLED = "cancelled"  # Soft-deleted


# =============================================================================
# Service Enums
# =============================================================================


class DocumentationStatus(str, Enum):
    """Completeness of the paperwork backing a rendered service."""

    INCOMPLETE = "incomplete"
    PENDING_REVIEW = "pending_review"
    COMPLETE = "complete"


class BillingStatus(str, Enum):
    """Billing progress of a rendered service."""

    UNBILLED = "unbilled"
    READY_FOR_BILLING = "ready_for_billing"
    IN_CLAIM = "in_claim"
    BILLED = "billed"
    VOID = "void"


# =============================================================================
# Claim Enums
# =============================================================================


class ClaimStatus(str, Enum):
    """Claim lifecycle status."""

    DRAFT = "draft"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    ACKNOWLEDGED = "acknowledged"  # Accepted by payer or clearinghouse
    PENDING = "pending"  # In adjudication
    PAID = "paid"
    PARTIAL_PAID = "partial_paid"
    DENIED = "denied"
    APPEALED = "appealed"
    FINAL_DENIED = "final_denied"
    VOID = "void"


class ClaimType(str, Enum):
    """Claim frequency type."""

    ORIGINAL = "original"
    ADJUSTMENT = "adjustment"
    REPLACEMENT = "replacement"
    VOID = "void"


class ClaimFormType(str, Enum):
    """Professional or institutional claim form."""

    PROFESSIONAL = "professional"  # 837P / CMS-1500
    INSTITUTIONAL = "institutional"  # 837I / UB-04


class BillingFormat(str, Enum):
    """Output format a claim is rendered in before submission."""

    X12_837P = "x12_837p"
    CMS1500 = "cms1500"
    UB04 = "ub04"
    CUSTOM = "custom"


class SubmissionMethod(str, Enum):
    """Channel a claim is submitted through."""

    ELECTRONIC = "electronic"  # Payer electronic system
    PAPER = "paper"
    PORTAL = "portal"  # Manual entry into payer portal
    CLEARINGHOUSE = "clearinghouse"
    DIRECT = "direct"  # Payer API


# =============================================================================
# Validation Enums
# =============================================================================


class ValidationSeverity(str, Enum):
    """Severity of a validation finding."""

    ERROR = "error"
    WARNING = "warning"
