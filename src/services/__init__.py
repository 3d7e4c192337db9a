"""
Services Layer for the HCBS Billing Engine.

Exports the authorization ledger, validator, claim lifecycle, converter
and submission orchestrator.
"""

from src.services.authorization_ledger import (
    AUTHORIZATION_TRANSITIONS,
    AuthorizationCreateDTO,
    AuthorizationLedger,
    AuthorizationUpdateDTO,
    ExpirationStatus,
    ExpirySweepResult,
    StatusUpdateResult,
    UtilizationSummary,
)
from src.services.authorization_validator import (
    ServiceAuthorizationCheck,
    ServiceAuthorizationValidator,
)
from src.services.claim_state_machine import (
    CLAIM_TRANSITIONS,
    ClaimLifecycle,
    ClaimTransitionResult,
)
from src.services.claim_converter import (
    BatchConversionResult,
    BillableServicePage,
    ClaimConversionResult,
    ClaimSummary,
    ConversionGroup,
    ServiceToClaimConverter,
)
from src.services.claim_formatters import (
    ClaimDocument,
    ClaimFormatter,
    FormattedClaim,
    FormatterRegistry,
)
from src.services.submission_orchestrator import (
    BatchSubmissionRequest,
    BatchSubmissionResponse,
    SubmissionOrchestrator,
    SubmissionRequest,
    SubmissionResponse,
)

__all__ = [
    # Authorization ledger
    "AUTHORIZATION_TRANSITIONS",
    "AuthorizationCreateDTO",
    "AuthorizationLedger",
    "AuthorizationUpdateDTO",
    "ExpirationStatus",
    "ExpirySweepResult",
    "StatusUpdateResult",
    "UtilizationSummary",
    # Validation
    "ServiceAuthorizationCheck",
    "ServiceAuthorizationValidator",
    # Claim lifecycle
    "CLAIM_TRANSITIONS",
    "ClaimLifecycle",
    "ClaimTransitionResult",
    # Conversion
    "BatchConversionResult",
    "BillableServicePage",
    "ClaimConversionResult",
    "ClaimSummary",
    "ConversionGroup",
    "ServiceToClaimConverter",
    # Formatting
    "ClaimDocument",
    "ClaimFormatter",
    "FormattedClaim",
    "FormatterRegistry",
    # Submission
    "BatchSubmissionRequest",
    "BatchSubmissionResponse",
    "SubmissionOrchestrator",
    "SubmissionRequest",
    "SubmissionResponse",
]
