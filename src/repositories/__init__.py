"""
Repository layer for the HCBS Billing Engine.
"""

from src.repositories.base import (
    AuthorizationRepository,
    ClaimRepository,
    PayerRepository,
    ReferenceRepository,
    ServiceRepository,
    SubmissionAttemptRepository,
)

__all__ = [
    "AuthorizationRepository",
    "ClaimRepository",
    "PayerRepository",
    "ReferenceRepository",
    "ServiceRepository",
    "SubmissionAttemptRepository",
]
