"""
SQLAlchemy Models for the HCBS Billing Engine.

This module exports all database models for the application.
"""

from src.models.base import Base, TimeStampedModel, UUIDModel
from src.models.reference import Client, Program, ServiceType
from src.models.payer import Payer
from src.models.authorization import Authorization, AuthorizationUtilization
from src.models.service import Service
from src.models.claim import Claim, ClaimService, ClaimStatusHistory
from src.models.submission import SubmissionAttempt

__all__ = [
    # Base
    "Base",
    "TimeStampedModel",
    "UUIDModel",
    # Reference data
    "Client",
    "Program",
    "ServiceType",
    "Payer",
    # Authorizations
    "Authorization",
    "AuthorizationUtilization",
    # Services and claims
    "Service",
    "Claim",
    "ClaimService",
    "ClaimStatusHistory",
    # Audit
    "SubmissionAttempt",
]
