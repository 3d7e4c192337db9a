"""
Payer Model with billing requirements.
Source: Design Document 02_authorization_and_billing_consistency.md Section 6
Verified: 2026-10-19
"""

from typing import Optional

from sqlalchemy import Boolean, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import BillingFormat, ClaimFormType
from src.models.base import Base, TimeStampedModel, UUIDModel


class Payer(Base, UUIDModel, TimeStampedModel):
    """
    Payer (Medicaid agency, MCO or commercial plan).

    Billing requirements drive claim format selection at conversion time
    and channel settings drive dispatch at submission time.
    """

    __tablename__ = "payers"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    payer_code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        comment="Payer identifier used on outbound claims",
    )

    # Billing requirements
    default_claim_type: Mapped[Optional[ClaimFormType]] = mapped_column(
        Enum(ClaimFormType),
        nullable=True,
        comment="Claim form the payer expects; inferred from services when null",
    )
    required_billing_format: Mapped[Optional[BillingFormat]] = mapped_column(
        Enum(BillingFormat),
        nullable=True,
        comment="Billing format the payer mandates",
    )
    accepts_electronic_claims: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    filing_deadline_days: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Days after the last service date a claim may be filed",
    )

    # Submission channels
    clearinghouse_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Clearinghouse channel / receiver id",
    )
    electronic_endpoint: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Payer API endpoint for electronic and direct submission",
    )
    portal_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Payer {self.payer_code}: {self.name}>"
