"""
Claim Models for HCBS Billing.
Source: Design Document 02_authorization_and_billing_consistency.md Section 3
Verified: 2026-10-19

Provides:
- Claim: billable bundle of services for one client and payer
- ClaimService: ordered membership of services in a claim
- ClaimStatusHistory: append-only audit of status changes
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.enums import (
    BillingFormat,
    ClaimFormType,
    ClaimStatus,
    ClaimType,
    SubmissionMethod,
)
from src.models.base import Base, TimeStampedModel, UUIDModel


class Claim(Base, UUIDModel, TimeStampedModel):
    """
    HCBS claim.

    Service date range and total amount are computed from the member
    services when the claim is created.
    """

    __tablename__ = "claims"
    __table_args__ = (
        Index("ix_claims_payer_status", "payer_id", "status"),
    )

    claim_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Human-readable claim number (e.g., CLM-20260101-1A2B3C4D)",
    )
    client_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    payer_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("payers.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Classification
    claim_type: Mapped[ClaimType] = mapped_column(
        Enum(ClaimType),
        default=ClaimType.ORIGINAL,
        nullable=False,
    )
    claim_form_type: Mapped[ClaimFormType] = mapped_column(
        Enum(ClaimFormType),
        default=ClaimFormType.PROFESSIONAL,
        nullable=False,
    )
    billing_format: Mapped[BillingFormat] = mapped_column(
        Enum(BillingFormat),
        default=BillingFormat.CMS1500,
        nullable=False,
    )
    status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus),
        default=ClaimStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # Computed from member services
    service_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    service_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Submission tracking
    submission_method: Mapped[Optional[SubmissionMethod]] = mapped_column(
        Enum(SubmissionMethod),
        nullable=True,
    )
    submission_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    external_claim_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Claim id assigned by the payer or clearinghouse",
    )
    tracking_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Confirmation / tracking number returned on submission",
    )

    # Adjudication
    adjudication_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    denial_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    service_links: Mapped[list["ClaimService"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimService.position",
    )
    status_history: Mapped[list["ClaimStatusHistory"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimStatusHistory.changed_at",
    )

    def __repr__(self) -> str:
        return f"<Claim {self.claim_number} ({self.status.value})>"


class ClaimService(Base, UUIDModel):
    """Ordered membership of a service in a claim."""

    __tablename__ = "claim_services"
    __table_args__ = (
        UniqueConstraint("claim_id", "service_id", name="claim_service"),
    )

    claim_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    service_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("services.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Service amount at the time the claim was created",
    )

    claim: Mapped["Claim"] = relationship(back_populates="service_links")


class ClaimStatusHistory(Base, UUIDModel):
    """
    Status change history for a claim.

    Rows are only ever inserted.
    """

    __tablename__ = "claim_status_history"

    claim_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Associated claim ID",
    )
    previous_status: Mapped[Optional[ClaimStatus]] = mapped_column(
        Enum(ClaimStatus),
        nullable=True,
        comment="Previous status (null for the creation entry)",
    )
    new_status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus),
        nullable=False,
    )
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    changed_by: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        comment="User who changed status; null for system changes",
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)

    claim: Mapped["Claim"] = relationship(back_populates="status_history")
