"""
Rendered Service Model.
Source: Design Document 02_authorization_and_billing_consistency.md Section 3
Verified: 2026-10-19
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Enum, ForeignKey, Index, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import BillingStatus, DocumentationStatus
from src.models.base import Base, TimeStampedModel, UUIDModel


class Service(Base, UUIDModel, TimeStampedModel):
    """
    A unit of care delivered to a client.

    Services are recorded elsewhere; the billing engine reads them and
    writes only billing_status, claim_id and notes.
    """

    __tablename__ = "services"
    __table_args__ = (
        CheckConstraint("units >= 0", name="units_non_negative"),
        Index("ix_services_billing", "billing_status", "documentation_status"),
    )

    client_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    service_type_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("service_types.id", ondelete="RESTRICT"),
        nullable=False,
    )
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    units: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Billed amount for this service",
    )
    documentation_status: Mapped[DocumentationStatus] = mapped_column(
        Enum(DocumentationStatus),
        default=DocumentationStatus.INCOMPLETE,
        nullable=False,
    )
    billing_status: Mapped[BillingStatus] = mapped_column(
        Enum(BillingStatus),
        default=BillingStatus.UNBILLED,
        nullable=False,
    )
    authorization_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("authorizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    claim_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    facility_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        comment="Facility where the service was rendered, if any",
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def append_note(self, note: str) -> None:
        self.notes = f"{self.notes}\n{note}" if self.notes else note

    def __repr__(self) -> str:
        return f"<Service {self.id} {self.service_date} ({self.billing_status.value})>"
