"""
Service Authorization Models.
Source: Design Document 02_authorization_and_billing_consistency.md Section 3
Verified: 2026-10-19

Provides:
- Authorization: payer-granted units for a client, date range and service types
- AuthorizationUtilization: the used-unit counter owned by the ledger
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.enums import AuthorizationStatus
from src.models.base import Base, TimeStampedModel, UUIDModel


class Authorization(Base, UUIDModel, TimeStampedModel):
    """
    Service authorization.

    The validity range is inclusive on both ends; a null end date means the
    authorization is open-ended.
    """

    __tablename__ = "authorizations"
    __table_args__ = (
        UniqueConstraint("issuer", "authorization_number", name="issuer_number"),
        CheckConstraint("authorized_units >= 0", name="authorized_units_non_negative"),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="valid_date_range",
        ),
        Index("ix_authorizations_client_status", "client_id", "status"),
    )

    client_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    program_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("programs.id", ondelete="RESTRICT"),
        nullable=False,
    )
    authorization_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Number assigned by the issuer; unique per issuer",
    )
    issuer: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Agency or payer that issued the authorization",
    )
    status: Mapped[AuthorizationStatus] = mapped_column(
        Enum(AuthorizationStatus),
        default=AuthorizationStatus.APPROVED,
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    authorized_units: Mapped[int] = mapped_column(Integer, nullable=False)
    service_type_ids: Mapped[list[UUID]] = mapped_column(
        ARRAY(PG_UUID(as_uuid=True)),
        nullable=False,
        comment="Service types covered by this authorization",
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Issuing metadata
    issued_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    issued_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    utilization: Mapped[Optional["AuthorizationUtilization"]] = relationship(
        back_populates="authorization",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def covers_date(self, on: date) -> bool:
        """True when the date falls inside the inclusive validity range."""
        if on < self.start_date:
            return False
        return self.end_date is None or on <= self.end_date

    def covers_service_type(self, service_type_id: UUID) -> bool:
        return service_type_id in (self.service_type_ids or [])

    def __repr__(self) -> str:
        return f"<Authorization {self.authorization_number} ({self.status.value})>"


class AuthorizationUtilization(Base, UUIDModel, TimeStampedModel):
    """
    Used-unit counter for one authorization.

    Only AuthorizationLedger.track_utilization writes used_units.
    """

    __tablename__ = "authorization_utilizations"
    __table_args__ = (
        CheckConstraint("used_units >= 0", name="used_units_non_negative"),
    )

    authorization_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("authorizations.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    used_units: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_calculated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    authorization: Mapped["Authorization"] = relationship(back_populates="utilization")
