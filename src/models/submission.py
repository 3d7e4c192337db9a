"""
Submission Attempt Audit Model.

Append-only record of every dispatch of a claim to an external channel.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import SubmissionMethod
from src.models.base import Base, UUIDModel


class SubmissionAttempt(Base, UUIDModel):
    """One submission attempt; never updated after insert."""

    __tablename__ = "submission_attempts"

    claim_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    channel: Mapped[SubmissionMethod] = mapped_column(
        Enum(SubmissionMethod),
        nullable=False,
    )
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    confirmation_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    external_claim_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    errors: Mapped[list] = mapped_column(
        JSONB,
        default=list,
        nullable=False,
        comment="Error entries: code, message, retryable",
    )
    correlation_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    attempted_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
