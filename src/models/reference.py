"""
Reference entities the billing engine looks up but does not manage.

Clients, programs and service types are maintained elsewhere; these
mappings carry only what authorization and claim checks read.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimeStampedModel, UUIDModel


class Client(Base, UUIDModel, TimeStampedModel):
    """Person receiving HCBS services."""

    __tablename__ = "clients"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    medicaid_id: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        index=True,
        comment="State Medicaid identifier",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Program(Base, UUIDModel, TimeStampedModel):
    """Funding program (waiver) a client is enrolled in."""

    __tablename__ = "programs"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class ServiceType(Base, UUIDModel, TimeStampedModel):
    """Billable service type (procedure code plus rate)."""

    __tablename__ = "service_types"

    code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        comment="HCPCS/CPT procedure code",
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit_rate: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
