"""
Repository interfaces used by the billing services.

Services depend on these abstract classes only; the SQLAlchemy versions in
src.repositories.sql are wired in by the unit of work.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, Optional, Sequence
from uuid import UUID

from src.core.enums import AuthorizationStatus
from src.models import (
    Authorization,
    AuthorizationUtilization,
    Claim,
    ClaimService,
    ClaimStatusHistory,
    Payer,
    Service,
    SubmissionAttempt,
)


class AuthorizationRepository(ABC):
    """Authorization and utilization persistence."""

    @abstractmethod
    async def get(self, authorization_id: UUID) -> Optional[Authorization]:
        ...

    @abstractmethod
    async def get_for_update(self, authorization_id: UUID) -> Optional[Authorization]:
        """Load and lock the authorization row until the unit of work ends."""
        ...

    @abstractmethod
    async def get_by_number(self, issuer: str, authorization_number: str) -> Optional[Authorization]:
        ...

    @abstractmethod
    async def list_for_client(
        self,
        client_id: UUID,
        statuses: Optional[Iterable[AuthorizationStatus]] = None,
    ) -> list[Authorization]:
        """Client authorizations ordered by start date."""
        ...

    @abstractmethod
    async def find_overlapping(
        self,
        client_id: UUID,
        service_type_ids: Sequence[UUID],
        start_date: date,
        end_date: Optional[date],
        exclude_id: Optional[UUID] = None,
    ) -> list[Authorization]:
        """Non-cancelled authorizations sharing a service type and intersecting the range."""
        ...

    @abstractmethod
    async def list_ending_between(
        self,
        start: date,
        end: date,
        statuses: Iterable[AuthorizationStatus],
    ) -> list[Authorization]:
        ...

    @abstractmethod
    async def list_ended_before(
        self,
        as_of: date,
        statuses: Iterable[AuthorizationStatus],
    ) -> list[Authorization]:
        ...

    @abstractmethod
    async def add(self, authorization: Authorization) -> None:
        ...

    @abstractmethod
    async def get_utilization(self, authorization_id: UUID) -> Optional[AuthorizationUtilization]:
        ...

    @abstractmethod
    async def add_utilization(self, utilization: AuthorizationUtilization) -> None:
        ...


class ServiceRepository(ABC):
    """Rendered service persistence."""

    @abstractmethod
    async def get(self, service_id: UUID) -> Optional[Service]:
        ...

    @abstractmethod
    async def get_many(self, service_ids: Sequence[UUID], for_update: bool = False) -> list[Service]:
        """Services in the order requested; missing ids are omitted."""
        ...

    @abstractmethod
    async def list_by_authorization(self, authorization_id: UUID, for_update: bool = False) -> list[Service]:
        ...

    @abstractmethod
    async def count_active_for_authorization(self, authorization_id: UUID) -> int:
        """Services referencing the authorization that are not VOID."""
        ...

    @abstractmethod
    async def list_by_claim(self, claim_id: UUID, for_update: bool = False) -> list[Service]:
        ...

    @abstractmethod
    async def list_billable(
        self,
        offset: int,
        limit: int,
        client_id: Optional[UUID] = None,
    ) -> tuple[list[Service], int]:
        """READY_FOR_BILLING + COMPLETE services without a claim, and the total count."""
        ...


class ClaimRepository(ABC):
    """Claim, membership and status history persistence."""

    @abstractmethod
    async def get(self, claim_id: UUID) -> Optional[Claim]:
        ...

    @abstractmethod
    async def get_for_update(self, claim_id: UUID) -> Optional[Claim]:
        ...

    @abstractmethod
    async def get_many(self, claim_ids: Sequence[UUID]) -> list[Claim]:
        ...

    @abstractmethod
    async def add(self, claim: Claim) -> None:
        ...

    @abstractmethod
    async def add_service_link(self, link: ClaimService) -> None:
        ...

    @abstractmethod
    async def list_service_links(self, claim_id: UUID) -> list[ClaimService]:
        ...

    @abstractmethod
    async def add_status_history(self, entry: ClaimStatusHistory) -> None:
        ...

    @abstractmethod
    async def list_status_history(self, claim_id: UUID) -> list[ClaimStatusHistory]:
        ...


class PayerRepository(ABC):
    @abstractmethod
    async def get(self, payer_id: UUID) -> Optional[Payer]:
        ...


class ReferenceRepository(ABC):
    """Existence checks for client, program and service type references."""

    @abstractmethod
    async def client_exists(self, client_id: UUID) -> bool:
        ...

    @abstractmethod
    async def program_exists(self, program_id: UUID) -> bool:
        ...

    @abstractmethod
    async def missing_service_type_ids(self, service_type_ids: Sequence[UUID]) -> list[UUID]:
        ...


class SubmissionAttemptRepository(ABC):
    """Append-only submission audit log."""

    @abstractmethod
    async def add(self, attempt: SubmissionAttempt) -> None:
        ...

    @abstractmethod
    async def list_for_claim(self, claim_id: UUID) -> list[SubmissionAttempt]:
        ...
