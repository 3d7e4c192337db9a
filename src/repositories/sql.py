"""
SQLAlchemy repository implementations.
Source: https://docs.sqlalchemy.org/en/20/orm/queryguide/select.html
Verified: 2026-10-19

Row locks use SELECT ... FOR NO KEY UPDATE (key_share=True) and last until the owning session's
transaction ends. populate_existing refreshes rows already present in the
identity map so a locked read never returns stale state.
"""

import logging
from datetime import date
from typing import Iterable, Optional, Sequence
from uuid import UUID

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.enums import AuthorizationStatus, BillingStatus, DocumentationStatus
from src.models import (
    Authorization,
    AuthorizationUtilization,
    Claim,
    ClaimService,
    ClaimStatusHistory,
    Client,
    Payer,
    Program,
    Service,
    ServiceType,
    SubmissionAttempt,
)
from src.repositories.base import (
    AuthorizationRepository,
    ClaimRepository,
    PayerRepository,
    ReferenceRepository,
    ServiceRepository,
    SubmissionAttemptRepository,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Statement Builders
# =============================================================================


def overlapping_authorizations_stmt(
    client_id: UUID,
    service_type_ids: Sequence[UUID],
    start_date: date,
    end_date: Optional[date],
    exclude_id: Optional[UUID] = None,
) -> Select:
    """
    Other non-cancelled authorizations for the client that share a service
    type and whose inclusive range intersects [start_date, end_date].
    """
    stmt = select(Authorization).where(
        Authorization.client_id == client_id,
        Authorization.status != AuthorizationStatus.CANCELLED,
        Authorization.service_type_ids.overlap(list(service_type_ids)),
        or_(Authorization.end_date.is_(None), Authorization.end_date >= start_date),
    )
    if end_date is not None:
        stmt = stmt.where(Authorization.start_date <= end_date)
    if exclude_id is not None:
        stmt = stmt.where(Authorization.id != exclude_id)
    return stmt


def billable_services_stmt(client_id: Optional[UUID] = None) -> Select:
    """Services ready to be placed on a claim."""
    stmt = select(Service).where(
        Service.billing_status == BillingStatus.READY_FOR_BILLING,
        Service.documentation_status == DocumentationStatus.COMPLETE,
        Service.claim_id.is_(None),
    )
    if client_id is not None:
        stmt = stmt.where(Service.client_id == client_id)
    return stmt


def lock_rows(stmt: Select) -> Select:
    """FOR NO KEY UPDATE: foreign-key inserts from other sessions are not blocked."""
    return stmt.with_for_update(key_share=True).execution_options(populate_existing=True)


def locked_authorization_stmt(authorization_id: UUID) -> Select:
    return lock_rows(select(Authorization).where(Authorization.id == authorization_id))


def locked_claim_stmt(claim_id: UUID) -> Select:
    return lock_rows(select(Claim).where(Claim.id == claim_id))


def services_by_ids_stmt(service_ids: Sequence[UUID], for_update: bool = False) -> Select:
    # Primary-key order so concurrent lockers cannot deadlock
    stmt = select(Service).where(Service.id.in_(list(service_ids))).order_by(Service.id)
    return lock_rows(stmt) if for_update else stmt


# =============================================================================
# Repositories
# =============================================================================


class SqlAuthorizationRepository(AuthorizationRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, authorization_id: UUID) -> Optional[Authorization]:
        return await self.session.get(Authorization, authorization_id)

    async def get_for_update(self, authorization_id: UUID) -> Optional[Authorization]:
        result = await self.session.execute(locked_authorization_stmt(authorization_id))
        return result.scalar_one_or_none()

    async def get_by_number(self, issuer: str, authorization_number: str) -> Optional[Authorization]:
        result = await self.session.execute(
            select(Authorization).where(
                Authorization.issuer == issuer,
                Authorization.authorization_number == authorization_number,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_client(
        self,
        client_id: UUID,
        statuses: Optional[Iterable[AuthorizationStatus]] = None,
    ) -> list[Authorization]:
        stmt = select(Authorization).where(Authorization.client_id == client_id)
        if statuses is not None:
            stmt = stmt.where(Authorization.status.in_(list(statuses)))
        stmt = stmt.order_by(Authorization.start_date, Authorization.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_overlapping(
        self,
        client_id: UUID,
        service_type_ids: Sequence[UUID],
        start_date: date,
        end_date: Optional[date],
        exclude_id: Optional[UUID] = None,
    ) -> list[Authorization]:
        stmt = overlapping_authorizations_stmt(
            client_id, service_type_ids, start_date, end_date, exclude_id
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_ending_between(
        self,
        start: date,
        end: date,
        statuses: Iterable[AuthorizationStatus],
    ) -> list[Authorization]:
        result = await self.session.execute(
            select(Authorization)
            .where(
                Authorization.status.in_(list(statuses)),
                Authorization.end_date.is_not(None),
                Authorization.end_date >= start,
                Authorization.end_date <= end,
            )
            .order_by(Authorization.end_date)
        )
        return list(result.scalars().all())

    async def list_ended_before(
        self,
        as_of: date,
        statuses: Iterable[AuthorizationStatus],
    ) -> list[Authorization]:
        result = await self.session.execute(
            select(Authorization)
            .where(
                Authorization.status.in_(list(statuses)),
                Authorization.end_date.is_not(None),
                Authorization.end_date < as_of,
            )
            .order_by(Authorization.end_date)
        )
        return list(result.scalars().all())

    async def add(self, authorization: Authorization) -> None:
        self.session.add(authorization)
        await self.session.flush()

    async def get_utilization(self, authorization_id: UUID) -> Optional[AuthorizationUtilization]:
        result = await self.session.execute(
            select(AuthorizationUtilization)
            .where(AuthorizationUtilization.authorization_id == authorization_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add_utilization(self, utilization: AuthorizationUtilization) -> None:
        self.session.add(utilization)
        await self.session.flush()


class SqlServiceRepository(ServiceRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, service_id: UUID) -> Optional[Service]:
        return await self.session.get(Service, service_id)

    async def get_many(self, service_ids: Sequence[UUID], for_update: bool = False) -> list[Service]:
        if not service_ids:
            return []
        result = await self.session.execute(services_by_ids_stmt(service_ids, for_update))
        by_id = {service.id: service for service in result.scalars().all()}
        return [by_id[service_id] for service_id in service_ids if service_id in by_id]

    async def list_by_authorization(self, authorization_id: UUID, for_update: bool = False) -> list[Service]:
        stmt = (
            select(Service)
            .where(Service.authorization_id == authorization_id)
            .order_by(Service.service_date, Service.id)
        )
        if for_update:
            stmt = lock_rows(stmt)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_active_for_authorization(self, authorization_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(Service.id)).where(
                Service.authorization_id == authorization_id,
                Service.billing_status != BillingStatus.VOID,
            )
        )
        return int(result.scalar_one())

    async def list_by_claim(self, claim_id: UUID, for_update: bool = False) -> list[Service]:
        stmt = select(Service).where(Service.claim_id == claim_id).order_by(Service.service_date, Service.id)
        if for_update:
            stmt = lock_rows(stmt)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_billable(
        self,
        offset: int,
        limit: int,
        client_id: Optional[UUID] = None,
    ) -> tuple[list[Service], int]:
        base = billable_services_stmt(client_id)
        total = await self.session.scalar(
            select(func.count()).select_from(base.subquery())
        )
        result = await self.session.execute(
            base.order_by(Service.service_date, Service.id).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)


class SqlClaimRepository(ClaimRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, claim_id: UUID) -> Optional[Claim]:
        return await self.session.get(Claim, claim_id)

    async def get_for_update(self, claim_id: UUID) -> Optional[Claim]:
        result = await self.session.execute(locked_claim_stmt(claim_id))
        return result.scalar_one_or_none()

    async def get_many(self, claim_ids: Sequence[UUID]) -> list[Claim]:
        if not claim_ids:
            return []
        result = await self.session.execute(select(Claim).where(Claim.id.in_(list(claim_ids))))
        by_id = {claim.id: claim for claim in result.scalars().all()}
        return [by_id[claim_id] for claim_id in claim_ids if claim_id in by_id]

    async def add(self, claim: Claim) -> None:
        self.session.add(claim)
        await self.session.flush()

    async def add_service_link(self, link: ClaimService) -> None:
        self.session.add(link)

    async def list_service_links(self, claim_id: UUID) -> list[ClaimService]:
        result = await self.session.execute(
            select(ClaimService)
            .where(ClaimService.claim_id == claim_id)
            .order_by(ClaimService.position)
        )
        return list(result.scalars().all())

    async def add_status_history(self, entry: ClaimStatusHistory) -> None:
        self.session.add(entry)

    async def list_status_history(self, claim_id: UUID) -> list[ClaimStatusHistory]:
        result = await self.session.execute(
            select(ClaimStatusHistory)
            .where(ClaimStatusHistory.claim_id == claim_id)
            .order_by(ClaimStatusHistory.changed_at, ClaimStatusHistory.id)
        )
        return list(result.scalars().all())


class SqlPayerRepository(PayerRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, payer_id: UUID) -> Optional[Payer]:
        return await self.session.get(Payer, payer_id)


class SqlReferenceRepository(ReferenceRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def client_exists(self, client_id: UUID) -> bool:
        return await self.session.get(Client, client_id) is not None

    async def program_exists(self, program_id: UUID) -> bool:
        return await self.session.get(Program, program_id) is not None

    async def missing_service_type_ids(self, service_type_ids: Sequence[UUID]) -> list[UUID]:
        if not service_type_ids:
            return []
        result = await self.session.execute(
            select(ServiceType.id).where(ServiceType.id.in_(list(service_type_ids)))
        )
        found = set(result.scalars().all())
        return [type_id for type_id in service_type_ids if type_id not in found]


class SqlSubmissionAttemptRepository(SubmissionAttemptRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, attempt: SubmissionAttempt) -> None:
        self.session.add(attempt)

    async def list_for_claim(self, claim_id: UUID) -> list[SubmissionAttempt]:
        result = await self.session.execute(
            select(SubmissionAttempt)
            .where(SubmissionAttempt.claim_id == claim_id)
            .order_by(SubmissionAttempt.attempted_at, SubmissionAttempt.id)
        )
        return list(result.scalars().all())
