"""
In-memory repositories and unit of work for service tests.

The fake unit of work mirrors the transactional behaviour the services rely
on: rollback restores every entity it loaded and drops every entity it
added, and get_for_update / for_update=True hold a per-row asyncio.Lock
until commit or rollback, like SELECT ... FOR UPDATE.
"""

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from src.core.enums import (
    AuthorizationStatus,
    BillingFormat,
    BillingStatus,
    ClaimFormType,
    ClaimStatus,
    ClaimType,
    DocumentationStatus,
)
from src.db.unit_of_work import BillingUnitOfWork
from src.gateways.base import ClaimEnvelope
from src.gateways.clearinghouse_gateway import (
    ClearinghouseBatchItem,
    ClearinghouseClient,
    ClearinghouseSubmission,
)
from src.gateways.payer_gateway import PayerSubmissionClient, PayerSubmissionReceipt
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
from src.repositories.base import (
    AuthorizationRepository,
    ClaimRepository,
    PayerRepository,
    ReferenceRepository,
    ServiceRepository,
    SubmissionAttemptRepository,
)


class InMemoryStore:
    """Shared "database" for every fake unit of work in a test."""

    def __init__(self) -> None:
        self.clients: set[UUID] = set()
        self.programs: set[UUID] = set()
        self.service_types: set[UUID] = set()
        self.payers: dict[UUID, Payer] = {}
        self.authorizations: dict[UUID, Authorization] = {}
        self.utilizations: dict[UUID, AuthorizationUtilization] = {}
        self.services: dict[UUID, Service] = {}
        self.claims: dict[UUID, Claim] = {}
        self.claim_links: dict[UUID, ClaimService] = {}
        self.status_history: dict[UUID, ClaimStatusHistory] = {}
        self.attempts: dict[UUID, SubmissionAttempt] = {}
        self.locks: dict[tuple[str, UUID], asyncio.Lock] = {}
        self.fail_commits = 0
        self.units_opened = 0
        self.commits = 0

    def lock_for(self, kind: str, entity_id: UUID) -> asyncio.Lock:
        return self.locks.setdefault((kind, entity_id), asyncio.Lock())


def _snapshot(entity: Any) -> dict[str, Any]:
    values = {}
    for attr in inspect(type(entity)).column_attrs:
        value = getattr(entity, attr.key)
        values[attr.key] = list(value) if isinstance(value, list) else value
    return values


class FakeUnitOfWork(BillingUnitOfWork):
    def __init__(self, store: InMemoryStore):
        super().__init__()
        self.store = store
        self._snapshots: dict[int, tuple[Any, dict[str, Any]]] = {}
        self._added: list[tuple[dict, UUID]] = []
        self._held: list[asyncio.Lock] = []
        self._held_keys: set[tuple[str, UUID]] = set()

    async def _begin(self) -> None:
        self.store.units_opened += 1
        self._snapshots.clear()
        self._added.clear()
        self.authorizations = FakeAuthorizationRepository(self)
        self.services = FakeServiceRepository(self)
        self.claims = FakeClaimRepository(self)
        self.payers = FakePayerRepository(self)
        self.references = FakeReferenceRepository(self)
        self.submissions = FakeSubmissionAttemptRepository(self)

    async def _commit(self) -> None:
        if self.store.fail_commits > 0:
            self.store.fail_commits -= 1
            raise SQLAlchemyError("simulated commit failure")
        self.store.commits += 1
        self._snapshots.clear()
        self._added.clear()
        self._release()

    async def rollback(self) -> None:
        for entity, values in self._snapshots.values():
            for key, value in values.items():
                setattr(entity, key, value)
        for table, key in reversed(self._added):
            table.pop(key, None)
        self._snapshots.clear()
        self._added.clear()
        self._release()

    async def _close(self) -> None:
        self._release()

    # Tracking helpers used by the fake repositories

    def track(self, entity: Optional[Any]) -> Optional[Any]:
        if entity is not None and id(entity) not in self._snapshots:
            self._snapshots[id(entity)] = (entity, _snapshot(entity))
        return entity

    def added(self, table: dict, key: UUID) -> None:
        self._added.append((table, key))

    async def lock(self, kind: str, entity_id: UUID) -> None:
        key = (kind, entity_id)
        if key in self._held_keys:
            return
        lock = self.store.lock_for(kind, entity_id)
        await lock.acquire()
        self._held.append(lock)
        self._held_keys.add(key)

    def _release(self) -> None:
        while self._held:
            self._held.pop().release()
        self._held_keys.clear()


class FakeAuthorizationRepository(AuthorizationRepository):
    def __init__(self, uow: FakeUnitOfWork):
        self.uow = uow
        self.store = uow.store

    async def get(self, authorization_id: UUID) -> Optional[Authorization]:
        return self.uow.track(self.store.authorizations.get(authorization_id))

    async def get_for_update(self, authorization_id: UUID) -> Optional[Authorization]:
        await self.uow.lock("authorization", authorization_id)
        return await self.get(authorization_id)

    async def get_by_number(self, issuer: str, authorization_number: str) -> Optional[Authorization]:
        for authorization in self.store.authorizations.values():
            if authorization.issuer == issuer and authorization.authorization_number == authorization_number:
                return self.uow.track(authorization)
        return None

    async def list_for_client(
        self,
        client_id: UUID,
        statuses: Optional[Iterable[AuthorizationStatus]] = None,
    ) -> list[Authorization]:
        wanted = set(statuses) if statuses is not None else None
        found = [
            a for a in self.store.authorizations.values()
            if a.client_id == client_id and (wanted is None or a.status in wanted)
        ]
        return [self.uow.track(a) for a in sorted(found, key=lambda a: a.start_date)]

    async def find_overlapping(
        self,
        client_id: UUID,
        service_type_ids: Sequence[UUID],
        start_date: date,
        end_date: Optional[date],
        exclude_id: Optional[UUID] = None,
    ) -> list[Authorization]:
        wanted = set(service_type_ids)
        found = []
        for other in self.store.authorizations.values():
            if other.client_id != client_id or other.id == exclude_id:
                continue
            if other.status == AuthorizationStatus.CANCELLED:
                continue
            if not wanted & set(other.service_type_ids):
                continue
            if other.end_date is not None and start_date > other.end_date:
                continue
            if end_date is not None and end_date < other.start_date:
                continue
            found.append(other)
        return found

    async def list_ending_between(
        self,
        start: date,
        end: date,
        statuses: Iterable[AuthorizationStatus],
    ) -> list[Authorization]:
        wanted = set(statuses)
        found = [
            a for a in self.store.authorizations.values()
            if a.status in wanted and a.end_date is not None and start <= a.end_date <= end
        ]
        return sorted(found, key=lambda a: a.end_date)

    async def list_ended_before(
        self,
        as_of: date,
        statuses: Iterable[AuthorizationStatus],
    ) -> list[Authorization]:
        wanted = set(statuses)
        found = [
            a for a in self.store.authorizations.values()
            if a.status in wanted and a.end_date is not None and a.end_date < as_of
        ]
        return sorted(found, key=lambda a: a.end_date)

    async def add(self, authorization: Authorization) -> None:
        self.store.authorizations[authorization.id] = authorization
        self.uow.added(self.store.authorizations, authorization.id)

    async def get_utilization(self, authorization_id: UUID) -> Optional[AuthorizationUtilization]:
        utilization = self.uow.track(self.store.utilizations.get(authorization_id))
        # Suspension point, as a real query would be
        await asyncio.sleep(0)
        return utilization

    async def add_utilization(self, utilization: AuthorizationUtilization) -> None:
        self.store.utilizations[utilization.authorization_id] = utilization
        self.uow.added(self.store.utilizations, utilization.authorization_id)


class FakeServiceRepository(ServiceRepository):
    def __init__(self, uow: FakeUnitOfWork):
        self.uow = uow
        self.store = uow.store

    async def _lock_all(self, service_ids: Iterable[UUID]) -> None:
        for service_id in sorted(set(service_ids)):
            await self.uow.lock("service", service_id)

    async def get(self, service_id: UUID) -> Optional[Service]:
        return self.uow.track(self.store.services.get(service_id))

    async def get_many(self, service_ids: Sequence[UUID], for_update: bool = False) -> list[Service]:
        if for_update:
            await self._lock_all(i for i in service_ids if i in self.store.services)
        return [
            self.uow.track(self.store.services[i]) for i in service_ids if i in self.store.services
        ]

    async def list_by_authorization(self, authorization_id: UUID, for_update: bool = False) -> list[Service]:
        found = [s for s in self.store.services.values() if s.authorization_id == authorization_id]
        if for_update:
            await self._lock_all(s.id for s in found)
        return [self.uow.track(s) for s in found]

    async def count_active_for_authorization(self, authorization_id: UUID) -> int:
        return sum(
            1 for s in self.store.services.values()
            if s.authorization_id == authorization_id and s.billing_status != BillingStatus.VOID
        )

    async def list_by_claim(self, claim_id: UUID, for_update: bool = False) -> list[Service]:
        found = sorted(
            (s for s in self.store.services.values() if s.claim_id == claim_id),
            key=lambda s: (s.service_date, str(s.id)),
        )
        if for_update:
            await self._lock_all(s.id for s in found)
        return [self.uow.track(s) for s in found]

    async def list_billable(
        self,
        offset: int,
        limit: int,
        client_id: Optional[UUID] = None,
    ) -> tuple[list[Service], int]:
        found = sorted(
            (
                s for s in self.store.services.values()
                if s.billing_status == BillingStatus.READY_FOR_BILLING
                and s.documentation_status == DocumentationStatus.COMPLETE
                and s.claim_id is None
                and (client_id is None or s.client_id == client_id)
            ),
            key=lambda s: (s.service_date, str(s.id)),
        )
        return found[offset:offset + limit], len(found)


class FakeClaimRepository(ClaimRepository):
    def __init__(self, uow: FakeUnitOfWork):
        self.uow = uow
        self.store = uow.store

    async def get(self, claim_id: UUID) -> Optional[Claim]:
        return self.uow.track(self.store.claims.get(claim_id))

    async def get_for_update(self, claim_id: UUID) -> Optional[Claim]:
        await self.uow.lock("claim", claim_id)
        return await self.get(claim_id)

    async def get_many(self, claim_ids: Sequence[UUID]) -> list[Claim]:
        return [self.uow.track(self.store.claims[i]) for i in claim_ids if i in self.store.claims]

    async def add(self, claim: Claim) -> None:
        self.store.claims[claim.id] = claim
        self.uow.added(self.store.claims, claim.id)

    async def add_service_link(self, link: ClaimService) -> None:
        self.store.claim_links[link.id] = link
        self.uow.added(self.store.claim_links, link.id)

    async def list_service_links(self, claim_id: UUID) -> list[ClaimService]:
        return sorted(
            (link for link in self.store.claim_links.values() if link.claim_id == claim_id),
            key=lambda link: link.position,
        )

    async def add_status_history(self, entry: ClaimStatusHistory) -> None:
        self.store.status_history[entry.id] = entry
        self.uow.added(self.store.status_history, entry.id)

    async def list_status_history(self, claim_id: UUID) -> list[ClaimStatusHistory]:
        return sorted(
            (h for h in self.store.status_history.values() if h.claim_id == claim_id),
            key=lambda h: h.changed_at,
        )


class FakePayerRepository(PayerRepository):
    def __init__(self, uow: FakeUnitOfWork):
        self.uow = uow

    async def get(self, payer_id: UUID) -> Optional[Payer]:
        return self.uow.store.payers.get(payer_id)


class FakeReferenceRepository(ReferenceRepository):
    def __init__(self, uow: FakeUnitOfWork):
        self.store = uow.store

    async def client_exists(self, client_id: UUID) -> bool:
        return client_id in self.store.clients

    async def program_exists(self, program_id: UUID) -> bool:
        return program_id in self.store.programs

    async def missing_service_type_ids(self, service_type_ids: Sequence[UUID]) -> list[UUID]:
        return [i for i in service_type_ids if i not in self.store.service_types]


class FakeSubmissionAttemptRepository(SubmissionAttemptRepository):
    def __init__(self, uow: FakeUnitOfWork):
        self.uow = uow
        self.store = uow.store

    async def add(self, attempt: SubmissionAttempt) -> None:
        self.store.attempts[attempt.id] = attempt
        self.uow.added(self.store.attempts, attempt.id)

    async def list_for_claim(self, claim_id: UUID) -> list[SubmissionAttempt]:
        return sorted(
            (a for a in self.store.attempts.values() if a.claim_id == claim_id),
            key=lambda a: a.attempted_at,
        )


# =============================================================================
# Seeding helpers
# =============================================================================


class Seeder:
    """Builds fully populated entities straight into the store."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    def client(self) -> UUID:
        client_id = uuid4()
        self.store.clients.add(client_id)
        return client_id

    def program(self) -> UUID:
        program_id = uuid4()
        self.store.programs.add(program_id)
        return program_id

    def service_type(self) -> UUID:
        service_type_id = uuid4()
        self.store.service_types.add(service_type_id)
        return service_type_id

    def payer(self, **overrides: Any) -> Payer:
        values: dict[str, Any] = dict(
            id=uuid4(),
            name="State Medicaid",
            payer_code=f"MCD{uuid4().hex[:6].upper()}",
            default_claim_type=None,
            required_billing_format=None,
            accepts_electronic_claims=True,
            filing_deadline_days=365,
            clearinghouse_id="CH-001",
            electronic_endpoint="https://payer.example/claims",
            portal_url="https://portal.payer.example",
            is_active=True,
        )
        values.update(overrides)
        payer = Payer(**values)
        self.store.payers[payer.id] = payer
        return payer

    def authorization(self, used_units: int = 0, **overrides: Any) -> Authorization:
        values: dict[str, Any] = dict(
            id=uuid4(),
            client_id=overrides.pop("client_id", None) or self.client(),
            program_id=self.program(),
            authorization_number=f"AUTH-{uuid4().hex[:8].upper()}",
            issuer="State Medicaid",
            status=AuthorizationStatus.ACTIVE,
            start_date=date(2026, 1, 1),
            end_date=date(2026, 12, 31),
            authorized_units=100,
            service_type_ids=[self.service_type()],
            notes=None,
            issued_date=None,
            issued_by=None,
            created_by=None,
        )
        values.update(overrides)
        authorization = Authorization(**values)
        self.store.authorizations[authorization.id] = authorization
        self.store.utilizations[authorization.id] = AuthorizationUtilization(
            id=uuid4(),
            authorization_id=authorization.id,
            used_units=used_units,
            last_calculated_at=datetime.now(timezone.utc),
        )
        return authorization

    def service(self, **overrides: Any) -> Service:
        values: dict[str, Any] = dict(
            id=uuid4(),
            client_id=overrides.pop("client_id", None) or self.client(),
            service_type_id=overrides.pop("service_type_id", None) or self.service_type(),
            service_date=date(2026, 3, 10),
            units=4,
            amount=Decimal("100.00"),
            documentation_status=DocumentationStatus.COMPLETE,
            billing_status=BillingStatus.READY_FOR_BILLING,
            authorization_id=None,
            claim_id=None,
            facility_id=None,
            notes=None,
        )
        values.update(overrides)
        service = Service(**values)
        self.store.services[service.id] = service
        return service

    def claim(
        self,
        payer: Payer,
        services: Sequence[Service],
        status: ClaimStatus = ClaimStatus.DRAFT,
        **overrides: Any,
    ) -> Claim:
        """A claim already holding the given services (IN_CLAIM)."""
        values: dict[str, Any] = dict(
            id=uuid4(),
            claim_number=f"CLM-20260401-{uuid4().hex[:8].upper()}",
            client_id=services[0].client_id if services else self.client(),
            payer_id=payer.id,
            claim_type=ClaimType.ORIGINAL,
            claim_form_type=ClaimFormType.PROFESSIONAL,
            billing_format=BillingFormat.X12_837P,
            status=status,
            service_start_date=min((s.service_date for s in services), default=date(2026, 3, 1)),
            service_end_date=max((s.service_date for s in services), default=date(2026, 3, 1)),
            total_amount=sum((s.amount for s in services), Decimal("0.00")),
            submission_method=None,
            submission_date=None,
            external_claim_id=None,
            tracking_number=None,
            adjudication_date=None,
            denial_reason=None,
            notes=None,
            created_by=None,
        )
        values.update(overrides)
        claim = Claim(**values)
        self.store.claims[claim.id] = claim
        for position, service in enumerate(services, start=1):
            service.billing_status = BillingStatus.IN_CLAIM
            service.claim_id = claim.id
            link = ClaimService(
                id=uuid4(), claim_id=claim.id, service_id=service.id, position=position, amount=service.amount
            )
            self.store.claim_links[link.id] = link
        return claim


# =============================================================================
# External System Stubs
# =============================================================================


class StubClearinghouse(ClearinghouseClient):
    """Records envelopes; fails or rejects on request."""

    def __init__(self, error: Optional[Exception] = None, rejected: Sequence[str] = ()):
        self.error = error
        self.rejected = set(rejected)
        self.claims: list[ClaimEnvelope] = []
        self.batches: list[list[ClaimEnvelope]] = []

    async def submit_claim(self, channel_id: str, claim: ClaimEnvelope, options: Optional[dict[str, Any]] = None):
        self.claims.append(claim)
        if self.error:
            raise self.error
        return ClearinghouseSubmission(f"TRK-{claim.claim_number}", f"EXT-{claim.claim_number}")

    async def submit_batch(self, channel_id: str, claims: Sequence[ClaimEnvelope], options: Optional[dict[str, Any]] = None):
        self.batches.append(list(claims))
        if self.error:
            raise self.error
        return [
            ClearinghouseBatchItem(c.claim_number, False, error="Invalid member id")
            if c.claim_number in self.rejected
            else ClearinghouseBatchItem(c.claim_number, True, f"TRK-{c.claim_number}", f"EXT-{c.claim_number}")
            for c in claims
        ]


class StubPayerClient(PayerSubmissionClient):
    def __init__(self):
        self.calls: list[tuple[str, ClaimEnvelope]] = []

    async def submit(self, endpoint: str, claim: ClaimEnvelope, options: Optional[dict[str, Any]] = None):
        self.calls.append((endpoint, claim))
        return PayerSubmissionReceipt("CONF-1", "PAYER-1", {})

