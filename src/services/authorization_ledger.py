"""
Authorization Ledger.

Provides:
- Authorization lifecycle (transition table, status updates, expiry cascade)
- Unit utilization tracking with hard limits
- Overlap detection on create/update
- Expiration queries and the scheduled expiry sweep

Source: Design Document 02_authorization_and_billing_consistency.md Section 4.1
Verified: 2026-10-19

State Diagram:
    REQUESTED -> APPROVED | DENIED | CANCELLED
    APPROVED  -> ACTIVE | CANCELLED
    ACTIVE    -> EXPIRING | EXPIRED | CANCELLED
    EXPIRING  -> EXPIRED | ACTIVE | CANCELLED
    EXPIRED   -> ACTIVE | CANCELLED
    DENIED    -> APPROVED | CANCELLED
    CANCELLED -> REQUESTED
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Sequence
from uuid import UUID, uuid4

from src.core.config import BillingSettings, get_billing_settings
from src.core.enums import AuthorizationStatus, BillingStatus, DocumentationStatus
from src.core.errors import (
    BusinessRuleError,
    ExceedsAuthorizedUnitsError,
    NotFoundError,
    OverlappingAuthorizationError,
)
from src.core.transitions import TransitionTable
from src.db.unit_of_work import BillingUnitOfWork, UnitOfWorkFactory
from src.models import Authorization, AuthorizationUtilization

logger = logging.getLogger(__name__)


# =============================================================================
# Transition Table
# =============================================================================


AUTHORIZATION_TRANSITIONS: TransitionTable[AuthorizationStatus] = TransitionTable(
    "authorization",
    {
        AuthorizationStatus.REQUESTED: {
            AuthorizationStatus.APPROVED,
            AuthorizationStatus.DENIED,
            AuthorizationStatus.CANCELLED,
        },
        AuthorizationStatus.APPROVED: {
            AuthorizationStatus.ACTIVE,
            AuthorizationStatus.CANCELLED,
        },
        AuthorizationStatus.ACTIVE: {
            AuthorizationStatus.EXPIRING,
            AuthorizationStatus.EXPIRED,
            AuthorizationStatus.CANCELLED,
        },
        AuthorizationStatus.EXPIRING: {
            AuthorizationStatus.EXPIRED,
            AuthorizationStatus.ACTIVE,
            AuthorizationStatus.CANCELLED,
        },
        AuthorizationStatus.EXPIRED: {
            AuthorizationStatus.ACTIVE,
            AuthorizationStatus.CANCELLED,
        },
        AuthorizationStatus.DENIED: {
            AuthorizationStatus.APPROVED,
            AuthorizationStatus.CANCELLED,
        },
        # Valid but currently unused: re-opening a cancelled request
        AuthorizationStatus.CANCELLED: {
            AuthorizationStatus.REQUESTED,
        },
    },
)

# Statuses an authorization may be created in
INITIAL_STATUSES = frozenset({AuthorizationStatus.REQUESTED, AuthorizationStatus.APPROVED})

# Services reverted to UNBILLED when their authorization expires
EXPIRY_REVERT_DOCUMENTATION = frozenset(
    {DocumentationStatus.INCOMPLETE, DocumentationStatus.PENDING_REVIEW}
)
EXPIRY_REVERT_BILLING = frozenset(
    {BillingStatus.UNBILLED, BillingStatus.READY_FOR_BILLING}
)

# Statuses swept by the expiry job
LIVE_STATUSES = (AuthorizationStatus.ACTIVE, AuthorizationStatus.EXPIRING)


# =============================================================================
# Data Transfer Objects
# =============================================================================


class AuthorizationCreateDTO:
    """Data transfer object for creating an authorization."""

    def __init__(
        self,
        client_id: UUID,
        program_id: UUID,
        authorization_number: str,
        issuer: str,
        start_date: date,
        authorized_units: int,
        service_type_ids: Sequence[UUID],
        end_date: Optional[date] = None,
        status: AuthorizationStatus = AuthorizationStatus.APPROVED,
        notes: Optional[str] = None,
        issued_date: Optional[date] = None,
        issued_by: Optional[str] = None,
        created_by: Optional[UUID] = None,
    ):
        self.client_id = client_id
        self.program_id = program_id
        self.authorization_number = authorization_number
        self.issuer = issuer
        self.start_date = start_date
        self.end_date = end_date
        self.authorized_units = authorized_units
        self.service_type_ids = list(service_type_ids)
        self.status = status
        self.notes = notes
        self.issued_date = issued_date
        self.issued_by = issued_by
        self.created_by = created_by


class AuthorizationUpdateDTO:
    """Data transfer object for updating an authorization. None means unchanged."""

    def __init__(
        self,
        client_id: Optional[UUID] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        clear_end_date: bool = False,
        authorized_units: Optional[int] = None,
        service_type_ids: Optional[Sequence[UUID]] = None,
        status: Optional[AuthorizationStatus] = None,
        notes: Optional[str] = None,
    ):
        self.client_id = client_id
        self.start_date = start_date
        self.end_date = end_date
        self.clear_end_date = clear_end_date
        self.authorized_units = authorized_units
        self.service_type_ids = list(service_type_ids) if service_type_ids is not None else None
        self.status = status
        self.notes = notes


@dataclass
class UtilizationSummary:
    """Utilization snapshot returned by track/get operations."""

    authorization_id: UUID
    authorized_units: int
    used_units: int
    status: AuthorizationStatus

    @property
    def remaining_units(self) -> int:
        return max(self.authorized_units - self.used_units, 0)

    @property
    def utilization_percentage(self) -> float:
        if self.authorized_units == 0:
            return 0.0
        return round(self.used_units / self.authorized_units * 100, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "authorization_id": str(self.authorization_id),
            "authorized_units": self.authorized_units,
            "used_units": self.used_units,
            "remaining_units": self.remaining_units,
            "utilization_percentage": self.utilization_percentage,
            "status": self.status.value,
        }


@dataclass
class StatusUpdateResult:
    """Outcome of an authorization status change."""

    authorization: Authorization
    previous_status: AuthorizationStatus
    services_reverted: int = 0


@dataclass
class ExpirationStatus:
    is_expiring: bool
    is_expired: bool
    days_remaining: Optional[int]
    expiration_date: Optional[date]


@dataclass
class ExpirySweepResult:
    """Summary of one run of the expiry sweep."""

    as_of: date
    expired: list[UUID] = field(default_factory=list)
    marked_expiring: list[UUID] = field(default_factory=list)
    notices: dict[int, list[UUID]] = field(default_factory=dict)
    errors: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "expired": [str(i) for i in self.expired],
            "marked_expiring": [str(i) for i in self.marked_expiring],
            "notices": {str(days): [str(i) for i in ids] for days, ids in self.notices.items()},
            "errors": self.errors,
        }


# =============================================================================
# Authorization Ledger
# =============================================================================


class AuthorizationLedger:
    """
    Owner of authorization status and unit utilization.

    Every public operation runs in its own unit of work; the *_in helpers
    take a caller's unit of work so other components can compose them.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: Optional[BillingSettings] = None,
    ):
        self.uow_factory = uow_factory
        self.settings = settings or get_billing_settings()

    # =========================================================================
    # Utilization
    # =========================================================================

    async def track_utilization(
        self,
        authorization_id: UUID,
        units: int,
        is_addition: bool = True,
    ) -> UtilizationSummary:
        """
        Add or release units against an authorization.

        The authorization row stays locked until commit, so concurrent calls
        for the same authorization apply one after another.

        Raises:
            NotFoundError: authorization or its utilization row is missing
            ExceedsAuthorizedUnitsError: an addition would pass authorized units
        """
        if units < 0:
            raise ValueError("units must be non-negative; use is_addition=False to release")

        async with self.uow_factory() as uow:
            summary = await self.track_utilization_in(uow, authorization_id, units, is_addition)
            await uow.commit()

        logger.info(
            f"Utilization for authorization {authorization_id}: "
            f"{summary.used_units}/{summary.authorized_units} ({summary.status.value})"
        )
        return summary

    async def track_utilization_in(
        self,
        uow: BillingUnitOfWork,
        authorization_id: UUID,
        units: int,
        is_addition: bool = True,
    ) -> UtilizationSummary:
        authorization = await uow.authorizations.get_for_update(authorization_id)
        if authorization is None:
            raise NotFoundError("authorization", authorization_id)

        utilization = await self._get_utilization(uow, authorization_id)
        current = utilization.used_units

        if units == 0:
            return UtilizationSummary(
                authorization_id, authorization.authorized_units, current, authorization.status
            )

        if is_addition:
            new_used = current + units
            if new_used > authorization.authorized_units:
                raise ExceedsAuthorizedUnitsError(
                    f"Adding {units} units would exceed authorized units "
                    f"({current} used of {authorization.authorized_units})",
                    details={
                        "authorization_id": str(authorization_id),
                        "authorized_units": authorization.authorized_units,
                        "used_units": current,
                        "requested_units": units,
                    },
                )
        else:
            new_used = current - units
            if new_used < 0:
                logger.warning(
                    f"Releasing {units} units from authorization {authorization_id} "
                    f"with only {current} used; flooring at zero"
                )
                new_used = 0

        utilization.used_units = new_used
        utilization.last_calculated_at = datetime.now(timezone.utc)

        if (
            is_addition
            and authorization.status == AuthorizationStatus.ACTIVE
            and authorization.authorized_units > 0
            and new_used / authorization.authorized_units >= self.settings.UTILIZATION_EXPIRING_THRESHOLD
        ):
            AUTHORIZATION_TRANSITIONS.require(authorization.status, AuthorizationStatus.EXPIRING)
            authorization.status = AuthorizationStatus.EXPIRING
            logger.warning(
                f"Authorization {authorization.authorization_number} reached "
                f"{new_used}/{authorization.authorized_units} units; marked expiring"
            )

        return UtilizationSummary(
            authorization_id, authorization.authorized_units, new_used, authorization.status
        )

    async def get_utilization(self, authorization_id: UUID) -> UtilizationSummary:
        async with self.uow_factory() as uow:
            authorization = await uow.authorizations.get(authorization_id)
            if authorization is None:
                raise NotFoundError("authorization", authorization_id)
            utilization = await self._get_utilization(uow, authorization_id)
            return UtilizationSummary(
                authorization_id,
                authorization.authorized_units,
                utilization.used_units,
                authorization.status,
            )

    async def _get_utilization(
        self, uow: BillingUnitOfWork, authorization_id: UUID
    ) -> AuthorizationUtilization:
        utilization = await uow.authorizations.get_utilization(authorization_id)
        if utilization is None:
            raise NotFoundError("authorization utilization", authorization_id)
        return utilization

    # =========================================================================
    # Overlap Detection
    # =========================================================================

    async def check_overlapping_authorizations(
        self,
        client_id: UUID,
        service_type_ids: Sequence[UUID],
        start_date: date,
        end_date: Optional[date],
        exclude_id: Optional[UUID] = None,
    ) -> bool:
        """True if another non-cancelled authorization double-covers the range."""
        async with self.uow_factory() as uow:
            overlapping = await self._find_overlapping(
                uow, client_id, service_type_ids, start_date, end_date, exclude_id
            )
        return bool(overlapping)

    async def _find_overlapping(
        self,
        uow: BillingUnitOfWork,
        client_id: UUID,
        service_type_ids: Sequence[UUID],
        start_date: date,
        end_date: Optional[date],
        exclude_id: Optional[UUID] = None,
    ) -> list[Authorization]:
        if not service_type_ids:
            return []
        return await uow.authorizations.find_overlapping(
            client_id, service_type_ids, start_date, end_date, exclude_id
        )

    async def _ensure_no_overlap(
        self,
        uow: BillingUnitOfWork,
        client_id: UUID,
        service_type_ids: Sequence[UUID],
        start_date: date,
        end_date: Optional[date],
        exclude_id: Optional[UUID] = None,
    ) -> None:
        overlapping = await self._find_overlapping(
            uow, client_id, service_type_ids, start_date, end_date, exclude_id
        )
        if overlapping:
            raise OverlappingAuthorizationError(
                "Authorization overlaps an existing authorization for the same client "
                "and service type",
                details={
                    "client_id": str(client_id),
                    "overlapping_ids": [str(a.id) for a in overlapping],
                    "overlapping_numbers": [a.authorization_number for a in overlapping],
                },
            )

    # =========================================================================
    # Create / Update / Cancel
    # =========================================================================

    async def create_authorization(self, data: AuthorizationCreateDTO) -> Authorization:
        """
        Create an authorization and its zero-usage utilization row.

        Raises:
            NotFoundError: client or program does not exist
            BusinessRuleError: invalid input, duplicate number or unknown service types
            OverlappingAuthorizationError: double coverage for the client
        """
        if data.status not in INITIAL_STATUSES:
            raise BusinessRuleError(
                f"Authorizations must be created as requested or approved, not {data.status.value}",
                code="invalid-initial-status",
            )
        self._check_units(data.authorized_units)
        self._check_date_range(data.start_date, data.end_date)

        async with self.uow_factory() as uow:
            if not await uow.references.client_exists(data.client_id):
                raise NotFoundError("client", data.client_id)
            if not await uow.references.program_exists(data.program_id):
                raise NotFoundError("program", data.program_id)
            await self._check_service_types(uow, data.service_type_ids)

            existing = await uow.authorizations.get_by_number(data.issuer, data.authorization_number)
            if existing is not None:
                raise BusinessRuleError(
                    f"Authorization number {data.authorization_number} already exists for {data.issuer}",
                    code="duplicate-authorization-number",
                )

            await self._ensure_no_overlap(
                uow, data.client_id, data.service_type_ids, data.start_date, data.end_date
            )

            authorization = Authorization(
                id=uuid4(),
                client_id=data.client_id,
                program_id=data.program_id,
                authorization_number=data.authorization_number,
                issuer=data.issuer,
                status=data.status,
                start_date=data.start_date,
                end_date=data.end_date,
                authorized_units=data.authorized_units,
                service_type_ids=list(data.service_type_ids),
                notes=data.notes,
                issued_date=data.issued_date,
                issued_by=data.issued_by,
                created_by=data.created_by,
            )
            await uow.authorizations.add(authorization)
            await uow.authorizations.add_utilization(
                AuthorizationUtilization(
                    id=uuid4(),
                    authorization_id=authorization.id,
                    used_units=0,
                    last_calculated_at=datetime.now(timezone.utc),
                )
            )
            await uow.commit()

        logger.info(
            f"Authorization {authorization.authorization_number} created for client "
            f"{authorization.client_id} ({authorization.authorized_units} units)"
        )
        return authorization

    async def update_authorization(
        self,
        authorization_id: UUID,
        changes: AuthorizationUpdateDTO,
        user_id: Optional[UUID] = None,
    ) -> Authorization:
        """
        Apply changes; overlap is re-checked when client, service types or
        dates change.
        """
        async with self.uow_factory() as uow:
            authorization = await uow.authorizations.get_for_update(authorization_id)
            if authorization is None:
                raise NotFoundError("authorization", authorization_id)

            client_id = changes.client_id or authorization.client_id
            start_date = changes.start_date or authorization.start_date
            if changes.clear_end_date:
                end_date = None
            else:
                end_date = changes.end_date if changes.end_date is not None else authorization.end_date
            service_type_ids = (
                changes.service_type_ids
                if changes.service_type_ids is not None
                else list(authorization.service_type_ids)
            )
            self._check_date_range(start_date, end_date)

            if changes.client_id is not None and changes.client_id != authorization.client_id:
                if not await uow.references.client_exists(changes.client_id):
                    raise NotFoundError("client", changes.client_id)
            if changes.service_type_ids is not None:
                await self._check_service_types(uow, service_type_ids)

            coverage_changed = (
                client_id != authorization.client_id
                or start_date != authorization.start_date
                or end_date != authorization.end_date
                or set(service_type_ids) != set(authorization.service_type_ids)
            )
            if coverage_changed:
                await self._ensure_no_overlap(
                    uow, client_id, service_type_ids, start_date, end_date, exclude_id=authorization.id
                )

            if changes.authorized_units is not None:
                self._check_units(changes.authorized_units)
                utilization = await self._get_utilization(uow, authorization.id)
                if changes.authorized_units < utilization.used_units:
                    raise ExceedsAuthorizedUnitsError(
                        f"Cannot lower authorized units to {changes.authorized_units}; "
                        f"{utilization.used_units} already used",
                    )
                authorization.authorized_units = changes.authorized_units

            authorization.client_id = client_id
            authorization.start_date = start_date
            authorization.end_date = end_date
            authorization.service_type_ids = list(service_type_ids)
            if changes.notes is not None:
                authorization.notes = changes.notes

            if changes.status is not None and changes.status != authorization.status:
                await self.update_status_in(uow, authorization, changes.status, user_id=user_id)

            await uow.commit()

        logger.info(f"Authorization {authorization.authorization_number} updated")
        return authorization

    async def cancel_authorization(
        self,
        authorization_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> Authorization:
        """Soft delete; refused while any non-void service references it."""
        async with self.uow_factory() as uow:
            authorization = await uow.authorizations.get_for_update(authorization_id)
            if authorization is None:
                raise NotFoundError("authorization", authorization_id)

            active_services = await uow.services.count_active_for_authorization(authorization_id)
            if active_services:
                raise BusinessRuleError(
                    f"Authorization is referenced by {active_services} non-void services",
                    code="authorization-has-services",
                    details={"service_count": active_services},
                )

            await self.update_status_in(
                uow, authorization, AuthorizationStatus.CANCELLED, notes="Authorization cancelled",
                user_id=user_id,
            )
            await uow.commit()

        logger.info(f"Authorization {authorization.authorization_number} cancelled")
        return authorization

    # =========================================================================
    # Status Transitions
    # =========================================================================

    async def update_status(
        self,
        authorization_id: UUID,
        new_status: AuthorizationStatus,
        notes: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> StatusUpdateResult:
        async with self.uow_factory() as uow:
            authorization = await uow.authorizations.get_for_update(authorization_id)
            if authorization is None:
                raise NotFoundError("authorization", authorization_id)
            result = await self.update_status_in(uow, authorization, new_status, notes, user_id)
            await uow.commit()
        return result

    async def update_status_in(
        self,
        uow: BillingUnitOfWork,
        authorization: Authorization,
        new_status: AuthorizationStatus,
        notes: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> StatusUpdateResult:
        """
        Enforce the transition table and apply side effects.

        Moving to EXPIRED reverts the authorization's not-yet-documented,
        not-yet-claimed services to UNBILLED.
        """
        previous = authorization.status
        AUTHORIZATION_TRANSITIONS.require(previous, new_status)

        authorization.status = new_status
        if notes:
            authorization.notes = f"{authorization.notes}\n{notes}" if authorization.notes else notes

        reverted = 0
        if new_status == AuthorizationStatus.EXPIRED:
            reverted = await self._revert_unbacked_services(uow, authorization)

        logger.info(
            f"Authorization {authorization.authorization_number}: {previous.value} -> "
            f"{new_status.value}" + (f" by {user_id}" if user_id else "")
        )
        return StatusUpdateResult(authorization, previous, reverted)

    async def _revert_unbacked_services(
        self, uow: BillingUnitOfWork, authorization: Authorization
    ) -> int:
        expired_at = datetime.now(timezone.utc).isoformat()
        services = await uow.services.list_by_authorization(authorization.id, for_update=True)
        reverted = 0
        for service in services:
            if (
                service.documentation_status in EXPIRY_REVERT_DOCUMENTATION
                and service.billing_status in EXPIRY_REVERT_BILLING
            ):
                service.billing_status = BillingStatus.UNBILLED
                service.append_note(f"Authorization expired: {expired_at}")
                reverted += 1
        if reverted:
            logger.warning(
                f"Authorization {authorization.authorization_number} expired; "
                f"{reverted} services reverted to unbilled"
            )
        return reverted

    # =========================================================================
    # Expiration
    # =========================================================================

    async def find_expiring_authorizations(
        self,
        days_threshold: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> list[Authorization]:
        """Live authorizations whose end date falls within the window."""
        as_of = as_of or date.today()
        days = days_threshold if days_threshold is not None else self.settings.EXPIRING_WINDOW_DAYS
        async with self.uow_factory() as uow:
            return await uow.authorizations.list_ending_between(
                as_of, as_of + timedelta(days=days), LIVE_STATUSES
            )

    async def check_authorization_expiration(
        self,
        authorization_id: UUID,
        days_threshold: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> ExpirationStatus:
        as_of = as_of or date.today()
        days = days_threshold if days_threshold is not None else self.settings.EXPIRING_WINDOW_DAYS
        async with self.uow_factory() as uow:
            authorization = await uow.authorizations.get(authorization_id)
            if authorization is None:
                raise NotFoundError("authorization", authorization_id)

        if authorization.end_date is None:
            return ExpirationStatus(False, False, None, None)

        days_remaining = (authorization.end_date - as_of).days
        is_expired = days_remaining < 0
        return ExpirationStatus(
            is_expiring=not is_expired and days_remaining <= days,
            is_expired=is_expired,
            days_remaining=days_remaining,
            expiration_date=authorization.end_date,
        )

    async def process_expirations(self, as_of: Optional[date] = None) -> ExpirySweepResult:
        """
        Scheduled sweep.

        Live authorizations past their end date become EXPIRED (with the
        service cascade); ACTIVE ones inside the shortest notice window become
        EXPIRING. Each authorization is handled in its own unit of work so one
        failure does not stop the sweep.
        """
        as_of = as_of or date.today()
        notice_days = self.settings.EXPIRY_NOTICE_DAYS
        result = ExpirySweepResult(as_of=as_of, notices={days: [] for days in notice_days})

        async with self.uow_factory() as uow:
            ended = await uow.authorizations.list_ended_before(as_of, LIVE_STATUSES)
            upcoming = await uow.authorizations.list_ending_between(
                as_of, as_of + timedelta(days=max(notice_days)), LIVE_STATUSES
            )

        for authorization in ended:
            try:
                await self.update_status(
                    authorization.id,
                    AuthorizationStatus.EXPIRED,
                    notes=f"Expired by sweep on {as_of.isoformat()}",
                )
                result.expired.append(authorization.id)
            except (BusinessRuleError, NotFoundError) as e:
                logger.error(f"Expiry sweep failed for {authorization.id}: {e}")
                result.errors.append({"authorization_id": str(authorization.id), "message": str(e)})

        for authorization in upcoming:
            days_remaining = (authorization.end_date - as_of).days
            for days in notice_days:
                if days_remaining <= days:
                    result.notices[days].append(authorization.id)
                    break

            if (
                authorization.status == AuthorizationStatus.ACTIVE
                and days_remaining <= min(notice_days)
            ):
                try:
                    await self.update_status(
                        authorization.id,
                        AuthorizationStatus.EXPIRING,
                        notes=f"Ends in {days_remaining} days",
                    )
                    result.marked_expiring.append(authorization.id)
                except (BusinessRuleError, NotFoundError) as e:
                    logger.error(f"Expiry sweep failed for {authorization.id}: {e}")
                    result.errors.append(
                        {"authorization_id": str(authorization.id), "message": str(e)}
                    )

        logger.info(
            f"Expiry sweep {as_of}: {len(result.expired)} expired, "
            f"{len(result.marked_expiring)} marked expiring, {len(result.errors)} errors"
        )
        return result

    # =========================================================================
    # Input Checks
    # =========================================================================

    @staticmethod
    def _check_units(units: int) -> None:
        if units < 0:
            raise BusinessRuleError("Authorized units must be non-negative", code="invalid-units")

    @staticmethod
    def _check_date_range(start_date: date, end_date: Optional[date]) -> None:
        if end_date is not None and end_date < start_date:
            raise BusinessRuleError(
                "Authorization end date precedes start date", code="invalid-date-range"
            )

    @staticmethod
    async def _check_service_types(uow: BillingUnitOfWork, service_type_ids: Sequence[UUID]) -> None:
        missing = await uow.references.missing_service_type_ids(service_type_ids)
        if missing:
            raise BusinessRuleError(
                "Unknown service types",
                code="invalid-service-types",
                details={"service_type_ids": [str(i) for i in missing]},
            )
