"""
Service Authorization Validator.

Checks a rendered service against the authorization that should cover it:
date range, service type, client, remaining units and authorization status.
Findings are accumulated into a ValidationResult; nothing here raises for an
invalid service.

Source: Design Document 02_authorization_and_billing_consistency.md Section 4.2
Verified: 2026-10-19
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence
from uuid import UUID

from src.core.config import BillingSettings, get_billing_settings
from src.core.enums import AuthorizationStatus
from src.core.errors import NotFoundError
from src.core.validation import ValidationResult
from src.db.unit_of_work import BillingUnitOfWork, UnitOfWorkFactory
from src.models import Authorization, Service

logger = logging.getLogger(__name__)

# Statuses under which services may still be billed without a warning
BILLABLE_AUTHORIZATION_STATUSES = frozenset(
    {AuthorizationStatus.ACTIVE, AuthorizationStatus.EXPIRING}
)


@dataclass
class ServiceAuthorizationCheck:
    """Validation outcome for one service."""

    service_id: UUID
    authorization_id: Optional[UUID]
    result: ValidationResult = field(default_factory=ValidationResult)

    @property
    def is_valid(self) -> bool:
        return self.result.is_valid

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_id": str(self.service_id),
            "authorization_id": str(self.authorization_id) if self.authorization_id else None,
            **self.result.to_dict(),
        }


class ServiceAuthorizationValidator:
    """Validates services against authorizations."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: Optional[BillingSettings] = None,
    ):
        self.uow_factory = uow_factory
        self.settings = settings or get_billing_settings()

    # =========================================================================
    # Single Authorization
    # =========================================================================

    async def validate_service_against_authorization(
        self,
        service: Service,
        authorization_id: UUID,
        units_counted: bool = False,
    ) -> ValidationResult:
        async with self.uow_factory() as uow:
            return await self.validate_in(uow, service, authorization_id, units_counted)

    async def validate_in(
        self,
        uow: BillingUnitOfWork,
        service: Service,
        authorization_id: UUID,
        units_counted: bool = False,
    ) -> ValidationResult:
        """
        Run every check inside the caller's unit of work.

        units_counted: the service's units are already in used_units (tracked
        when the service was recorded), so they are not added again.
        """
        authorization = await uow.authorizations.get(authorization_id)
        if authorization is None:
            return ValidationResult.failure(
                "authorization-not-found",
                f"Authorization not found: {authorization_id}",
                field="authorization_id",
            )

        utilization = await uow.authorizations.get_utilization(authorization_id)
        used_units = utilization.used_units if utilization is not None else 0
        return self.check(service, authorization, used_units, units_counted)

    def check(
        self,
        service: Service,
        authorization: Authorization,
        used_units: int,
        units_counted: bool = False,
    ) -> ValidationResult:
        """Pure check of a service against a loaded authorization."""
        result = ValidationResult()

        if service.service_date < authorization.start_date:
            result.add_error(
                "service-date-before-authorization-start",
                f"Service date {service.service_date} is before authorization start "
                f"{authorization.start_date}",
                field="service_date",
            )
        if authorization.end_date is not None and service.service_date > authorization.end_date:
            result.add_error(
                "service-date-after-authorization-end",
                f"Service date {service.service_date} is after authorization end "
                f"{authorization.end_date}",
                field="service_date",
            )

        if not authorization.covers_service_type(service.service_type_id):
            result.add_error(
                "service-type-not-authorized",
                "Service type is not covered by the authorization",
                field="service_type_id",
                service_type_id=str(service.service_type_id),
            )

        if service.client_id != authorization.client_id:
            result.add_error(
                "client-mismatch",
                "Service client does not match the authorization client",
                field="client_id",
            )

        projected = used_units if units_counted else used_units + service.units
        if projected > authorization.authorized_units:
            result.add_error(
                "exceeds-authorized-units",
                f"Authorization usage would reach {projected} of "
                f"{authorization.authorized_units} authorized units",
                field="units",
                used_units=used_units,
                authorized_units=authorization.authorized_units,
            )
        elif (
            authorization.authorized_units > 0
            and projected / authorization.authorized_units >= self.settings.UTILIZATION_WARNING_THRESHOLD
        ):
            result.add_warning(
                "approaching-authorized-limit",
                f"Authorization will be at {projected}/{authorization.authorized_units} units",
                field="units",
                projected_units=projected,
            )

        if authorization.status not in BILLABLE_AUTHORIZATION_STATUSES:
            result.add_warning(
                "authorization-not-active",
                f"Authorization status is {authorization.status.value}",
                field="authorization_id",
            )

        return result

    # =========================================================================
    # Matching
    # =========================================================================

    async def find_matching_authorization(self, service: Service) -> Optional[Authorization]:
        async with self.uow_factory() as uow:
            return await self.find_matching_in(uow, service)

    async def find_matching_in(
        self, uow: BillingUnitOfWork, service: Service
    ) -> Optional[Authorization]:
        """
        Active authorization covering the service; the one with the most
        remaining units wins, earliest listed on ties.
        """
        candidates = await uow.authorizations.list_for_client(
            service.client_id, statuses=[AuthorizationStatus.ACTIVE]
        )
        best: Optional[Authorization] = None
        best_remaining = -1
        for authorization in candidates:
            if not authorization.covers_service_type(service.service_type_id):
                continue
            if not authorization.covers_date(service.service_date):
                continue
            utilization = await uow.authorizations.get_utilization(authorization.id)
            used = utilization.used_units if utilization is not None else 0
            remaining = authorization.authorized_units - used
            if remaining > best_remaining:
                best, best_remaining = authorization, remaining
        return best

    # =========================================================================
    # By Service Id
    # =========================================================================

    async def validate_service(self, service_id: UUID) -> ServiceAuthorizationCheck:
        async with self.uow_factory() as uow:
            service = await uow.services.get(service_id)
            if service is None:
                raise NotFoundError("service", service_id)
            return await self._validate_loaded(uow, service)

    async def validate_services(
        self, service_ids: Sequence[UUID]
    ) -> dict[UUID, ServiceAuthorizationCheck]:
        checks: dict[UUID, ServiceAuthorizationCheck] = {}
        async with self.uow_factory() as uow:
            services = {s.id: s for s in await uow.services.get_many(service_ids)}
            for service_id in service_ids:
                service = services.get(service_id)
                if service is None:
                    checks[service_id] = ServiceAuthorizationCheck(
                        service_id,
                        None,
                        ValidationResult.failure(
                            "service-not-found", f"Service not found: {service_id}"
                        ),
                    )
                    continue
                checks[service_id] = await self._validate_loaded(uow, service)

        invalid = sum(1 for c in checks.values() if not c.is_valid)
        logger.info(f"Validated {len(checks)} services against authorizations ({invalid} invalid)")
        return checks

    async def _validate_loaded(
        self, uow: BillingUnitOfWork, service: Service
    ) -> ServiceAuthorizationCheck:
        authorization_id = service.authorization_id
        if authorization_id is None:
            match = await self.find_matching_in(uow, service)
            if match is None:
                return ServiceAuthorizationCheck(
                    service.id,
                    None,
                    ValidationResult.failure(
                        "no-authorization",
                        "No active authorization covers this service",
                        field="authorization_id",
                    ),
                )
            authorization_id = match.id

        result = await self.validate_in(uow, service, authorization_id)
        return ServiceAuthorizationCheck(service.id, authorization_id, result)
