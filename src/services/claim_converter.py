"""
Service-to-Claim Converter.

Provides:
- Transactional conversion of billable services into one claim
- Billing format / claim form selection from payer requirements
- Batch conversion with per-group isolation
- Billable service discovery

Source: Design Document 02_authorization_and_billing_consistency.md Section 4.4
Verified: 2026-10-19
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError

from src.core.config import BillingSettings, get_billing_settings
from src.core.enums import (
    BillingFormat,
    BillingStatus,
    ClaimFormType,
    ClaimStatus,
    ClaimType,
    DocumentationStatus,
)
from src.core.errors import BillingError, BusinessRuleError, NotFoundError
from src.core.validation import ValidationResult
from src.db.unit_of_work import BillingUnitOfWork, UnitOfWorkFactory
from src.models import Claim, ClaimService, ClaimStatusHistory, Payer, Service

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ConversionRejectedError(BusinessRuleError):
    """Raised inside the conversion transaction when services fail validation."""

    def __init__(self, result: ValidationResult):
        first = result.errors[0]
        super().__init__(first.message, code=first.code, details=result.to_dict())
        self.validation_result = result


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ClaimSummary:
    """Serializable view of a created claim."""

    id: UUID
    claim_number: str
    client_id: UUID
    payer_id: UUID
    status: ClaimStatus
    claim_type: ClaimType
    claim_form_type: ClaimFormType
    billing_format: BillingFormat
    service_start_date: date
    service_end_date: date
    total_amount: Decimal
    service_ids: list[UUID] = field(default_factory=list)

    @classmethod
    def from_claim(cls, claim: Claim, service_ids: Sequence[UUID]) -> "ClaimSummary":
        return cls(
            id=claim.id,
            claim_number=claim.claim_number,
            client_id=claim.client_id,
            payer_id=claim.payer_id,
            status=claim.status,
            claim_type=claim.claim_type,
            claim_form_type=claim.claim_form_type,
            billing_format=claim.billing_format,
            service_start_date=claim.service_start_date,
            service_end_date=claim.service_end_date,
            total_amount=claim.total_amount,
            service_ids=list(service_ids),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "claim_number": self.claim_number,
            "client_id": str(self.client_id),
            "payer_id": str(self.payer_id),
            "status": self.status.value,
            "claim_type": self.claim_type.value,
            "claim_form_type": self.claim_form_type.value,
            "billing_format": self.billing_format.value,
            "service_start_date": self.service_start_date.isoformat(),
            "service_end_date": self.service_end_date.isoformat(),
            "total_amount": str(self.total_amount),
            "service_ids": [str(i) for i in self.service_ids],
        }


@dataclass
class ClaimConversionResult:
    success: bool
    message: str
    claim: Optional[ClaimSummary] = None
    validation_result: ValidationResult = field(default_factory=ValidationResult)

    @property
    def error_code(self) -> Optional[str]:
        codes = self.validation_result.error_codes
        return codes[0] if codes else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "claim": self.claim.to_dict() if self.claim else None,
            "validation": self.validation_result.to_dict(),
        }


@dataclass
class ConversionGroup:
    """One claim's worth of services in a batch conversion."""

    service_ids: list[UUID]
    payer_id: UUID
    notes: Optional[str] = None


@dataclass
class BatchConversionResult:
    total_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    created_claim_ids: list[UUID] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "errors": self.errors,
            "created_claim_ids": [str(i) for i in self.created_claim_ids],
        }


@dataclass
class BillableServicePage:
    items: list[Service]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.page_size else 0


# =============================================================================
# Converter
# =============================================================================


class ServiceToClaimConverter:
    """Turns documented, billable services into DRAFT claims."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: Optional[BillingSettings] = None,
    ):
        self.uow_factory = uow_factory
        self.settings = settings or get_billing_settings()

    async def convert_services_to_claim(
        self,
        service_ids: Sequence[UUID],
        payer_id: Optional[UUID],
        notes: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> ClaimConversionResult:
        """
        Create one claim from the given services.

        Rule violations come back as a failed result after rollback.
        Missing payer or services raise NotFoundError; database errors
        propagate after rollback.
        """
        if not service_ids:
            return self._failure(
                ValidationResult.failure("empty-service-ids", "No services supplied", "service_ids")
            )
        if payer_id is None:
            return self._failure(
                ValidationResult.failure("missing-payer-id", "Payer is required", "payer_id")
            )

        ordered_ids = list(dict.fromkeys(service_ids))
        try:
            async with self.uow_factory() as uow:
                payer = await uow.payers.get(payer_id)
                if payer is None:
                    raise NotFoundError("payer", payer_id)

                services = await uow.services.get_many(ordered_ids, for_update=True)
                found = {s.id for s in services}
                missing = [i for i in ordered_ids if i not in found]
                if missing:
                    raise NotFoundError("service", ", ".join(str(i) for i in missing))

                validation = await self._validate_services(uow, services)
                if not validation.is_valid:
                    raise ConversionRejectedError(validation)

                claim = await self._create_claim(uow, payer, services, notes, user_id)
                await uow.commit()
        except ConversionRejectedError as e:
            logger.warning(f"Claim conversion rejected ({e.code}): {e.message}")
            return self._failure(e.validation_result)
        except BusinessRuleError as e:
            logger.warning(f"Claim conversion rejected ({e.code}): {e.message}")
            return self._failure(ValidationResult.failure(e.code, e.message))

        logger.info(
            f"Created claim {claim.claim_number} with {len(services)} services "
            f"totalling {claim.total_amount}"
        )
        return ClaimConversionResult(
            success=True,
            message=f"Claim {claim.claim_number} created",
            claim=ClaimSummary.from_claim(claim, ordered_ids),
            validation_result=validation,
        )

    async def batch_convert_services_to_claims(
        self, groups: Sequence[ConversionGroup]
    ) -> BatchConversionResult:
        """Each group commits or fails on its own."""
        batch = BatchConversionResult()
        for group in groups:
            batch.total_processed += 1
            try:
                result = await self.convert_services_to_claim(
                    group.service_ids, group.payer_id, group.notes
                )
            except (BillingError, SQLAlchemyError) as e:
                logger.error(f"Batch conversion group failed: {e}")
                batch.error_count += 1
                batch.errors.append(
                    {"service_ids": [str(i) for i in group.service_ids], "message": str(e)}
                )
                continue

            if result.success and result.claim is not None:
                batch.success_count += 1
                batch.created_claim_ids.append(result.claim.id)
            else:
                batch.error_count += 1
                batch.errors.append(
                    {"service_ids": [str(i) for i in group.service_ids], "message": result.message}
                )

        logger.info(
            f"Batch conversion: {batch.success_count}/{batch.total_processed} claims created"
        )
        return batch

    async def find_billable_services(
        self,
        page: int = 1,
        page_size: Optional[int] = None,
        client_id: Optional[UUID] = None,
    ) -> BillableServicePage:
        page = max(page, 1)
        page_size = min(max(page_size or self.settings.BILLABLE_PAGE_SIZE, 1), MAX_PAGE_SIZE)
        async with self.uow_factory() as uow:
            items, total = await uow.services.list_billable(
                offset=(page - 1) * page_size, limit=page_size, client_id=client_id
            )
        return BillableServicePage(items=items, total=total, page=page, page_size=page_size)

    # =========================================================================
    # Validation
    # =========================================================================

    async def _validate_services(
        self, uow: BillingUnitOfWork, services: list[Service]
    ) -> ValidationResult:
        result = ValidationResult()

        for service in services:
            if service.billing_status != BillingStatus.READY_FOR_BILLING:
                result.add_error(
                    "invalid-service-status",
                    f"Service {service.id} is {service.billing_status.value}, "
                    "not ready for billing",
                    field="billing_status",
                    service_id=str(service.id),
                )
            if service.documentation_status != DocumentationStatus.COMPLETE:
                result.add_error(
                    "incomplete-documentation",
                    f"Service {service.id} documentation is {service.documentation_status.value}",
                    field="documentation_status",
                    service_id=str(service.id),
                )

        client_ids = {s.client_id for s in services}
        if len(client_ids) > 1:
            result.add_error(
                "different-clients",
                "All services on a claim must belong to the same client",
                field="client_id",
                client_ids=sorted(str(c) for c in client_ids),
            )

        claimed = [s for s in services if s.claim_id is not None]
        if claimed:
            claims = {c.id: c for c in await uow.claims.get_many([s.claim_id for s in claimed])}
            for service in claimed:
                existing = claims.get(service.claim_id)
                if existing is not None and existing.status != ClaimStatus.VOID:
                    result.add_error(
                        "service-already-claimed",
                        f"Service {service.id} is already on claim {existing.claim_number}",
                        field="claim_id",
                        service_id=str(service.id),
                        claim_id=str(existing.id),
                    )

        return result

    # =========================================================================
    # Claim Construction
    # =========================================================================

    async def _create_claim(
        self,
        uow: BillingUnitOfWork,
        payer: Payer,
        services: list[Service],
        notes: Optional[str],
        user_id: Optional[UUID],
    ) -> Claim:
        now = datetime.now(timezone.utc)
        claim = Claim(
            id=uuid4(),
            claim_number=generate_claim_number(now),
            client_id=services[0].client_id,
            payer_id=payer.id,
            claim_type=ClaimType.ORIGINAL,
            claim_form_type=select_claim_form_type(payer, services),
            billing_format=select_billing_format(payer),
            status=ClaimStatus.DRAFT,
            service_start_date=min(s.service_date for s in services),
            service_end_date=max(s.service_date for s in services),
            total_amount=sum((s.amount for s in services), Decimal("0.00")),
            notes=notes,
            created_by=user_id,
        )
        await uow.claims.add(claim)

        for position, service in enumerate(services, start=1):
            await uow.claims.add_service_link(
                ClaimService(
                    id=uuid4(),
                    claim_id=claim.id,
                    service_id=service.id,
                    position=position,
                    amount=service.amount,
                )
            )
            service.billing_status = BillingStatus.IN_CLAIM
            service.claim_id = claim.id

        await uow.claims.add_status_history(
            ClaimStatusHistory(
                id=uuid4(),
                claim_id=claim.id,
                previous_status=None,
                new_status=ClaimStatus.DRAFT,
                changed_at=now,
                changed_by=user_id,
                notes=notes or "Claim created",
            )
        )
        return claim

    @staticmethod
    def _failure(result: ValidationResult) -> ClaimConversionResult:
        message = result.errors[0].message if result.errors else "Conversion failed"
        return ClaimConversionResult(success=False, message=message, validation_result=result)


def generate_claim_number(now: Optional[datetime] = None) -> str:
    """CLM-YYYYMMDD-XXXXXXXX with eight random hex characters."""
    now = now or datetime.now(timezone.utc)
    return f"CLM-{now:%Y%m%d}-{uuid4().hex[:8].upper()}"


def select_billing_format(payer: Payer) -> BillingFormat:
    if payer.required_billing_format is not None:
        return payer.required_billing_format
    if payer.accepts_electronic_claims:
        return BillingFormat.X12_837P
    return BillingFormat.CMS1500


def select_claim_form_type(payer: Payer, services: Sequence[Service]) -> ClaimFormType:
    if payer.default_claim_type is not None:
        return payer.default_claim_type
    if services and all(s.facility_id is not None for s in services):
        return ClaimFormType.INSTITUTIONAL
    return ClaimFormType.PROFESSIONAL
