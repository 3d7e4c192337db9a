"""
Electronic Submission Orchestrator.

Provides:
- Pre-submission validation (services, authorizations, channel, filing deadline)
- Rendering through the formatter registry
- Dispatch per submission method (payer API, clearinghouse, portal)
- Batch submission grouped by payer with per-claim outcomes
- Append-only submission attempt log

Source: Design Document 02_authorization_and_billing_consistency.md Section 4.5
Verified: 2026-10-19

Flow:
    load + lock claim -> ensure submittable -> load payer -> validate
    -> format -> dispatch -> advance to SUBMITTED -> commit -> record attempt

A dispatch failure raises IntegrationError after the attempt is recorded;
the claim transaction rolls back so the claim keeps its DRAFT/VALIDATED
status.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError

from src.core.config import BillingSettings, get_billing_settings
from src.core.enums import BillingStatus, ClaimStatus, DocumentationStatus, SubmissionMethod
from src.core.errors import BillingError, NotFoundError, UnsupportedSubmissionMethodError
from src.core.validation import ValidationResult
from src.db.unit_of_work import BillingUnitOfWork, UnitOfWorkFactory
from src.gateways.base import ClaimEnvelope, IntegrationError, IntegrationUnavailableError
from src.gateways.clearinghouse_gateway import ClearinghouseClient
from src.gateways.payer_gateway import PayerSubmissionClient
from src.models import Claim, Payer, Service, SubmissionAttempt
from src.services.authorization_validator import ServiceAuthorizationValidator
from src.services.claim_formatters import ClaimDocument, FormatterRegistry
from src.services.claim_state_machine import ClaimLifecycle

logger = logging.getLogger(__name__)

PAYER_API_METHODS = frozenset({SubmissionMethod.ELECTRONIC, SubmissionMethod.DIRECT})


# =============================================================================
# Request / Response Types
# =============================================================================


@dataclass
class SubmissionRequest:
    claim_id: UUID
    submission_method: SubmissionMethod
    options: dict[str, Any] = field(default_factory=dict)
    notes: Optional[str] = None
    user_id: Optional[UUID] = None


@dataclass
class BatchSubmissionRequest:
    claim_ids: list[UUID]
    submission_method: SubmissionMethod
    options: dict[str, Any] = field(default_factory=dict)
    notes: Optional[str] = None
    user_id: Optional[UUID] = None


@dataclass
class SubmissionResponse:
    success: bool
    claim_id: UUID
    message: str
    submission_method: SubmissionMethod
    claim_status: Optional[ClaimStatus] = None
    confirmation_number: Optional[str] = None
    external_claim_id: Optional[str] = None
    submission_date: Optional[datetime] = None
    instructions: Optional[str] = None
    validation_result: ValidationResult = field(default_factory=ValidationResult)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "claim_id": str(self.claim_id),
            "message": self.message,
            "submission_method": self.submission_method.value,
            "claim_status": self.claim_status.value if self.claim_status else None,
            "confirmation_number": self.confirmation_number,
            "external_claim_id": self.external_claim_id,
            "submission_date": self.submission_date.isoformat() if self.submission_date else None,
            "instructions": self.instructions,
            "validation": self.validation_result.to_dict(),
        }


@dataclass
class BatchSubmissionResponse:
    submission_date: datetime
    total_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    processed_claim_ids: list[UUID] = field(default_factory=list)

    def add_success(self, claim_id: UUID) -> None:
        self.success_count += 1
        self.processed_claim_ids.append(claim_id)

    def add_error(self, claim_id: UUID, message: str, code: Optional[str] = None) -> None:
        self.error_count += 1
        self.errors.append({"claim_id": str(claim_id), "message": message, "code": code})

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "errors": self.errors,
            "processed_claim_ids": [str(i) for i in self.processed_claim_ids],
            "submission_date": self.submission_date.isoformat(),
        }


@dataclass
class DispatchOutcome:
    confirmation_number: Optional[str] = None
    external_claim_id: Optional[str] = None
    instructions: Optional[str] = None


@dataclass
class PreparedClaim:
    """A validated, rendered claim awaiting batch dispatch."""

    claim_id: UUID
    envelope: ClaimEnvelope


# =============================================================================
# Orchestrator
# =============================================================================


class SubmissionOrchestrator:
    """Submits claims and moves them to SUBMITTED on success."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        clearinghouse: Optional[ClearinghouseClient] = None,
        payer_client: Optional[PayerSubmissionClient] = None,
        formatters: Optional[FormatterRegistry] = None,
        lifecycle: Optional[ClaimLifecycle] = None,
        validator: Optional[ServiceAuthorizationValidator] = None,
        settings: Optional[BillingSettings] = None,
    ):
        self.uow_factory = uow_factory
        self.settings = settings or get_billing_settings()
        self.clearinghouse = clearinghouse
        self.payer_client = payer_client
        self.formatters = formatters or FormatterRegistry()
        self.lifecycle = lifecycle or ClaimLifecycle(uow_factory)
        self.validator = validator or ServiceAuthorizationValidator(uow_factory, self.settings)

    # =========================================================================
    # Single Claim
    # =========================================================================

    async def submit_claim(self, request: SubmissionRequest) -> SubmissionResponse:
        """
        Submit one claim.

        Raises:
            NotFoundError: claim or payer missing
            ClaimNotSubmittableError: claim is past VALIDATED (no external call made)
            UnsupportedSubmissionMethodError: no dispatcher for the method
            IntegrationError: the external system failed (claim unchanged)
            SQLAlchemyError: the claim could not be marked submitted after dispatch
        """
        method = request.submission_method
        correlation_id = uuid4().hex

        async with self.uow_factory() as uow:
            claim = await uow.claims.get_for_update(request.claim_id)
            if claim is None:
                raise NotFoundError("claim", request.claim_id)
            self.lifecycle.ensure_submittable(claim)

            payer = await uow.payers.get(claim.payer_id)
            if payer is None:
                raise NotFoundError("payer", claim.payer_id)

            services = await self._member_services(uow, claim)
            validation = await self.validate_submission_requirements(
                uow, claim, payer, services, method
            )
            if not validation.is_valid:
                logger.warning(
                    f"Claim {claim.claim_number} failed submission validation: "
                    f"{', '.join(validation.error_codes)}"
                )
                return SubmissionResponse(
                    success=False,
                    claim_id=claim.id,
                    message="Claim failed submission validation",
                    submission_method=method,
                    claim_status=claim.status,
                    validation_result=validation,
                )

            envelope = self._envelope(claim, payer, services)
            try:
                outcome = await self._dispatch(method, claim, payer, envelope, request.options)
            except IntegrationError as e:
                logger.error(f"Submission of claim {claim.claim_number} via {method.value} failed: {e}")
                await self._record_attempt(
                    claim.id, method, False, errors=[e.to_dict()],
                    correlation_id=correlation_id, user_id=request.user_id,
                )
                raise

            try:
                submitted_at = await self._mark_submitted(
                    uow, claim, method, outcome, request.notes, request.user_id, correlation_id
                )
                await uow.commit()
            except SQLAlchemyError as e:
                logger.error(
                    f"Claim {claim.claim_number} accepted via {method.value} "
                    f"(confirmation {outcome.confirmation_number}) but could not be marked submitted: {e}"
                )
                await self._record_attempt(
                    claim.id, method, False,
                    confirmation_number=outcome.confirmation_number,
                    external_claim_id=outcome.external_claim_id,
                    errors=[{"code": "persistence-failed", "message": str(e)}],
                    correlation_id=correlation_id, user_id=request.user_id,
                )
                raise

        await self._record_attempt(
            claim.id, method, True,
            confirmation_number=outcome.confirmation_number,
            external_claim_id=outcome.external_claim_id,
            correlation_id=correlation_id, user_id=request.user_id,
        )
        logger.info(
            f"Claim {claim.claim_number} submitted via {method.value} "
            f"(confirmation {outcome.confirmation_number})"
        )
        return SubmissionResponse(
            success=True,
            claim_id=claim.id,
            message=f"Claim {claim.claim_number} submitted",
            submission_method=method,
            claim_status=claim.status,
            confirmation_number=outcome.confirmation_number,
            external_claim_id=outcome.external_claim_id,
            submission_date=submitted_at,
            instructions=outcome.instructions,
            validation_result=validation,
        )

    # =========================================================================
    # Batch
    # =========================================================================

    async def submit_batch(self, request: BatchSubmissionRequest) -> BatchSubmissionResponse:
        """
        Submit many claims; one claim's failure never blocks the others.

        Claims are grouped by payer. Clearinghouse groups go out as one batch
        call per payer; other methods submit claim by claim.
        """
        response = BatchSubmissionResponse(submission_date=datetime.now(timezone.utc))
        claim_ids = list(dict.fromkeys(request.claim_ids))
        response.total_processed = len(claim_ids)

        async with self.uow_factory() as uow:
            claims = {c.id: c for c in await uow.claims.get_many(claim_ids)}

        groups: dict[UUID, list[UUID]] = {}
        for claim_id in claim_ids:
            claim = claims.get(claim_id)
            if claim is None:
                response.add_error(claim_id, f"Claim not found: {claim_id}", NotFoundError.code)
                continue
            groups.setdefault(claim.payer_id, []).append(claim_id)

        for payer_id, payer_claim_ids in groups.items():
            if request.submission_method == SubmissionMethod.CLEARINGHOUSE:
                await self._submit_clearinghouse_group(payer_id, payer_claim_ids, request, response)
                continue

            for claim_id in payer_claim_ids:
                try:
                    result = await self.submit_claim(
                        SubmissionRequest(
                            claim_id=claim_id,
                            submission_method=request.submission_method,
                            options=request.options,
                            notes=request.notes,
                            user_id=request.user_id,
                        )
                    )
                except (BillingError, IntegrationError, SQLAlchemyError) as e:
                    response.add_error(claim_id, str(e), getattr(e, "code", None))
                    continue
                if result.success:
                    response.add_success(claim_id)
                else:
                    response.add_error(claim_id, self._validation_message(result.validation_result))

        logger.info(
            f"Batch submission via {request.submission_method.value}: "
            f"{response.success_count}/{response.total_processed} submitted"
        )
        return response

    async def _submit_clearinghouse_group(
        self,
        payer_id: UUID,
        claim_ids: list[UUID],
        request: BatchSubmissionRequest,
        response: BatchSubmissionResponse,
    ) -> None:
        method = SubmissionMethod.CLEARINGHOUSE
        prepared: list[PreparedClaim] = []
        channel_id: Optional[str] = None

        for claim_id in claim_ids:
            try:
                async with self.uow_factory() as uow:
                    claim = await uow.claims.get(claim_id)
                    if claim is None:
                        raise NotFoundError("claim", claim_id)
                    self.lifecycle.ensure_submittable(claim)
                    payer = await uow.payers.get(payer_id)
                    if payer is None:
                        raise NotFoundError("payer", payer_id)
                    services = await self._member_services(uow, claim)
                    validation = await self.validate_submission_requirements(
                        uow, claim, payer, services, method
                    )
                    if not validation.is_valid:
                        response.add_error(claim_id, self._validation_message(validation))
                        continue
                    channel_id = payer.clearinghouse_id
                    prepared.append(PreparedClaim(claim_id, self._envelope(claim, payer, services)))
            except BillingError as e:
                response.add_error(claim_id, str(e), e.code)

        if not prepared or channel_id is None:
            return

        correlation_id = uuid4().hex
        try:
            items = await self._require_clearinghouse().submit_batch(
                channel_id, [p.envelope for p in prepared], request.options
            )
        except IntegrationError as e:
            logger.error(f"Clearinghouse batch for payer {payer_id} failed: {e}")
            for p in prepared:
                await self._record_attempt(
                    p.claim_id, method, False, errors=[e.to_dict()],
                    correlation_id=correlation_id, user_id=request.user_id,
                )
                response.add_error(p.claim_id, str(e), e.code)
            return

        for p, item in zip(prepared, items):
            if not item.accepted:
                await self._record_attempt(
                    p.claim_id, method, False,
                    confirmation_number=item.tracking_number,
                    external_claim_id=item.external_claim_id,
                    errors=[{"message": item.error or "Rejected"}],
                    correlation_id=correlation_id, user_id=request.user_id,
                )
                response.add_error(p.claim_id, item.error or "Rejected by clearinghouse")
                continue

            outcome = DispatchOutcome(item.tracking_number, item.external_claim_id)
            try:
                async with self.uow_factory() as uow:
                    claim = await uow.claims.get_for_update(p.claim_id)
                    if claim is None:
                        raise NotFoundError("claim", p.claim_id)
                    self.lifecycle.ensure_submittable(claim)
                    await self._mark_submitted(
                        uow, claim, method, outcome, request.notes, request.user_id, correlation_id
                    )
                    await uow.commit()
            except (BillingError, SQLAlchemyError) as e:
                logger.error(f"Accepted claim {p.claim_id} could not be marked submitted: {e}")
                await self._record_attempt(
                    p.claim_id, method, False,
                    confirmation_number=item.tracking_number,
                    external_claim_id=item.external_claim_id,
                    errors=[{"code": getattr(e, "code", None) or "persistence-failed", "message": str(e)}],
                    correlation_id=correlation_id, user_id=request.user_id,
                )
                response.add_error(p.claim_id, str(e), getattr(e, "code", None))
                continue
            await self._record_attempt(
                p.claim_id, method, True,
                confirmation_number=item.tracking_number,
                external_claim_id=item.external_claim_id,
                correlation_id=correlation_id, user_id=request.user_id,
            )
            response.add_success(p.claim_id)

    # =========================================================================
    # Validation
    # =========================================================================

    async def validate_submission_requirements(
        self,
        uow: BillingUnitOfWork,
        claim: Claim,
        payer: Payer,
        services: list[Service],
        method: SubmissionMethod,
    ) -> ValidationResult:
        result = ValidationResult()

        if not services:
            result.add_error("no-services", "Claim has no services", field="services")
        for service in services:
            if service.documentation_status != DocumentationStatus.COMPLETE:
                result.add_error(
                    "incomplete-documentation",
                    f"Service {service.id} documentation is {service.documentation_status.value}",
                    field="documentation_status",
                    service_id=str(service.id),
                )
            if service.billing_status != BillingStatus.IN_CLAIM:
                result.add_error(
                    "invalid-service-status",
                    f"Service {service.id} is {service.billing_status.value}, not in claim",
                    field="billing_status",
                    service_id=str(service.id),
                )
            if service.authorization_id is not None:
                result.merge(
                    await self.validator.validate_in(
                        uow, service, service.authorization_id, units_counted=True
                    )
                )

        if claim.total_amount is None or claim.total_amount <= Decimal("0"):
            result.add_error("invalid-total-amount", "Claim total must be positive", field="total_amount")

        if method == SubmissionMethod.CLEARINGHOUSE and not payer.clearinghouse_id:
            result.add_error(
                "missing-clearinghouse-id",
                f"Payer {payer.payer_code} has no clearinghouse channel",
                field="clearinghouse_id",
            )
        if method in PAYER_API_METHODS:
            if not payer.electronic_endpoint:
                result.add_error(
                    "missing-electronic-endpoint",
                    f"Payer {payer.payer_code} has no electronic endpoint",
                    field="electronic_endpoint",
                )
            if method == SubmissionMethod.ELECTRONIC and not payer.accepts_electronic_claims:
                result.add_error(
                    "electronic-claims-not-accepted",
                    f"Payer {payer.payer_code} does not accept electronic claims",
                )
        if method == SubmissionMethod.PORTAL and not payer.portal_url:
            result.add_warning(
                "missing-portal-url",
                f"Payer {payer.payer_code} has no portal URL on file",
                field="portal_url",
            )

        result.merge(self.validate_filing_deadline(claim, payer))
        return result

    def validate_filing_deadline(
        self,
        claim: Claim,
        payer: Payer,
        as_of: Optional[date] = None,
    ) -> ValidationResult:
        """Error once the deadline has passed; warning when it is close."""
        as_of = as_of or date.today()
        result = ValidationResult()
        deadline_days = payer.filing_deadline_days or self.settings.DEFAULT_FILING_DEADLINE_DAYS
        deadline = claim.service_end_date + timedelta(days=deadline_days)
        days_left = (deadline - as_of).days

        if days_left < 0:
            result.add_error(
                "filing-deadline-passed",
                f"Filing deadline {deadline.isoformat()} has passed",
                field="service_end_date",
                deadline=deadline.isoformat(),
            )
        elif days_left < self.settings.FILING_DEADLINE_WARNING_DAYS:
            result.add_warning(
                "filing-deadline-approaching",
                f"Filing deadline {deadline.isoformat()} is in {days_left} days",
                field="service_end_date",
                deadline=deadline.isoformat(),
                days_remaining=days_left,
            )
        return result

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _dispatch(
        self,
        method: SubmissionMethod,
        claim: Claim,
        payer: Payer,
        envelope: ClaimEnvelope,
        options: dict[str, Any],
    ) -> DispatchOutcome:
        if method in PAYER_API_METHODS:
            if self.payer_client is None:
                raise IntegrationUnavailableError(
                    "Payer submission client is not configured", provider="payer-api", retryable=False
                )
            receipt = await self.payer_client.submit(payer.electronic_endpoint, envelope, options)
            return DispatchOutcome(receipt.confirmation_number, receipt.external_claim_id)

        if method == SubmissionMethod.CLEARINGHOUSE:
            submission = await self._require_clearinghouse().submit_claim(
                payer.clearinghouse_id, envelope, options
            )
            return DispatchOutcome(submission.tracking_number, submission.external_claim_id)

        if method == SubmissionMethod.PORTAL:
            location = payer.portal_url or "the payer portal"
            return DispatchOutcome(
                instructions=(
                    f"Enter claim {claim.claim_number} for {claim.total_amount} at {location}"
                ),
            )

        raise UnsupportedSubmissionMethodError(
            f"Submission method {method.value} is not supported",
            details={"submission_method": method.value},
        )

    def _require_clearinghouse(self) -> ClearinghouseClient:
        if self.clearinghouse is None:
            raise IntegrationUnavailableError(
                "Clearinghouse client is not configured", provider="clearinghouse", retryable=False
            )
        return self.clearinghouse

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    async def _member_services(uow: BillingUnitOfWork, claim: Claim) -> list[Service]:
        """Member services in claim line order."""
        links = await uow.claims.list_service_links(claim.id)
        return await uow.services.get_many([link.service_id for link in links])

    def _envelope(self, claim: Claim, payer: Payer, services: list[Service]) -> ClaimEnvelope:
        formatted = self.formatters.format(ClaimDocument(claim, payer, services))
        return ClaimEnvelope(
            claim_id=claim.id,
            claim_number=claim.claim_number,
            billing_format=formatted.billing_format.value,
            content_type=formatted.content_type,
            body=formatted.body,
            payer_code=payer.payer_code,
        )

    async def _mark_submitted(
        self,
        uow: BillingUnitOfWork,
        claim: Claim,
        method: SubmissionMethod,
        outcome: DispatchOutcome,
        notes: Optional[str],
        user_id: Optional[UUID],
        correlation_id: str,
    ) -> datetime:
        submitted_at = datetime.now(timezone.utc)
        claim.submission_method = method
        claim.submission_date = submitted_at
        claim.external_claim_id = outcome.external_claim_id or claim.external_claim_id
        claim.tracking_number = outcome.confirmation_number or claim.tracking_number

        if claim.status == ClaimStatus.DRAFT:
            await self.lifecycle.apply_transition(
                uow, claim, ClaimStatus.VALIDATED, "Validated for submission", user_id
            )
        await self.lifecycle.apply_transition(
            uow,
            claim,
            ClaimStatus.SUBMITTED,
            notes or f"Submitted via {method.value}",
            user_id,
            details={
                "submission_method": method.value,
                "confirmation_number": outcome.confirmation_number,
                "correlation_id": correlation_id,
            },
        )
        return submitted_at

    async def _record_attempt(
        self,
        claim_id: UUID,
        method: SubmissionMethod,
        success: bool,
        confirmation_number: Optional[str] = None,
        external_claim_id: Optional[str] = None,
        errors: Optional[list[dict[str, Any]]] = None,
        correlation_id: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> None:
        """Append to the attempt log in its own transaction."""
        try:
            async with self.uow_factory() as uow:
                await uow.submissions.add(
                    SubmissionAttempt(
                        id=uuid4(),
                        claim_id=claim_id,
                        channel=method,
                        success=success,
                        confirmation_number=confirmation_number,
                        external_claim_id=external_claim_id,
                        errors=errors or [],
                        correlation_id=correlation_id,
                        attempted_by=user_id,
                        attempted_at=datetime.now(timezone.utc),
                    )
                )
                await uow.commit()
        except SQLAlchemyError as e:
            logger.error(f"Could not record submission attempt for claim {claim_id}: {e}")

    async def list_attempts(self, claim_id: UUID) -> list[SubmissionAttempt]:
        async with self.uow_factory() as uow:
            claim = await uow.claims.get(claim_id)
            if claim is None:
                raise NotFoundError("claim", claim_id)
            return await uow.submissions.list_for_claim(claim_id)

    @staticmethod
    def _validation_message(result: ValidationResult) -> str:
        return "; ".join(issue.message for issue in result.errors) or "Validation failed"
