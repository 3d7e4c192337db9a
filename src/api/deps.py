"""
FastAPI Dependencies
Assembles billing services per request from a unit-of-work factory
Source: https://fastapi.tiangolo.com/tutorial/dependencies/
Verified: 2026-10-19

Tests replace get_uow_factory (and the gateway clients) through
app.dependency_overrides.
"""

from uuid import UUID

from fastapi import Depends, Header, Request

from src.core.config import BillingSettings, get_billing_settings
from src.db.connection import get_session_maker
from src.db.unit_of_work import UnitOfWorkFactory, sqlalchemy_uow_factory
from src.gateways.clearinghouse_gateway import ClearinghouseClient
from src.gateways.payer_gateway import PayerSubmissionClient
from src.services.authorization_ledger import AuthorizationLedger
from src.services.authorization_validator import ServiceAuthorizationValidator
from src.services.claim_converter import ServiceToClaimConverter
from src.services.claim_state_machine import ClaimLifecycle
from src.services.submission_orchestrator import SubmissionOrchestrator


def get_uow_factory() -> UnitOfWorkFactory:
    return sqlalchemy_uow_factory(get_session_maker())


def get_settings_dep() -> BillingSettings:
    return get_billing_settings()


async def get_acting_user_id(
    x_user_id: UUID | None = Header(default=None, alias="X-User-Id"),
) -> UUID | None:
    """Acting user recorded on status history and submission attempts."""
    return x_user_id


def get_clearinghouse_client(request: Request) -> ClearinghouseClient | None:
    """Clearinghouse client created in the application lifespan."""
    return getattr(request.app.state, "clearinghouse", None)


def get_payer_client(request: Request) -> PayerSubmissionClient | None:
    return getattr(request.app.state, "payer_client", None)


def get_ledger(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    settings: BillingSettings = Depends(get_settings_dep),
) -> AuthorizationLedger:
    return AuthorizationLedger(uow_factory, settings)


def get_validator(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    settings: BillingSettings = Depends(get_settings_dep),
) -> ServiceAuthorizationValidator:
    return ServiceAuthorizationValidator(uow_factory, settings)


def get_lifecycle(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
) -> ClaimLifecycle:
    return ClaimLifecycle(uow_factory)


def get_converter(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    settings: BillingSettings = Depends(get_settings_dep),
) -> ServiceToClaimConverter:
    return ServiceToClaimConverter(uow_factory, settings)


def get_orchestrator(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    settings: BillingSettings = Depends(get_settings_dep),
    clearinghouse: ClearinghouseClient | None = Depends(get_clearinghouse_client),
    payer_client: PayerSubmissionClient | None = Depends(get_payer_client),
) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(
        uow_factory,
        clearinghouse=clearinghouse,
        payer_client=payer_client,
        lifecycle=ClaimLifecycle(uow_factory),
        validator=ServiceAuthorizationValidator(uow_factory, settings),
        settings=settings,
    )
