"""
Unit of Work
One transaction spanning every repository a billing operation touches.
Source: https://docs.sqlalchemy.org/en/20/orm/session_transaction.html
Verified: 2026-10-19

Usage:
    async with uow_factory() as uow:
        claim = await uow.claims.get_for_update(claim_id)
        ...
        await uow.commit()

Leaving the block without commit() rolls back, including on exceptions.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.repositories.base import (
    AuthorizationRepository,
    ClaimRepository,
    PayerRepository,
    ReferenceRepository,
    ServiceRepository,
    SubmissionAttemptRepository,
)
from src.repositories.sql import (
    SqlAuthorizationRepository,
    SqlClaimRepository,
    SqlPayerRepository,
    SqlReferenceRepository,
    SqlServiceRepository,
    SqlSubmissionAttemptRepository,
)


class BillingUnitOfWork(ABC):
    """Transaction boundary exposing the billing repositories."""

    authorizations: AuthorizationRepository
    services: ServiceRepository
    claims: ClaimRepository
    payers: PayerRepository
    references: ReferenceRepository
    submissions: SubmissionAttemptRepository

    def __init__(self) -> None:
        self._committed = False

    async def __aenter__(self) -> "BillingUnitOfWork":
        self._committed = False
        await self._begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None or not self._committed:
                await self.rollback()
        finally:
            await self._close()

    async def commit(self) -> None:
        await self._commit()
        self._committed = True

    @abstractmethod
    async def _begin(self) -> None:
        ...

    @abstractmethod
    async def _commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...

    async def _close(self) -> None:
        return None


UnitOfWorkFactory = Callable[[], BillingUnitOfWork]


class SqlAlchemyUnitOfWork(BillingUnitOfWork):
    """Unit of work over one AsyncSession."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__()
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def _begin(self) -> None:
        self.session = self._session_factory()
        self.authorizations = SqlAuthorizationRepository(self.session)
        self.services = SqlServiceRepository(self.session)
        self.claims = SqlClaimRepository(self.session)
        self.payers = SqlPayerRepository(self.session)
        self.references = SqlReferenceRepository(self.session)
        self.submissions = SqlSubmissionAttemptRepository(self.session)

    async def _commit(self) -> None:
        assert self.session is not None
        await self.session.commit()

    async def rollback(self) -> None:
        if self.session is not None:
            await self.session.rollback()

    async def _close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None


def sqlalchemy_uow_factory(
    session_factory: async_sessionmaker[AsyncSession],
) -> UnitOfWorkFactory:
    """Build a factory producing a fresh SqlAlchemyUnitOfWork per operation."""

    def factory() -> BillingUnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory)

    return factory
