"""
Authorization Expiry Tasks
Scheduled sweep expiring authorizations and flagging ones about to end
Source: https://docs.celeryq.dev/en/stable/userguide/tasks.html
Verified: 2026-10-19
"""

import asyncio
from datetime import date
from typing import Optional

from src.db.connection import close_db_connection, get_session_maker
from src.db.unit_of_work import UnitOfWorkFactory, sqlalchemy_uow_factory
from src.services.authorization_ledger import AuthorizationLedger
from src.utils.celery_app import celery_app
from src.utils.logging import get_logger

logger = get_logger(__name__)


async def run_expiry_sweep(
    as_of: Optional[date] = None,
    uow_factory: Optional[UnitOfWorkFactory] = None,
) -> dict:
    """
    Run the ledger sweep once.

    Without a factory the sweep uses the process engine and disposes it
    afterwards, since each Celery run gets a fresh event loop.
    """
    owns_engine = uow_factory is None
    factory = uow_factory or sqlalchemy_uow_factory(get_session_maker())
    try:
        result = await AuthorizationLedger(factory).process_expirations(as_of)
        return result.to_dict()
    finally:
        if owns_engine:
            await close_db_connection()


@celery_app.task(name="authorizations.process_expirations")
def process_authorization_expirations(as_of: Optional[str] = None) -> dict:
    """
    Daily authorization expiry sweep.

    Args:
        as_of: ISO date to evaluate against (defaults to today)

    Returns:
        Sweep summary (expired, marked_expiring, notices, errors)
    """
    sweep_date = date.fromisoformat(as_of) if as_of else None
    logger.info(f"Authorization expiry sweep started (as_of={as_of or 'today'})")

    summary = asyncio.run(run_expiry_sweep(sweep_date))

    logger.info(
        f"Authorization expiry sweep completed: {len(summary['expired'])} expired, "
        f"{len(summary['marked_expiring'])} marked expiring, {len(summary['errors'])} errors"
    )
    return summary
