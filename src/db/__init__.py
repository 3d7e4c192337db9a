"""
Database module for the HCBS Billing Engine.

Exports connection utilities and the unit of work.
"""

from src.db.connection import (
    check_db_connection,
    close_db_connection,
    get_engine,
    get_session_maker,
)
from src.db.unit_of_work import (
    BillingUnitOfWork,
    SqlAlchemyUnitOfWork,
    UnitOfWorkFactory,
    sqlalchemy_uow_factory,
)

__all__ = [
    # Connection
    "get_engine",
    "get_session_maker",
    "close_db_connection",
    "check_db_connection",
    # Unit of work
    "BillingUnitOfWork",
    "SqlAlchemyUnitOfWork",
    "UnitOfWorkFactory",
    "sqlalchemy_uow_factory",
]
