"""
Compile-only tests for the PostgreSQL statements behind the repositories.
"""

from datetime import date
from uuid import uuid4

from sqlalchemy.dialects import postgresql

from src.repositories.sql import (
    billable_services_stmt,
    locked_authorization_stmt,
    locked_claim_stmt,
    overlapping_authorizations_stmt,
    services_by_ids_stmt,
)


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestOverlapStatement:
    def test_uses_array_overlap_and_excludes_cancelled(self):
        sql = _sql(overlapping_authorizations_stmt(uuid4(), [uuid4()], date(2026, 1, 1), date(2026, 6, 30)))

        assert "&&" in sql
        assert "authorizations.status !=" in sql
        assert "authorizations.end_date IS NULL" in sql
        assert "authorizations.start_date <=" in sql

    def test_open_ended_range_has_no_upper_bound(self):
        sql = _sql(overlapping_authorizations_stmt(uuid4(), [uuid4()], date(2026, 1, 1), None))

        assert "authorizations.start_date <=" not in sql

    def test_exclude_id(self):
        sql = _sql(
            overlapping_authorizations_stmt(uuid4(), [uuid4()], date(2026, 1, 1), None, exclude_id=uuid4())
        )

        assert "authorizations.id !=" in sql


class TestLockingStatements:
    def test_authorization_lock_does_not_block_foreign_keys(self):
        sql = _sql(locked_authorization_stmt(uuid4()))

        assert sql.rstrip().endswith("FOR NO KEY UPDATE")

    def test_claim_lock(self):
        sql = _sql(locked_claim_stmt(uuid4()))

        assert sql.rstrip().endswith("FOR NO KEY UPDATE")

    def test_service_lock_is_ordered_by_primary_key(self):
        sql = _sql(services_by_ids_stmt([uuid4(), uuid4()], for_update=True))

        assert "ORDER BY services.id" in sql
        assert sql.rstrip().endswith("FOR NO KEY UPDATE")

    def test_plain_service_read_takes_no_lock(self):
        assert "FOR " not in _sql(services_by_ids_stmt([uuid4()]))


class TestBillableStatement:
    def test_filters_unclaimed_ready_services(self):
        sql = _sql(billable_services_stmt())

        assert "services.claim_id IS NULL" in sql
        assert "services.billing_status =" in sql
        assert "services.documentation_status =" in sql

    def test_client_filter(self):
        assert "services.client_id =" in _sql(billable_services_stmt(uuid4()))
