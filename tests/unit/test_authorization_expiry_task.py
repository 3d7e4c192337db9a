"""
Unit tests for the scheduled authorization expiry task.
"""

from datetime import date

import pytest

from src.core.enums import AuthorizationStatus
from src.tasks import authorization_expiry
from src.tasks.authorization_expiry import process_authorization_expirations, run_expiry_sweep
from src.utils.celery_app import celery_app


class TestRunExpirySweep:
    """Tests for the async sweep entry point."""

    @pytest.mark.asyncio
    async def test_sweep_summary(self, uow_factory, seed, store):
        ended = seed.authorization(end_date=date(2026, 4, 30))

        summary = await run_expiry_sweep(as_of=date(2026, 5, 1), uow_factory=uow_factory)

        assert summary["as_of"] == "2026-05-01"
        assert summary["expired"] == [str(ended.id)]
        assert set(summary["notices"]) == {"7", "15", "30"}
        assert store.authorizations[ended.id].status == AuthorizationStatus.EXPIRED


class TestCeleryTask:
    """Tests for the Celery wiring."""

    def test_task_is_registered(self):
        assert "authorizations.process_expirations" in celery_app.tasks

    def test_scheduled_daily(self):
        entry = celery_app.conf.beat_schedule["process-authorization-expirations"]
        assert entry["task"] == "authorizations.process_expirations"

    def test_task_parses_as_of(self, monkeypatch):
        seen = {}

        async def fake_sweep(as_of=None, uow_factory=None):
            seen["as_of"] = as_of
            return {"as_of": as_of.isoformat(), "expired": [], "marked_expiring": [], "notices": {}, "errors": []}

        monkeypatch.setattr(authorization_expiry, "run_expiry_sweep", fake_sweep)

        summary = process_authorization_expirations.run("2026-05-01")

        assert seen["as_of"] == date(2026, 5, 1)
        assert summary["expired"] == []
