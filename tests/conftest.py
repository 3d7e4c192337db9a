"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

import os

# Application settings require a database password; tests never connect.
os.environ.setdefault("POSTGRES_PASSWORD", "test-password")
os.environ.setdefault("ENVIRONMENT", "testing")

import pytest

from src.core.config import BillingSettings
from tests.fakes import FakeUnitOfWork, InMemoryStore, Seeder


@pytest.fixture
def store():
    """Fresh in-memory store per test."""
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    """Unit-of-work factory backed by the in-memory store."""

    def factory():
        return FakeUnitOfWork(store)

    return factory


@pytest.fixture
def seed(store):
    return Seeder(store)


@pytest.fixture
def billing_settings():
    """Billing settings with retries that do not sleep."""
    return BillingSettings(
        EXPIRY_NOTICE_DAYS=[7, 15, 30],
        CLEARINGHOUSE_BASE_URL="https://clearinghouse.test/api/v1",
        CLEARINGHOUSE_RETRY_ATTEMPTS=3,
        CLEARINGHOUSE_RETRY_DELAY_SECONDS=0,
        PAYER_API_RETRY_ATTEMPTS=3,
    )


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as an API test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
