"""Shared fixtures: in-memory reminder service driven by a fake clock."""

import pytest

from billreminder.invoices.store import InMemoryInvoiceStore
from billreminder.ledger.store import InMemoryLedgerStore
from billreminder.reminders.service import ReminderService
from billreminder.shared.config import Settings
from tests.helpers import FakeClock, RecordingProvider


@pytest.fixture
def settings() -> Settings:
    """Settings for in-process tests: memory storage, no background sweep."""
    return Settings(
        _env_file=None,
        storage_backend="memory",
        notification_provider="log",
        scheduler_enabled=False,
        webhook_retry_wait_seconds=0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider(settings: Settings) -> RecordingProvider:
    return RecordingProvider(settings)


@pytest.fixture
def service(settings: Settings, provider: RecordingProvider, clock: FakeClock) -> ReminderService:
    """Reminder service over fresh in-memory stores."""
    return ReminderService(
        settings, InMemoryInvoiceStore(), InMemoryLedgerStore(), provider, clock=clock
    )
