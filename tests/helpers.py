"""Test doubles shared by unit and integration tests."""

import asyncio
from datetime import UTC, datetime, timedelta

from billreminder.invoices.schema import Invoice
from billreminder.notifications.base import NotificationProvider
from billreminder.notifications.schema import DeliveryResult, NotificationPayload
from billreminder.shared.config import Settings

START = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingProvider(NotificationProvider):
    """Records every payload; fails on demand; can stall to widen race windows."""

    def __init__(self, settings: Settings, fail: bool = False, delay: float = 0.0) -> None:
        super().__init__(settings)
        self.fail = fail
        self.delay = delay
        self.payloads: list[NotificationPayload] = []

    @property
    def provider_name(self) -> str:
        return "recording"

    def is_available(self) -> bool:
        return True

    async def deliver(self, payload: NotificationPayload) -> DeliveryResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.payloads.append(payload)
        if self.fail:
            return DeliveryResult(success=False, error="webhook down", provider=self.provider_name)
        return DeliveryResult(success=True, data={"ok": True}, provider=self.provider_name)

    def companies(self) -> list[str]:
        return [p.company for p in self.payloads]


def make_invoice(
    invoice_id: str,
    company: str = "Acme",
    due_days: int = -5,
    excluded: bool = False,
    **fields: object,
) -> Invoice:
    """Invoice with sensible defaults for the reminder rules under test."""
    defaults: dict[str, object] = {
        "company_email": f"accounts@{company.lower().replace(' ', '')}.example",
        "invoice_no": f"INV-{invoice_id}",
        "invoice_date": "01-09-26",
        "bill_amount": "1000",
        "pending_amount": "1000",
        "balance_amount": "1000 DB",
    }
    defaults.update(fields)
    return Invoice(
        id=invoice_id,
        company_name=company,
        due_days=due_days,
        excluded=excluded,
        **defaults,  # type: ignore[arg-type]
    )
