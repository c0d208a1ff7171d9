"""Send orchestrator shared by every reminder path.

Manual single-invoice, manual company, global bulk and automatic sends all go
through ``SendOrchestrator.send``; they differ only in the SendKind tag and in
how the invoice list was selected.

Ordering guarantees per send:
1. Empty selections are rejected before anything is dispatched.
2. The ledger is written only after the provider confirms delivery.
3. A ledger failure after a confirmed delivery is reported as its own status
   (the company was notified, local state is stale) so it can be reconciled.

The whole sequence holds the company's ledger lock, so two triggers for the
same company never interleave, even from services in different processes
sharing a Redis store. The ledger write is a compare-and-set against the entry
read under that lock.
"""

import logging
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Literal

from prometheus_client import Counter, Histogram
from pydantic import BaseModel

from billreminder.invoices.schema import Invoice
from billreminder.ledger.schema import LedgerEntry
from billreminder.ledger.service import ReminderLedger
from billreminder.notifications.base import NotificationProvider
from billreminder.notifications.schema import LineItem, NotificationPayload, SendKind
from billreminder.shared.clock import Clock, format_display_time, utc_now
from billreminder.shared.config import Settings
from billreminder.shared.errors import PersistenceError

logger = logging.getLogger(__name__)

reminders_sent_total = Counter(
    "reminders_sent_total",
    "Reminder send attempts by kind and outcome",
    ["kind", "status"],
)

reminder_dispatch_duration_seconds = Histogram(
    "reminder_dispatch_duration_seconds",
    "Time spent waiting for the notification provider",
    ["provider"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

SendStatus = Literal[
    "sent", "skipped", "validation_failed", "dispatch_failed", "persistence_failed"
]
SendGuard = Callable[[LedgerEntry | None], bool]


class SendResult(BaseModel):
    """Outcome of one send.

    Attributes:
        company: Company the reminder was addressed to
        kind: What triggered the send
        status: sent, skipped (guard declined), validation_failed (nothing to
            send), dispatch_failed (provider failed, ledger untouched) or
            persistence_failed (provider succeeded, ledger write failed)
        invoice_count: Invoices in the selection
        entry: Ledger entry written by a successful send
        notified: Whether the company actually received the reminder
        error: Error message for failed sends
    """

    company: str
    kind: SendKind
    status: SendStatus
    invoice_count: int = 0
    entry: LedgerEntry | None = None
    notified: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == "sent"


class SendOrchestrator:
    def __init__(
        self,
        ledger: ReminderLedger,
        provider: NotificationProvider,
        settings: Settings,
        clock: Clock = utc_now,
    ) -> None:
        self.ledger = ledger
        self.provider = provider
        self.settings = settings
        self.clock = clock
        self.interval = timedelta(days=settings.reminder_interval_days)

    def build_payload(
        self,
        company: str,
        invoices: list[Invoice],
        kind: SendKind,
        triggered_at: str,
    ) -> NotificationPayload:
        """Build the reminder payload.

        The destination is the first invoice's address; one send goes to one
        company. Bulk and automatic sends report ``days_overdue`` as a positive
        number, manual sends pass ``due_days`` through.
        """
        items = []
        for inv in invoices:
            item = LineItem(
                invoice_no=inv.invoice_no, invoice_date=inv.invoice_date, **inv.amounts()
            )
            if kind.reports_days_overdue:
                item.days_overdue = abs(inv.due_days)
            else:
                item.due_days = inv.due_days
            items.append(item)

        return NotificationPayload(
            type=kind,
            company=company,
            email=invoices[0].company_email,
            invoice_count=len(invoices),
            invoices=items,
            triggered_at=triggered_at,
            is_automatic=kind.is_automatic,
        )

    async def send(
        self,
        company: str,
        invoices: list[Invoice],
        kind: SendKind,
        *,
        guard: SendGuard | None = None,
    ) -> SendResult:
        """Send one reminder and record it in the ledger on success.

        Args:
            company: Company to remind
            invoices: Selected invoices, all addressed to the same company
            kind: What triggered the send
            guard: Optional check on the current ledger entry, evaluated under
                the company lock; returning False skips the send

        Returns:
            SendResult describing the outcome
        """
        if not invoices:
            logger.warning(f"No invoices to send for {company} ({kind})")
            return self._finish(
                SendResult(
                    company=company,
                    kind=kind,
                    status="validation_failed",
                    error=f"No invoices to send for {company}",
                )
            )

        try:
            async with self.ledger.lock(company):
                return self._finish(await self._send_locked(company, invoices, kind, guard))
        except PersistenceError as e:
            logger.error(f"Could not lock ledger for {company}, not sending: {e}")
            return self._finish(
                SendResult(
                    company=company,
                    kind=kind,
                    status="persistence_failed",
                    invoice_count=len(invoices),
                    error=str(e),
                )
            )

    async def _send_locked(
        self,
        company: str,
        invoices: list[Invoice],
        kind: SendKind,
        guard: SendGuard | None,
    ) -> SendResult:
        try:
            current = await self.ledger.get(company)
        except PersistenceError as e:
            logger.error(f"Could not read ledger for {company}, not sending: {e}")
            return SendResult(
                company=company,
                kind=kind,
                status="persistence_failed",
                invoice_count=len(invoices),
                error=str(e),
            )

        if guard is not None and not guard(current):
            logger.info(f"Skipping {kind} reminder for {company}: no longer due")
            return SendResult(
                company=company,
                kind=kind,
                status="skipped",
                invoice_count=len(invoices),
            )

        return await self._dispatch_and_record(company, invoices, kind, current)

    async def _dispatch_and_record(
        self,
        company: str,
        invoices: list[Invoice],
        kind: SendKind,
        current: LedgerEntry | None,
    ) -> SendResult:
        now = self.clock()
        payload = self.build_payload(
            company, invoices, kind, format_display_time(now, self.settings.display_timezone)
        )

        start = time.time()
        delivery = await self.provider.deliver(payload)
        reminder_dispatch_duration_seconds.labels(provider=self.provider.provider_name).observe(
            time.time() - start
        )

        if not delivery.success:
            logger.error(f"Reminder to {company} ({kind}) not delivered: {delivery.error}")
            return SendResult(
                company=company,
                kind=kind,
                status="dispatch_failed",
                invoice_count=len(invoices),
                error=delivery.error or "Notification provider reported failure",
            )

        entry = LedgerEntry(
            company=company,
            last_sent=now,
            invoice_count=len(invoices),
            next_reminder_date=now + self.interval,
            reminders_paused=False,
        )
        try:
            stored = await self.ledger.upsert(entry, based_on=current)
        except PersistenceError as e:
            logger.error(
                f"Reminder to {company} ({kind}) was delivered but the ledger write failed; "
                f"ledger is stale and needs manual reconciliation: {e}"
            )
            return SendResult(
                company=company,
                kind=kind,
                status="persistence_failed",
                invoice_count=len(invoices),
                notified=True,
                error=str(e),
            )

        logger.info(
            f"Sent {kind} reminder to {company} with {len(invoices)} invoice(s); "
            f"next reminder at {stored.next_reminder_display(self.settings.display_timezone)}"
        )
        return SendResult(
            company=company,
            kind=kind,
            status="sent",
            invoice_count=len(invoices),
            entry=stored,
            notified=True,
        )

    @staticmethod
    def _finish(result: SendResult) -> SendResult:
        reminders_sent_total.labels(kind=result.kind.value, status=result.status).inc()
        return result
