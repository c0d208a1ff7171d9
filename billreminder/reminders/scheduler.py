"""Automatic reminder scheduler.

Every tick evaluates each company with overdue, non-excluded invoices:

1. reminders paused            -> skip, no send, no ledger change
2. next reminder date reached  -> automatic send
3. never contacted             -> automatic send (first contact)
4. next reminder in the future -> wait

The loop is a polling cadence, not an exact-delivery guarantee: a reminder
that falls due between ticks goes out on the next tick. The clock is
injectable so multi-week cycles can be driven without waiting.
"""

import asyncio
import contextlib
import logging
from datetime import datetime
from enum import StrEnum

from prometheus_client import Counter
from pydantic import BaseModel, Field

from billreminder.invoices.schema import Invoice
from billreminder.invoices.store import InvoiceStore
from billreminder.ledger.schema import LedgerEntry
from billreminder.ledger.service import ReminderLedger
from billreminder.notifications.schema import SendKind
from billreminder.reminders.aggregator import group_overdue
from billreminder.reminders.orchestrator import SendOrchestrator, SendResult
from billreminder.shared.clock import Clock, utc_now
from billreminder.shared.config import Settings

logger = logging.getLogger(__name__)

scheduler_ticks_total = Counter(
    "reminder_scheduler_ticks_total",
    "Automatic reminder sweeps by outcome",
    ["status"],  # completed, failed
)


class ReminderDecision(StrEnum):
    SKIP_PAUSED = "skip_paused"
    SEND_DUE = "send_due"
    SEND_FIRST_CONTACT = "send_first_contact"
    WAIT = "wait"

    @property
    def should_send(self) -> bool:
        return self in (ReminderDecision.SEND_DUE, ReminderDecision.SEND_FIRST_CONTACT)


def decide(entry: LedgerEntry | None, now: datetime) -> ReminderDecision:
    """Decide what the automatic sweep does for one company with overdue invoices.

    An entry without a scheduled date (created by pausing a company that was
    never contacted, then resuming it) is treated like first contact.
    """
    if entry is not None and entry.reminders_paused:
        return ReminderDecision.SKIP_PAUSED
    if entry is not None and entry.next_reminder_date is not None:
        if now >= entry.next_reminder_date:
            return ReminderDecision.SEND_DUE
        return ReminderDecision.WAIT
    return ReminderDecision.SEND_FIRST_CONTACT


class TickReport(BaseModel):
    """Summary of one sweep."""

    started_at: datetime
    evaluated: int = 0
    sent: int = 0
    paused: int = 0
    waiting: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[SendResult] = Field(default_factory=list)


class ReminderScheduler:
    def __init__(
        self,
        invoice_store: InvoiceStore,
        ledger: ReminderLedger,
        orchestrator: SendOrchestrator,
        settings: Settings,
        clock: Clock = utc_now,
    ) -> None:
        self.invoice_store = invoice_store
        self.ledger = ledger
        self.orchestrator = orchestrator
        self.settings = settings
        self.clock = clock
        self._task: asyncio.Task[None] | None = None

    async def tick(self) -> TickReport:
        """Run one sweep over all companies with overdue invoices.

        A failure for one company is logged and counted; evaluation continues
        with the next company.
        """
        report = TickReport(started_at=self.clock())
        overdue = group_overdue(await self.invoice_store.list_all())
        entries = {entry.company: entry for entry in await self.ledger.list_all()}

        for company, invoices in overdue.items():
            report.evaluated += 1
            try:
                await self._evaluate(company, invoices, entries.get(company), report)
            except Exception as e:
                report.failed += 1
                logger.exception(f"Automatic reminder evaluation failed for {company}: {e}")

        if report.sent or report.failed:
            logger.info(
                f"Reminder sweep: {report.evaluated} companies evaluated, {report.sent} sent, "
                f"{report.paused} paused, {report.waiting} waiting, {report.failed} failed"
            )
        return report

    async def _evaluate(
        self,
        company: str,
        invoices: list[Invoice],
        entry: LedgerEntry | None,
        report: TickReport,
    ) -> None:
        decision = decide(entry, report.started_at)
        if decision is ReminderDecision.SKIP_PAUSED:
            report.paused += 1
            return
        if decision is ReminderDecision.WAIT:
            report.waiting += 1
            return

        if decision is ReminderDecision.SEND_FIRST_CONTACT:
            logger.info(f"First automatic reminder to {company}")
        else:
            logger.info(f"{self.settings.reminder_interval_days}-day reminder due for {company}")

        # Re-checked under the company lock: a manual send may have landed since
        # the entries were read.
        result = await self.orchestrator.send(
            company,
            invoices,
            SendKind.AUTOMATIC,
            guard=lambda current: decide(current, self.clock()).should_send,
        )
        report.results.append(result)
        if result.status == "sent":
            report.sent += 1
        elif result.status == "skipped":
            report.skipped += 1
        else:
            report.failed += 1

    async def run_forever(self) -> None:
        """Tick every ``scheduler_tick_seconds`` until cancelled."""
        interval = self.settings.scheduler_tick_seconds
        logger.info(f"Reminder scheduler started (every {interval:g}s)")
        while True:
            try:
                await self.tick()
                scheduler_ticks_total.labels(status="completed").inc()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                scheduler_ticks_total.labels(status="failed").inc()
                logger.exception(f"Reminder sweep failed: {e}")
            await asyncio.sleep(interval)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Start the polling loop as a background task on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="reminder-scheduler")
        return self._task

    async def stop(self) -> None:
        """Cancel the polling loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Reminder scheduler stopped")
