"""Reminder service facade.

The single object handed to the HTTP API, the queue worker and the CLI. It
holds the only references to the invoice store and the ledger; consumers never
keep their own copies of invoice or ledger state.
"""

import logging

from prometheus_client import Counter
from pydantic import BaseModel, Field
from redis.asyncio import Redis

from billreminder.invoices.importer import parse_spreadsheet
from billreminder.invoices.schema import Invoice, InvoiceUpdate
from billreminder.invoices.store import InMemoryInvoiceStore, InvoiceStore, RedisInvoiceStore
from billreminder.ledger.schema import LedgerEntry
from billreminder.ledger.service import ReminderLedger
from billreminder.ledger.store import InMemoryLedgerStore, LedgerStore, RedisLedgerStore
from billreminder.notifications.base import NotificationProvider
from billreminder.notifications.factory import create_notification_provider
from billreminder.notifications.schema import SendKind
from billreminder.reminders.aggregator import (
    CompanyStatus,
    InvoiceCounts,
    InvoiceStatusFilter,
    company_statuses,
    count_invoices,
    filter_invoices,
)
from billreminder.reminders.orchestrator import SendOrchestrator, SendResult
from billreminder.reminders.scheduler import ReminderScheduler
from billreminder.reminders.selection import select_company, select_invoice, select_overdue
from billreminder.shared.clock import Clock, utc_now
from billreminder.shared.config import Settings
from billreminder.shared.redis_client import create_redis_client

logger = logging.getLogger(__name__)

invoices_imported_total = Counter(
    "invoices_imported_total",
    "Invoices stored from spreadsheet imports",
)


class BulkSendReport(BaseModel):
    """Outcome of a global overdue send."""

    companies: int = 0
    sent: int = 0
    failed: int = 0
    results: list[SendResult] = Field(default_factory=list)


class ReminderService:
    def __init__(
        self,
        settings: Settings,
        invoice_store: InvoiceStore,
        ledger_store: LedgerStore,
        provider: NotificationProvider,
        clock: Clock = utc_now,
        redis: Redis | None = None,
    ) -> None:
        self.settings = settings
        self.clock = clock
        self.invoices = invoice_store
        self.ledger = ReminderLedger(ledger_store)
        self.provider = provider
        self.orchestrator = SendOrchestrator(self.ledger, provider, settings, clock)
        self.scheduler = ReminderScheduler(
            invoice_store, self.ledger, self.orchestrator, settings, clock
        )
        self._redis = redis

    # Invoices

    async def list_invoices(
        self, company: str | None = None, status: InvoiceStatusFilter = "all"
    ) -> list[Invoice]:
        return filter_invoices(await self.invoices.list_all(), company=company, status=status)

    async def import_spreadsheet(self, content: bytes, filename: str) -> list[Invoice]:
        """Parse a spreadsheet and store its invoices.

        Raises:
            SpreadsheetImportError: If nothing usable was parsed (nothing is stored)
            PersistenceError: If the store rejects the batch
        """
        parsed = parse_spreadsheet(content, filename)
        stored = await self.invoices.insert_many(parsed)
        invoices_imported_total.inc(len(stored))
        logger.info(f"Imported {len(stored)} invoices from {filename}")
        return stored

    async def update_invoice(self, invoice_id: str, update: InvoiceUpdate) -> Invoice | None:
        return await self.invoices.update(invoice_id, update.changes())

    async def toggle_exclude(self, invoice_id: str) -> Invoice | None:
        invoice = await self.invoices.get(invoice_id)
        if invoice is None:
            return None
        return await self.invoices.update(invoice_id, {"excluded": not invoice.excluded})

    async def delete_invoice(self, invoice_id: str) -> bool:
        return await self.invoices.delete(invoice_id)

    async def clear_invoices(self) -> int:
        return await self.invoices.clear()

    # Views

    async def summary(self) -> InvoiceCounts:
        return count_invoices(await self.invoices.list_all())

    async def company_statuses(self) -> list[CompanyStatus]:
        return company_statuses(
            await self.invoices.list_all(), await self.ledger.list_all(), self.clock()
        )

    async def ledger_history(self) -> list[LedgerEntry]:
        return await self.ledger.list_all()

    # Sends

    async def send_invoice(self, invoice_id: str) -> SendResult | None:
        """Send a reminder for one invoice. None if the invoice does not exist."""
        target = select_invoice(await self.invoices.list_all(), invoice_id)
        if target is None:
            return None
        company, invoices = target
        return await self.orchestrator.send(company, invoices, SendKind.SINGLE_INVOICE)

    async def send_company(self, company: str) -> SendResult:
        """Send every non-excluded invoice of a company in one reminder."""
        company, invoices = select_company(await self.invoices.list_all(), company)
        return await self.orchestrator.send(company, invoices, SendKind.COMPANY_BULK)

    async def send_all_overdue(self) -> BulkSendReport:
        """Send one overdue reminder to every company with overdue invoices."""
        report = BulkSendReport()
        for company, invoices in select_overdue(await self.invoices.list_all()):
            result = await self.orchestrator.send(company, invoices, SendKind.GLOBAL_BULK)
            report.companies += 1
            report.results.append(result)
            if result.success:
                report.sent += 1
            else:
                report.failed += 1

        logger.info(f"Bulk overdue send: {report.sent} of {report.companies} companies reached")
        return report

    async def toggle_pause(self, company: str) -> LedgerEntry:
        return await self.ledger.toggle_pause(company)

    # Lifecycle

    async def aclose(self) -> None:
        await self.scheduler.stop()
        await self.provider.aclose()
        if self._redis is not None:
            await self._redis.aclose()


def create_reminder_service(
    settings: Settings,
    clock: Clock = utc_now,
    provider: NotificationProvider | None = None,
) -> ReminderService:
    """Wire a ReminderService from configuration.

    Args:
        settings: Application settings (storage_backend selects the stores)
        clock: Time source shared by the orchestrator and the scheduler
        provider: Notification provider override; defaults to the configured one

    Returns:
        Ready-to-use ReminderService
    """
    provider = provider or create_notification_provider(settings)

    if settings.storage_backend == "redis":
        redis = create_redis_client(settings)
        service = ReminderService(
            settings,
            RedisInvoiceStore(redis, settings),
            RedisLedgerStore(redis, settings),
            provider,
            clock=clock,
            redis=redis,
        )
    else:
        service = ReminderService(
            settings, InMemoryInvoiceStore(), InMemoryLedgerStore(), provider, clock=clock
        )

    logger.info(f"Reminder service created with {settings.storage_backend} storage")
    return service
