"""Overdue aggregation over invoice sets.

Pure functions: no I/O, no clock reads. Everything the scheduler, the send
entry points and the status views need to know about "who owes what" is
derived here from the invoice list (and, for status rows, the ledger).
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from billreminder.invoices.schema import Invoice
from billreminder.ledger.schema import LedgerEntry

InvoiceStatusFilter = Literal["all", "overdue", "due", "active"]
CompanyState = Literal["new", "scheduled", "due", "paused", "up_to_date"]


class InvoiceCounts(BaseModel):
    """Scalar projections used for display and gating."""

    total: int
    overdue: int
    due_today: int
    excluded: int
    overdue_companies: int


class CompanyStatus(BaseModel):
    """Reminder status of one company."""

    company: str
    invoice_count: int
    overdue_count: int
    paused: bool
    state: CompanyState
    last_sent: datetime | None = None
    next_reminder_date: datetime | None = None
    next_reminder_in: str | None = None


def group_overdue(invoices: Iterable[Invoice]) -> dict[str, list[Invoice]]:
    """Group overdue, non-excluded invoices by company.

    Companies without a qualifying invoice are absent. Order of first
    appearance is kept for companies and for invoices within a company.
    """
    grouped: dict[str, list[Invoice]] = {}
    for invoice in invoices:
        if invoice.is_overdue:
            grouped.setdefault(invoice.company_name, []).append(invoice)
    return grouped


def count_invoices(invoices: Iterable[Invoice]) -> InvoiceCounts:
    invoices = list(invoices)
    return InvoiceCounts(
        total=len(invoices),
        overdue=sum(1 for inv in invoices if inv.is_overdue),
        due_today=sum(1 for inv in invoices if inv.is_due_today),
        excluded=sum(1 for inv in invoices if inv.excluded),
        overdue_companies=len(group_overdue(invoices)),
    )


def filter_invoices(
    invoices: Iterable[Invoice],
    company: str | None = None,
    status: InvoiceStatusFilter = "all",
) -> list[Invoice]:
    """Filter for invoice listings.

    Args:
        invoices: Invoices to filter
        company: Case-insensitive substring of the company name
        status: overdue (due_days <= 0), due (== 0), active (>= 0) or all

    Returns:
        Matching invoices in input order. Excluded invoices are kept; they are
        hidden from reminders, not from listings.
    """
    needle = company.lower() if company else None
    result = []
    for inv in invoices:
        if needle and needle not in inv.company_name.lower():
            continue
        if status == "overdue" and inv.due_days > 0:
            continue
        if status == "due" and inv.due_days != 0:
            continue
        if status == "active" and inv.due_days < 0:
            continue
        result.append(inv)
    return result


def format_remaining(seconds: float) -> str:
    """Render a countdown as ``{days}d {hours}h {minutes}m``."""
    total_minutes = int(seconds // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    return f"{days}d {hours}h {minutes}m"


def company_statuses(
    invoices: Iterable[Invoice],
    entries: Iterable[LedgerEntry],
    now: datetime,
) -> list[CompanyStatus]:
    """One status row per distinct company in the invoice set."""
    invoices = list(invoices)
    by_company = {entry.company: entry for entry in entries}

    companies: dict[str, list[Invoice]] = {}
    for inv in invoices:
        companies.setdefault(inv.company_name, []).append(inv)

    rows = []
    for company, company_invoices in companies.items():
        entry = by_company.get(company)
        overdue_count = sum(1 for inv in company_invoices if inv.is_overdue)
        paused = bool(entry and entry.reminders_paused)
        next_date = entry.next_reminder_date if entry else None

        remaining = None
        if paused:
            state: CompanyState = "paused"
        elif overdue_count == 0:
            state = "up_to_date"
        elif next_date is None:
            state = "new"
        elif now >= next_date:
            state = "due"
        else:
            state = "scheduled"
            remaining = format_remaining((next_date - now).total_seconds())

        rows.append(
            CompanyStatus(
                company=company,
                invoice_count=sum(1 for inv in company_invoices if not inv.excluded),
                overdue_count=overdue_count,
                paused=paused,
                state=state,
                last_sent=entry.last_sent if entry else None,
                next_reminder_date=next_date,
                next_reminder_in=remaining,
            )
        )
    return rows
