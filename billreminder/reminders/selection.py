"""Invoice selection strategies for the send entry points.

Each strategy turns the full invoice set into ``(company, invoices)`` targets
for the orchestrator. The orchestrator itself does not know how a target was
chosen; only the send kind differs.
"""

from collections.abc import Iterable

from billreminder.invoices.schema import Invoice
from billreminder.reminders.aggregator import group_overdue

SendTarget = tuple[str, list[Invoice]]


def select_invoice(invoices: Iterable[Invoice], invoice_id: str) -> SendTarget | None:
    """A single invoice, regardless of its due state. None if unknown."""
    for inv in invoices:
        if inv.id == invoice_id:
            return inv.company_name, [inv]
    return None


def select_company(invoices: Iterable[Invoice], company: str) -> SendTarget:
    """Every non-excluded invoice of one company, overdue or not."""
    return company, [inv for inv in invoices if inv.company_name == company and not inv.excluded]


def select_overdue(invoices: Iterable[Invoice]) -> list[SendTarget]:
    """One target per company with overdue, non-excluded invoices."""
    return list(group_overdue(invoices).items())
