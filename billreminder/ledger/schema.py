"""Reminder ledger models."""

from datetime import datetime

from pydantic import BaseModel, Field

from billreminder.shared.clock import format_display_time


class LedgerEntry(BaseModel):
    """Per-company reminder history and schedule.

    Attributes:
        company: Company name, the identity of the entry
        last_sent: Time of the most recent successful send (UTC)
        invoice_count: Invoices included in the most recent send
        next_reminder_date: When the next automatic reminder is due; None means
            no cycle is scheduled yet
        reminders_paused: Automatic reminders suppressed for this company
        version: Monotonic write counter used to reject stale writes
    """

    company: str
    last_sent: datetime | None = None
    invoice_count: int = Field(0, ge=0)
    next_reminder_date: datetime | None = None
    reminders_paused: bool = False
    version: int = Field(0, ge=0)

    def last_sent_display(self, timezone: str) -> str | None:
        if self.last_sent is None:
            return None
        return format_display_time(self.last_sent, timezone)

    def next_reminder_display(self, timezone: str) -> str | None:
        if self.next_reminder_date is None:
            return None
        return format_display_time(self.next_reminder_date, timezone)
