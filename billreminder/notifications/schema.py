"""Reminder notification payload.

Serialized with camelCase keys; the webhook consumer that renders and mails
the reminder reads them under those names.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SendKind(StrEnum):
    """What triggered a send. Values are the payload ``type`` tags."""

    SINGLE_INVOICE = "single_invoice"
    COMPANY_BULK = "company_bulk"
    GLOBAL_BULK = "bulk_overdue"
    AUTOMATIC = "auto_reminder_7day"

    @property
    def is_automatic(self) -> bool:
        return self is SendKind.AUTOMATIC

    @property
    def reports_days_overdue(self) -> bool:
        """Bulk and automatic sends only carry overdue invoices."""
        return self in (SendKind.GLOBAL_BULK, SendKind.AUTOMATIC)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LineItem(_CamelModel):
    """One invoice inside a reminder."""

    invoice_no: str
    invoice_date: str
    bill_amount: str | None = None
    pending_amount: str | None = None
    balance_amount: str | None = None
    assessable_amount: str | None = None
    sgst_amount: str | None = None
    cgst_amount: str | None = None
    igst_amount: str | None = None
    due_days: int | None = None
    days_overdue: int | None = None


class NotificationPayload(_CamelModel):
    type: SendKind
    company: str
    email: str
    invoice_count: int
    invoices: list[LineItem]
    triggered_at: str
    is_automatic: bool

    def to_json(self) -> dict[str, Any]:
        """JSON body with camelCase keys and empty fields dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DeliveryResult(BaseModel):
    """Result of a delivery attempt.

    Attributes:
        success: Whether the provider confirmed delivery
        data: Response body returned by the receiver, if any
        error: Error message if delivery failed
        provider: Name of provider that attempted delivery
    """

    success: bool
    data: Any = None
    error: str | None = None
    provider: str
