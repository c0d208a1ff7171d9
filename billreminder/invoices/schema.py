"""Invoice data models.

Amounts are kept as display strings: spreadsheets exported from accounting
packages carry ``DB``/``CR`` suffixes that must reach the recipient unchanged.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

AMOUNT_FIELDS = (
    "bill_amount",
    "pending_amount",
    "balance_amount",
    "assessable_amount",
    "sgst_amount",
    "cgst_amount",
    "igst_amount",
)


class Invoice(BaseModel):
    """A single imported invoice.

    Supports two amount layouts: outstanding (bill/pending/balance) and GST
    (bill/assessable/state tax/central tax/integrated tax).
    """

    id: str = Field(..., description="Unique invoice record identifier")
    company_name: str = Field("", description="Billed company, the reminder grouping key")
    company_email: str = Field("", description="Reminder destination address")
    invoice_no: str = Field("", description="Invoice number as printed")
    invoice_date: str = Field("", description="Invoice date display string")
    due_days: int = Field(
        0, description="Days until due: positive remaining, zero due today, negative overdue"
    )

    # Outstanding layout
    bill_amount: str | None = Field(None, description="Invoice amount")
    pending_amount: str | None = Field(None, description="Amount pending")
    balance_amount: str | None = Field(None, description="Running balance")

    # GST layout
    assessable_amount: str | None = Field(None, description="GST assessable value")
    sgst_amount: str | None = Field(None, description="State tax")
    cgst_amount: str | None = Field(None, description="Central tax")
    igst_amount: str | None = Field(None, description="Integrated tax")

    excluded: bool = Field(False, description="Removed from all reminder computations")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_overdue(self) -> bool:
        return self.due_days <= 0 and not self.excluded

    @property
    def is_due_today(self) -> bool:
        return self.due_days == 0 and not self.excluded

    def amounts(self) -> dict[str, str]:
        """Amount fields that carry a value, in declaration order."""
        return {
            name: value
            for name in AMOUNT_FIELDS
            if (value := getattr(self, name)) is not None and value != ""
        }


class InvoiceUpdate(BaseModel):
    """Partial invoice edit. Only fields explicitly set are applied."""

    company_name: str | None = None
    company_email: str | None = None
    invoice_no: str | None = None
    invoice_date: str | None = None
    due_days: int | None = None
    bill_amount: str | None = None
    pending_amount: str | None = None
    balance_amount: str | None = None
    assessable_amount: str | None = None
    sgst_amount: str | None = None
    cgst_amount: str | None = None
    igst_amount: str | None = None
    excluded: bool | None = None

    @field_validator(
        "company_name",
        "company_email",
        "invoice_no",
        "invoice_date",
        "due_days",
        "excluded",
    )
    @classmethod
    def not_null(cls, value: object) -> object:
        """Amounts may be cleared with null; identity and due fields may not."""
        if value is None:
            raise ValueError("may not be null")
        return value

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)
