"""Spreadsheet import: raw tabular rows to Invoice records.

Accepts .xlsx (via openpyxl) and .csv. Column names vary between exports, so
every field is looked up through a list of accepted header spellings.
"""

import io
import logging
import math
import numbers
import re
import time
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Any

import pandas as pd

from billreminder.invoices.schema import Invoice
from billreminder.shared.errors import SpreadsheetImportError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".xlsx", ".csv"}

COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "company_name": ("Company Name", "CompanyName", "Party Name", "PartyName"),
    "company_email": ("Company Email", "CompanyEmail", "Email"),
    "invoice_no": ("Invoice No.", "Invoice No", "InvoiceNo"),
    "invoice_date": ("Invoice Date", "InvoiceDate"),
    "due_days": ("Due Days", "DueDays"),
    "bill_amount": ("Bill Amount", "BillAmount"),
    "pending_amount": ("Pending Amount", "PendingAmount"),
    "balance_amount": ("Balance Amount", "BalanceAmount"),
    "assessable_amount": ("GST Assessable Amount", "Assessable Value", "AssessableValue"),
    "sgst_amount": ("SGST", "State Tax", "SGST Amount"),
    "cgst_amount": ("CGST", "Central Tax", "CGST Amount"),
    "igst_amount": ("IGST", "Integrated Tax", "IGST Amount"),
}

_AMOUNT_COLUMNS = (
    "bill_amount",
    "pending_amount",
    "balance_amount",
    "assessable_amount",
    "sgst_amount",
    "cgst_amount",
    "igst_amount",
)

# Day zero of the Excel 1900 date system (accounts for the 1900 leap-year bug)
_EXCEL_EPOCH = date(1899, 12, 30)
_LEADING_INT = re.compile(r"^\s*([-+]?\d+)")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return isinstance(value, str) and not value.strip()


def get_row_value(row: dict[str, Any], field: str) -> Any:
    """First non-blank value among the accepted headers for a field."""
    for header in COLUMN_ALIASES[field]:
        value = row.get(header)
        if not _is_blank(value):
            return value
    return None


def excel_date_to_string(value: Any) -> str:
    """Render an invoice date cell as ``dd-mm-yy``.

    Text cells are kept verbatim; numeric cells are Excel serial dates.
    """
    if _is_blank(value):
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, datetime | date):
        return value.strftime("%d-%m-%y")
    if isinstance(value, numbers.Real):
        return (_EXCEL_EPOCH + timedelta(days=math.floor(value))).strftime("%d-%m-%y")
    return str(value)


def parse_due_days(value: Any) -> int:
    """Leading integer of the cell, 0 when there is none."""
    if _is_blank(value):
        return 0
    if isinstance(value, numbers.Real):
        return int(value)
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else 0


def _text(value: Any) -> str:
    if _is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def read_amount(value: Any) -> str | None:
    """Amount as display text, keeping DB/CR suffixes."""
    return _text(value) or None


def _read_frame(content: bytes, filename: str) -> pd.DataFrame:
    ext = Path(filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise SpreadsheetImportError(
            f"Unsupported file type '{ext or filename}'. Use .xlsx or .csv"
        )
    try:
        if ext == ".csv":
            df = pd.read_csv(io.BytesIO(content), dtype=object)
        else:
            df = pd.read_excel(io.BytesIO(content), engine="openpyxl")
    except Exception as e:
        logger.warning(f"Could not read spreadsheet {filename}: {e}")
        raise SpreadsheetImportError(
            f"Error reading {filename}. Check the format and column names."
        ) from e

    df.columns = [str(c).strip() for c in df.columns]
    return df


def rows_to_invoices(rows: list[dict[str, Any]]) -> list[Invoice]:
    """Convert header-keyed rows to invoices, dropping blank rows."""
    batch = int(time.time() * 1000)
    created_at = datetime.now(UTC)
    invoices = []

    for index, row in enumerate(rows):
        company = _text(get_row_value(row, "company_name"))
        invoice_no = _text(get_row_value(row, "invoice_no"))
        if not company and not invoice_no:
            continue

        amounts = {field: read_amount(get_row_value(row, field)) for field in _AMOUNT_COLUMNS}
        invoices.append(
            Invoice(
                id=f"INV-{batch}-{index}",
                company_name=company,
                company_email=_text(get_row_value(row, "company_email")),
                invoice_no=invoice_no,
                invoice_date=excel_date_to_string(get_row_value(row, "invoice_date")),
                due_days=parse_due_days(get_row_value(row, "due_days")),
                excluded=False,
                created_at=created_at,
                **amounts,
            )
        )
    return invoices


def parse_spreadsheet(content: bytes, filename: str) -> list[Invoice]:
    """Parse the first sheet of a spreadsheet into invoices.

    Args:
        content: Raw file bytes
        filename: Original file name; its extension selects the reader

    Returns:
        Parsed invoices, at least one

    Raises:
        SpreadsheetImportError: If the file cannot be read or has no usable rows
    """
    if not content:
        raise SpreadsheetImportError("Empty file")

    df = _read_frame(content, filename)
    invoices = rows_to_invoices(df.to_dict(orient="records"))
    if not invoices:
        raise SpreadsheetImportError(f"No data found in {filename}")

    logger.info(f"Parsed {len(invoices)} invoices from {filename}")
    return invoices
