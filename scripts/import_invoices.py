"""Import invoices from a spreadsheet into the configured store.

Parses the sheet with the same importer the API uses. With --preview the
parsed invoices and the overdue summary are printed and nothing is stored;
otherwise they are written to the store selected by APP_STORAGE_BACKEND
(use redis so the API and worker see them).

Usage:
    python -m scripts.import_invoices invoices.xlsx --preview 5
    APP_STORAGE_BACKEND=redis python -m scripts.import_invoices invoices.xlsx
"""

import asyncio
import json
import logging
from pathlib import Path

from billreminder.invoices.importer import parse_spreadsheet
from billreminder.invoices.schema import Invoice
from billreminder.reminders.aggregator import count_invoices, group_overdue
from billreminder.reminders.service import create_reminder_service
from billreminder.shared.config import Settings, get_settings
from billreminder.shared.errors import SpreadsheetImportError

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def load_spreadsheet(path: Path) -> list[Invoice]:
    """Read and parse a spreadsheet file.

    Raises:
        FileNotFoundError: If the file does not exist
        SpreadsheetImportError: If the file has no usable rows
    """
    if not path.exists():
        raise FileNotFoundError(f"Spreadsheet not found: {path}")
    return parse_spreadsheet(path.read_bytes(), path.name)


def summarize(invoices: list[Invoice]) -> dict:
    """Counts plus overdue invoice numbers per company."""
    counts = count_invoices(invoices)
    return {
        **counts.model_dump(),
        "overdue_by_company": {
            company: [inv.invoice_no for inv in group]
            for company, group in group_overdue(invoices).items()
        },
    }


async def store_invoices(invoices: list[Invoice], settings: Settings) -> int:
    service = create_reminder_service(settings)
    try:
        stored = await service.invoices.insert_many(invoices)
    finally:
        await service.aclose()
    return len(stored)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Import invoices from a spreadsheet")
    parser.add_argument("path", type=Path, help="Spreadsheet file (.xlsx or .csv)")
    parser.add_argument(
        "--preview",
        type=int,
        default=0,
        help="Print N parsed invoices and the summary without storing anything",
    )

    args = parser.parse_args()

    try:
        parsed = load_spreadsheet(args.path)
    except (FileNotFoundError, SpreadsheetImportError) as e:
        logger.error(str(e))
        raise SystemExit(1) from e

    if args.preview > 0:
        print(f"\n=== Preview of {min(args.preview, len(parsed))} invoices ===\n")
        for invoice in parsed[: args.preview]:
            print(invoice.model_dump_json(indent=2))
            print("-" * 40)
        print(json.dumps(summarize(parsed), indent=2))
    else:
        count = asyncio.run(store_invoices(parsed, get_settings()))
        logger.info(f"Stored {count} invoices from {args.path}")
