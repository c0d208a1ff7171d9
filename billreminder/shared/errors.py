"""Error types shared across the reminder service."""


class ReminderError(Exception):
    """Base class for all reminder service errors."""


class PersistenceError(ReminderError):
    """An invoice or ledger store operation failed."""


class LedgerConflictError(PersistenceError):
    """A ledger write was based on a version that is no longer the stored one."""

    def __init__(self, company: str, stored_version: int, expected_version: int) -> None:
        super().__init__(
            f"Ledger entry for '{company}' is at version {stored_version}, "
            f"refusing write based on version {expected_version}"
        )
        self.company = company
        self.stored_version = stored_version
        self.expected_version = expected_version


class SpreadsheetImportError(ReminderError):
    """A spreadsheet could not be read or produced no usable rows."""
