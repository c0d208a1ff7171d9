"""Reminder ledger: the per-company reminder state machine store.

Wraps a LedgerStore with version assignment and per-company locking. All
read-decide-write sequences for one company (sends, pause toggles) run under
``lock(company)``, which serializes them inside this process and, through the
store's lock, across every service sharing the store.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from billreminder.ledger.schema import LedgerEntry
from billreminder.ledger.store import LedgerStore
from billreminder.shared.locks import KeyedLock

logger = logging.getLogger(__name__)

_NEVER_SENT = datetime.min.replace(tzinfo=UTC)


class ReminderLedger:
    """Mapping from company name to LedgerEntry."""

    def __init__(self, store: LedgerStore) -> None:
        self.store = store
        self._locks = KeyedLock()

    @asynccontextmanager
    async def lock(self, company: str) -> AsyncIterator[None]:
        """Hold the lock serializing state changes for one company.

        Raises:
            PersistenceError: If the store lock cannot be acquired
        """
        async with self._locks.hold(company), self.store.lock(company):
            yield

    @property
    def held_locks(self) -> int:
        return len(self._locks)

    async def get(self, company: str) -> LedgerEntry | None:
        return await self.store.get(company)

    async def list_all(self) -> list[LedgerEntry]:
        """All entries, most recently contacted first."""
        entries = await self.store.list_all()
        return sorted(
            entries,
            key=lambda e: e.last_sent or _NEVER_SENT,
            reverse=True,
        )

    async def upsert(self, entry: LedgerEntry, based_on: LedgerEntry | None) -> LedgerEntry:
        """Replace the company's entry with one versioned after ``based_on``.

        ``based_on`` is the entry the caller read under ``lock(entry.company)``
        (None when the company had none). The write is refused with
        LedgerConflictError if the stored entry moved on since that read.
        Store failures propagate as PersistenceError and leave the previous
        entry in place.
        """
        expected = based_on.version if based_on else 0
        stored = await self.store.upsert(
            entry.model_copy(update={"version": expected + 1}), expected
        )
        logger.debug(f"Ledger entry for {entry.company} written at version {stored.version}")
        return stored

    async def toggle_pause(self, company: str) -> LedgerEntry:
        """Flip reminders_paused for a company.

        A company that was never contacted gets a minimal paused entry with no
        scheduled reminder. The schedule of an existing entry is left untouched.
        """
        async with self.lock(company):
            current = await self.store.get(company)
            if current is None:
                toggled = LedgerEntry(company=company, reminders_paused=True)
            else:
                toggled = current.model_copy(
                    update={"reminders_paused": not current.reminders_paused}
                )
            entry = await self.upsert(toggled, based_on=current)

        state = "paused" if entry.reminders_paused else "resumed"
        logger.info(f"Reminders {state} for {company}")
        return entry
