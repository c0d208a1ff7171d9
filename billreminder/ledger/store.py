"""Ledger entry stores keyed by company name.

Upserts replace the whole entry for a company and are compare-and-set: the
caller names the version its change is based on (0 for a company with no
entry) and the write is refused when the stored version differs. Each store
also provides a per-company lock; the Redis lock is shared by every process
using the same Redis (API and arq worker).
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from redis.asyncio import Redis
from redis.exceptions import RedisError

from billreminder.ledger.schema import LedgerEntry
from billreminder.shared.config import Settings
from billreminder.shared.errors import LedgerConflictError, PersistenceError
from billreminder.shared.locks import KeyedLock
from billreminder.shared.redis_client import key

logger = logging.getLogger(__name__)

# Returns -1 when the write was applied, otherwise the stored version.
_COMPARE_AND_SET = """
local current = redis.call('HGET', KEYS[1], ARGV[1])
local stored = 0
if current then
    stored = cjson.decode(current)['version'] or 0
end
if stored ~= tonumber(ARGV[3]) then
    return stored
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
return -1
"""


class LedgerStore(ABC):
    """Async interface over per-company ledger entries."""

    @abstractmethod
    async def list_all(self) -> list[LedgerEntry]:
        pass

    @abstractmethod
    async def get(self, company: str) -> LedgerEntry | None:
        pass

    @abstractmethod
    async def upsert(self, entry: LedgerEntry, expected_version: int) -> LedgerEntry:
        """Replace the entry for entry.company if it is still at expected_version.

        Raises:
            LedgerConflictError: If the stored version is not expected_version
            PersistenceError: If the backend write fails
        """
        pass

    @abstractmethod
    def lock(self, company: str) -> AbstractAsyncContextManager[None]:
        """Exclusive section for one company's read-decide-write sequences.

        Raises:
            PersistenceError: If the lock cannot be acquired
        """
        pass


class InMemoryLedgerStore(LedgerStore):
    def __init__(self) -> None:
        self._entries: dict[str, LedgerEntry] = {}
        self._locks = KeyedLock()

    async def list_all(self) -> list[LedgerEntry]:
        return list(self._entries.values())

    async def get(self, company: str) -> LedgerEntry | None:
        return self._entries.get(company)

    async def upsert(self, entry: LedgerEntry, expected_version: int) -> LedgerEntry:
        current = self._entries.get(entry.company)
        stored_version = current.version if current else 0
        if stored_version != expected_version:
            raise LedgerConflictError(entry.company, stored_version, expected_version)
        self._entries[entry.company] = entry
        return entry

    def lock(self, company: str) -> AbstractAsyncContextManager[None]:
        return self._locks.hold(company)


class RedisLedgerStore(LedgerStore):
    """Redis hash store: one field per company holding the JSON entry."""

    def __init__(self, redis: Redis, settings: Settings) -> None:
        self._redis = redis
        self._settings = settings
        self._key = key(settings, "ledger")
        self._upsert_script = redis.register_script(_COMPARE_AND_SET)

    async def list_all(self) -> list[LedgerEntry]:
        try:
            raw = await self._redis.hvals(self._key)
        except RedisError as e:
            logger.error(f"Failed to list ledger entries: {e}")
            raise PersistenceError(f"Failed to list ledger entries: {e}") from e
        return [LedgerEntry.model_validate_json(doc) for doc in raw]

    async def get(self, company: str) -> LedgerEntry | None:
        try:
            doc = await self._redis.hget(self._key, company)
        except RedisError as e:
            raise PersistenceError(f"Failed to read ledger entry for {company}: {e}") from e
        return LedgerEntry.model_validate_json(doc) if doc else None

    async def upsert(self, entry: LedgerEntry, expected_version: int) -> LedgerEntry:
        try:
            outcome = await self._upsert_script(
                keys=[self._key],
                args=[entry.company, entry.model_dump_json(), expected_version],
            )
        except RedisError as e:
            logger.error(f"Failed to upsert ledger entry for {entry.company}: {e}")
            raise PersistenceError(f"Failed to upsert ledger entry for {entry.company}: {e}") from e

        if int(outcome) != -1:
            raise LedgerConflictError(entry.company, int(outcome), expected_version)
        return entry

    @asynccontextmanager
    async def lock(self, company: str) -> AsyncIterator[None]:
        redis_lock = self._redis.lock(
            key(self._settings, "lock", company),
            timeout=self._settings.ledger_lock_timeout_seconds,
            blocking_timeout=self._settings.ledger_lock_wait_seconds,
        )
        try:
            acquired = await redis_lock.acquire()
        except RedisError as e:
            raise PersistenceError(f"Failed to lock ledger for {company}: {e}") from e
        if not acquired:
            raise PersistenceError(
                f"Timed out after {self._settings.ledger_lock_wait_seconds}s "
                f"waiting for the ledger lock of {company}"
            )

        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except RedisError as e:
                # Expired or lost; the version check still guards the write.
                logger.warning(f"Ledger lock for {company} was not released cleanly: {e}")
