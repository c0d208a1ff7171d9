"""Invoice record stores.

Two interchangeable backends behind one async CRUD interface:
- InMemoryInvoiceStore: single-process deployments and tests
- RedisInvoiceStore: shared state between the API and the queue worker

Every backend failure surfaces as PersistenceError.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from billreminder.invoices.schema import Invoice
from billreminder.shared.config import Settings
from billreminder.shared.errors import PersistenceError
from billreminder.shared.redis_client import key

logger = logging.getLogger(__name__)


class InvoiceStore(ABC):
    """Async CRUD interface over invoice records."""

    @abstractmethod
    async def list_all(self) -> list[Invoice]:
        """Return all invoices, newest import first."""
        pass

    @abstractmethod
    async def get(self, invoice_id: str) -> Invoice | None:
        pass

    @abstractmethod
    async def insert_many(self, invoices: list[Invoice]) -> list[Invoice]:
        """Store new invoices and return them as stored."""
        pass

    @abstractmethod
    async def update(self, invoice_id: str, changes: dict[str, Any]) -> Invoice | None:
        """Apply field changes; None when the invoice does not exist."""
        pass

    @abstractmethod
    async def delete(self, invoice_id: str) -> bool:
        """Delete one invoice; False when it did not exist."""
        pass

    @abstractmethod
    async def clear(self) -> int:
        """Delete every invoice and return how many were removed."""
        pass


def _apply(current: Invoice, changes: dict[str, Any]) -> Invoice:
    """Validated copy of an invoice with field changes applied."""
    return Invoice.model_validate({**current.model_dump(), **changes})


def _newest_first(invoices: list[Invoice]) -> list[Invoice]:
    return sorted(invoices, key=lambda inv: inv.created_at, reverse=True)


class InMemoryInvoiceStore(InvoiceStore):
    """Dictionary-backed store. State lives as long as the process."""

    def __init__(self) -> None:
        self._invoices: dict[str, Invoice] = {}

    async def list_all(self) -> list[Invoice]:
        return _newest_first(list(self._invoices.values()))

    async def get(self, invoice_id: str) -> Invoice | None:
        return self._invoices.get(invoice_id)

    async def insert_many(self, invoices: list[Invoice]) -> list[Invoice]:
        for invoice in invoices:
            self._invoices[invoice.id] = invoice
        return list(invoices)

    async def update(self, invoice_id: str, changes: dict[str, Any]) -> Invoice | None:
        current = self._invoices.get(invoice_id)
        if current is None:
            return None
        updated = _apply(current, changes)
        self._invoices[invoice_id] = updated
        return updated

    async def delete(self, invoice_id: str) -> bool:
        return self._invoices.pop(invoice_id, None) is not None

    async def clear(self) -> int:
        count = len(self._invoices)
        self._invoices.clear()
        return count


class RedisInvoiceStore(InvoiceStore):
    """Redis hash store: one field per invoice id holding the JSON document."""

    def __init__(self, redis: Redis, settings: Settings) -> None:
        self._redis = redis
        self._key = key(settings, "invoices")

    @retry(
        retry=retry_if_exception_type(RedisConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=5),
        reraise=True,
    )
    async def _load_all(self) -> list[Invoice]:
        raw = await self._redis.hvals(self._key)
        return [Invoice.model_validate_json(doc) for doc in raw]

    async def list_all(self) -> list[Invoice]:
        try:
            return _newest_first(await self._load_all())
        except RedisError as e:
            logger.error(f"Failed to list invoices: {e}")
            raise PersistenceError(f"Failed to list invoices: {e}") from e

    async def get(self, invoice_id: str) -> Invoice | None:
        try:
            doc = await self._redis.hget(self._key, invoice_id)
        except RedisError as e:
            raise PersistenceError(f"Failed to read invoice {invoice_id}: {e}") from e
        return Invoice.model_validate_json(doc) if doc else None

    async def insert_many(self, invoices: list[Invoice]) -> list[Invoice]:
        if not invoices:
            return []
        mapping = {inv.id: inv.model_dump_json() for inv in invoices}
        try:
            await self._redis.hset(self._key, mapping=mapping)
        except RedisError as e:
            logger.error(f"Failed to insert {len(invoices)} invoices: {e}")
            raise PersistenceError(f"Failed to insert invoices: {e}") from e
        logger.info(f"Stored {len(invoices)} invoices")
        return list(invoices)

    async def update(self, invoice_id: str, changes: dict[str, Any]) -> Invoice | None:
        current = await self.get(invoice_id)
        if current is None:
            return None
        updated = _apply(current, changes)
        try:
            await self._redis.hset(self._key, invoice_id, updated.model_dump_json())
        except RedisError as e:
            raise PersistenceError(f"Failed to update invoice {invoice_id}: {e}") from e
        return updated

    async def delete(self, invoice_id: str) -> bool:
        try:
            removed = await self._redis.hdel(self._key, invoice_id)
        except RedisError as e:
            raise PersistenceError(f"Failed to delete invoice {invoice_id}: {e}") from e
        return bool(removed)

    async def clear(self) -> int:
        try:
            count = await self._redis.hlen(self._key)
            await self._redis.delete(self._key)
        except RedisError as e:
            raise PersistenceError(f"Failed to clear invoices: {e}") from e
        logger.info(f"Cleared {count} invoices")
        return int(count)
