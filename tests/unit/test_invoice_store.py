"""Unit tests for invoice stores.

The Redis store is tested against a mocked asyncio client.
"""

from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from billreminder.invoices.schema import InvoiceUpdate
from billreminder.invoices.store import InMemoryInvoiceStore, RedisInvoiceStore
from billreminder.shared.config import Settings
from billreminder.shared.errors import PersistenceError
from tests.helpers import make_invoice


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create mock Redis connection."""
    return AsyncMock()


class TestInMemoryInvoiceStore:
    """Test the dictionary-backed store."""

    @pytest.mark.asyncio
    async def test_insert_and_list(self) -> None:
        store = InMemoryInvoiceStore()
        await store.insert_many([make_invoice("1"), make_invoice("2")])

        invoices = await store.list_all()

        assert {inv.id for inv in invoices} == {"1", "2"}

    @pytest.mark.asyncio
    async def test_update_applies_partial_changes(self) -> None:
        """Should change only the given fields."""
        store = InMemoryInvoiceStore()
        await store.insert_many([make_invoice("1", due_days=3)])

        changes = InvoiceUpdate(excluded=True).changes()
        updated = await store.update("1", changes)

        assert updated is not None
        assert updated.excluded is True
        assert updated.due_days == 3
        assert changes == {"excluded": True}

    @pytest.mark.asyncio
    async def test_update_rejects_invalid_changes(self) -> None:
        """A change that would break the invoice leaves the stored one intact."""
        store = InMemoryInvoiceStore()
        await store.insert_many([make_invoice("1", due_days=-4)])

        with pytest.raises(ValidationError):
            await store.update("1", {"due_days": None})

        stored = await store.get("1")
        assert stored is not None
        assert stored.due_days == -4

    @pytest.mark.asyncio
    async def test_update_unknown_returns_none(self) -> None:
        store = InMemoryInvoiceStore()
        assert await store.update("missing", {"excluded": True}) is None

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        store = InMemoryInvoiceStore()
        await store.insert_many([make_invoice("1")])

        assert await store.delete("1") is True
        assert await store.delete("1") is False
        assert await store.list_all() == []

    @pytest.mark.asyncio
    async def test_clear_returns_count(self) -> None:
        store = InMemoryInvoiceStore()
        await store.insert_many([make_invoice("1"), make_invoice("2")])

        assert await store.clear() == 2
        assert await store.list_all() == []


class TestRedisInvoiceStore:
    """Test the Redis hash store."""

    @pytest.mark.asyncio
    async def test_list_parses_documents(self, settings: Settings, mock_redis: AsyncMock) -> None:
        mock_redis.hvals.return_value = [make_invoice("1").model_dump_json()]
        store = RedisInvoiceStore(mock_redis, settings)

        invoices = await store.list_all()

        assert [inv.id for inv in invoices] == ["1"]
        mock_redis.hvals.assert_awaited_once_with("billreminder:invoices")

    @pytest.mark.asyncio
    async def test_list_retries_connection_errors(
        self, settings: Settings, mock_redis: AsyncMock
    ) -> None:
        """Should retry transient connection failures before giving up."""
        mock_redis.hvals.side_effect = [RedisConnectionError("reset"), []]
        store = RedisInvoiceStore(mock_redis, settings)

        assert await store.list_all() == []
        assert mock_redis.hvals.await_count == 2

    @pytest.mark.asyncio
    async def test_insert_many_writes_mapping(
        self, settings: Settings, mock_redis: AsyncMock
    ) -> None:
        store = RedisInvoiceStore(mock_redis, settings)
        invoice = make_invoice("1")

        await store.insert_many([invoice])

        mock_redis.hset.assert_awaited_once()
        mapping = mock_redis.hset.await_args.kwargs["mapping"]
        assert list(mapping) == ["1"]

    @pytest.mark.asyncio
    async def test_insert_failure_raises_persistence_error(
        self, settings: Settings, mock_redis: AsyncMock
    ) -> None:
        mock_redis.hset.side_effect = ResponseError("OOM command not allowed")
        store = RedisInvoiceStore(mock_redis, settings)

        with pytest.raises(PersistenceError):
            await store.insert_many([make_invoice("1")])

    @pytest.mark.asyncio
    async def test_update_missing_invoice(self, settings: Settings, mock_redis: AsyncMock) -> None:
        mock_redis.hget.return_value = None
        store = RedisInvoiceStore(mock_redis, settings)

        assert await store.update("1", {"excluded": True}) is None
        mock_redis.hset.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_rewrites_document(
        self, settings: Settings, mock_redis: AsyncMock
    ) -> None:
        mock_redis.hget.return_value = make_invoice("1").model_dump_json()
        store = RedisInvoiceStore(mock_redis, settings)

        updated = await store.update("1", {"due_days": 0})

        assert updated is not None
        assert updated.due_days == 0
        mock_redis.hset.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_reports_missing(self, settings: Settings, mock_redis: AsyncMock) -> None:
        mock_redis.hdel.return_value = 0
        store = RedisInvoiceStore(mock_redis, settings)

        assert await store.delete("1") is False
