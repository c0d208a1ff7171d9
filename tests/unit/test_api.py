"""Unit tests for the reminder HTTP API.

Tests cover:
- Health, readiness and metrics endpoints
- Spreadsheet upload validation
- Invoice editing, exclusion and deletion
- Manual sends and their failure status codes
- Pause toggles and status views
- Queued overdue sends
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi import status
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from billreminder.api import main
from billreminder.api.main import app
from billreminder.invoices.schema import Invoice
from billreminder.reminders.service import ReminderService
from billreminder.shared.config import Settings
from tests.helpers import FakeClock, RecordingProvider, make_invoice

CSV_CONTENT = (
    "Company Name,Company Email,Invoice No.,Invoice Date,Due Days,Bill Amount\n"
    "Acme,accounts@acme.example,A-1,01-09-26,-10,1500\n"
    "Acme,accounts@acme.example,A-2,03-09-26,2,700\n"
    "Globex,billing@globex.example,G-1,05-09-26,0,820\n"
).encode()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, service: ReminderService) -> TestClient:
    """Test client backed by a fresh in-memory service."""
    monkeypatch.setattr(main, "reminder_service", service)
    return TestClient(app)


def seed(service: ReminderService, invoices: list[Invoice]) -> None:
    asyncio.run(service.invoices.insert_many(invoices))


def upload(
    client: TestClient, content: bytes = CSV_CONTENT, name: str = "outstanding.csv"
) -> httpx.Response:
    return client.post("/api/v1/invoices/import", files={"file": (name, content, "text/csv")})


def test_health_check(client: TestClient) -> None:
    """Test health check endpoint."""
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "bill-reminder-service"


def test_readiness_check(client: TestClient) -> None:
    response = client.get("/ready")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["ready"] is True
    assert data["notification_provider"] == "recording"
    assert data["scheduler_running"] is False


def test_metrics_endpoint(client: TestClient) -> None:
    """Test Prometheus metrics endpoint."""
    client.get("/health")

    response = client.get("/metrics")

    assert response.status_code == status.HTTP_200_OK
    assert "http_requests_total" in response.text


class TestImport:
    def test_import_csv(self, client: TestClient) -> None:
        response = upload(client)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is True
        assert data["imported"] == 3
        assert {inv["company_name"] for inv in data["invoices"]} == {"Acme", "Globex"}

    def test_import_rejects_unsupported_type(self, client: TestClient) -> None:
        response = upload(client, b"%PDF-1.4", "invoice.pdf")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "Unsupported file type" in response.json()["detail"]

    def test_import_rejects_empty_file(self, client: TestClient) -> None:
        response = upload(client, b"")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_import_rejects_large_file(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch, settings: Settings
    ) -> None:
        monkeypatch.setattr(main, "settings", settings.model_copy(update={"max_upload_bytes": 10}))

        response = upload(client)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "exceeds" in response.json()["detail"]

    def test_import_rejects_sheet_without_rows(self, client: TestClient) -> None:
        response = upload(client, b"Company Name,Invoice No.\n")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestInvoices:
    @pytest.fixture(autouse=True)
    def _seed(self, service: ReminderService) -> None:
        seed(
            service,
            [
                make_invoice("1", company="Acme", due_days=-10),
                make_invoice("2", company="Acme", due_days=2),
                make_invoice("3", company="Globex", due_days=0),
            ],
        )

    def test_list_with_filters(self, client: TestClient) -> None:
        response = client.get("/api/v1/invoices", params={"status": "overdue", "company": "acme"})

        assert response.status_code == status.HTTP_200_OK
        assert [inv["id"] for inv in response.json()] == ["1"]

    def test_list_rejects_unknown_status(self, client: TestClient) -> None:
        response = client.get("/api/v1/invoices", params={"status": "late"})

        assert response.status_code == 422

    def test_update_invoice(self, client: TestClient) -> None:
        response = client.patch("/api/v1/invoices/2", json={"due_days": -1})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["due_days"] == -1
        assert response.json()["company_name"] == "Acme"

    def test_update_rejects_null_due_days(self, client: TestClient) -> None:
        """A null due date must not reach the store and break the overdue views."""
        response = client.patch("/api/v1/invoices/1", json={"due_days": None})

        assert response.status_code == 422
        overdue = client.get("/api/v1/invoices", params={"status": "overdue"})
        assert overdue.status_code == status.HTTP_200_OK
        assert len(overdue.json()) == 2
        summary = client.get("/api/v1/summary")
        assert summary.status_code == status.HTTP_200_OK
        assert summary.json()["overdue"] == 2

    def test_update_clears_amount_with_null(self, client: TestClient) -> None:
        response = client.patch("/api/v1/invoices/1", json={"pending_amount": None})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["pending_amount"] is None
        assert response.json()["due_days"] == -10

    def test_update_unknown_invoice(self, client: TestClient) -> None:
        response = client.patch("/api/v1/invoices/missing", json={"due_days": -1})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_toggle_exclude(self, client: TestClient) -> None:
        first = client.post("/api/v1/invoices/1/exclude")
        summary = client.get("/api/v1/summary").json()
        second = client.post("/api/v1/invoices/1/exclude")

        assert first.json()["excluded"] is True
        assert summary["excluded"] == 1
        assert summary["overdue"] == 1
        assert second.json()["excluded"] is False

    def test_delete_invoice(self, client: TestClient) -> None:
        assert client.delete("/api/v1/invoices/1").status_code == status.HTTP_204_NO_CONTENT
        assert client.delete("/api/v1/invoices/1").status_code == status.HTTP_404_NOT_FOUND

    def test_clear_invoices(self, client: TestClient) -> None:
        response = client.delete("/api/v1/invoices")

        assert response.json() == {"deleted": 3}
        assert client.get("/api/v1/invoices").json() == []

    def test_summary(self, client: TestClient) -> None:
        data = client.get("/api/v1/summary").json()

        assert data == {
            "total": 3,
            "overdue": 2,
            "due_today": 1,
            "excluded": 0,
            "overdue_companies": 2,
        }


class TestSends:
    @pytest.fixture(autouse=True)
    def _seed(self, service: ReminderService) -> None:
        seed(
            service,
            [
                make_invoice("1", company="Acme", due_days=-10),
                make_invoice("2", company="Acme", due_days=2),
                make_invoice("3", company="Globex Pvt/Ltd", due_days=0),
                make_invoice("4", company="Initech", excluded=True),
            ],
        )

    def test_send_single_invoice(self, client: TestClient, provider: RecordingProvider) -> None:
        response = client.post("/api/v1/invoices/2/send")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is True
        assert data["kind"] == "single_invoice"
        assert data["invoice_count"] == 1
        assert data["entry"]["company"] == "Acme"
        assert provider.payloads[0].invoices[0].due_days == 2

    def test_send_unknown_invoice(self, client: TestClient) -> None:
        response = client.post("/api/v1/invoices/missing/send")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_send_company_with_slash_in_name(
        self, client: TestClient, provider: RecordingProvider
    ) -> None:
        response = client.post("/api/v1/companies/Globex Pvt/Ltd/send")

        assert response.status_code == status.HTTP_200_OK
        assert provider.companies() == ["Globex Pvt/Ltd"]

    def test_send_company_includes_not_yet_due(
        self, client: TestClient, provider: RecordingProvider
    ) -> None:
        response = client.post("/api/v1/companies/Acme/send")

        assert response.json()["invoice_count"] == 2
        assert provider.payloads[0].type == "company_bulk"

    def test_send_company_without_invoices(self, client: TestClient) -> None:
        """Only excluded invoices: nothing to send."""
        response = client.post("/api/v1/companies/Initech/send")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["status"] == "validation_failed"

    def test_dispatch_failure_returns_bad_gateway(
        self, client: TestClient, provider: RecordingProvider
    ) -> None:
        provider.fail = True

        response = client.post("/api/v1/invoices/1/send")

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["detail"]["notified"] is False
        assert client.get("/api/v1/ledger").json() == []

    def test_send_all_overdue(self, client: TestClient, provider: RecordingProvider) -> None:
        response = client.post("/api/v1/reminders/send-overdue")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["companies"] == 2
        assert data["sent"] == 2
        assert sorted(provider.companies()) == ["Acme", "Globex Pvt/Ltd"]
        assert all(p.type == "bulk_overdue" for p in provider.payloads)

    def test_pause_and_status_views(self, client: TestClient, clock: FakeClock) -> None:
        paused = client.post("/api/v1/companies/Acme/pause")
        statuses = {row["company"]: row for row in client.get("/api/v1/reminders").json()}

        assert paused.status_code == status.HTTP_200_OK
        assert paused.json()["reminders_paused"] is True
        assert statuses["Acme"]["state"] == "paused"
        assert statuses["Globex Pvt/Ltd"]["state"] == "new"

        client.post("/api/v1/companies/Globex Pvt/Ltd/send")
        clock.advance(days=1)
        statuses = {row["company"]: row for row in client.get("/api/v1/reminders").json()}

        assert statuses["Globex Pvt/Ltd"]["state"] == "scheduled"
        assert statuses["Globex Pvt/Ltd"]["next_reminder_in"] == "6d 0h 0m"

    def test_ledger_history(self, client: TestClient) -> None:
        client.post("/api/v1/invoices/1/send")

        history = client.get("/api/v1/ledger").json()

        assert [entry["company"] for entry in history] == ["Acme"]
        assert history[0]["invoice_count"] == 1


class TestQueuedSends:
    """Overdue sends handed to the arq worker."""

    @pytest.fixture
    def mock_arq_pool(self) -> AsyncMock:
        """Create mock arq pool."""
        mock = AsyncMock()
        mock.enqueue_job = AsyncMock(return_value=MagicMock(job_id="job-123"))
        return mock

    @pytest.fixture
    def queue_enabled(self, monkeypatch: pytest.MonkeyPatch, settings: Settings) -> None:
        monkeypatch.setattr(main, "settings", settings.model_copy(update={"queue_enabled": True}))

    def test_requires_queue_enabled(self, client: TestClient, mock_arq_pool: AsyncMock) -> None:
        """Should return 503 when queue is disabled."""
        with patch("billreminder.api.main.get_arq_pool", return_value=mock_arq_pool):
            response = client.post("/api/v1/reminders/send-overdue/queue")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert "not enabled" in response.json()["detail"]
        mock_arq_pool.enqueue_job.assert_not_called()

    @pytest.mark.usefixtures("queue_enabled")
    def test_enqueues_worker_job(
        self,
        client: TestClient,
        service: ReminderService,
        mock_arq_pool: AsyncMock,
        provider: RecordingProvider,
    ) -> None:
        """The request only enqueues; the worker does the sending."""
        seed(service, [make_invoice("1", company="Acme")])

        with patch("billreminder.api.main.get_arq_pool", return_value=mock_arq_pool):
            response = client.post("/api/v1/reminders/send-overdue/queue")

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json() == {"job_id": "job-123", "status": "queued"}
        mock_arq_pool.enqueue_job.assert_called_once_with("send_overdue_reminders")
        assert provider.payloads == []

    @pytest.mark.usefixtures("queue_enabled")
    def test_unreachable_queue(self, client: TestClient, mock_arq_pool: AsyncMock) -> None:
        mock_arq_pool.enqueue_job.side_effect = RedisConnectionError("connection refused")

        with patch("billreminder.api.main.get_arq_pool", return_value=mock_arq_pool):
            response = client.post("/api/v1/reminders/send-overdue/queue")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert "unavailable" in response.json()["detail"]
