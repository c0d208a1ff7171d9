"""FastAPI application for invoice tracking and reminder sends.

Exposes:
- Health and readiness checks
- Spreadsheet import and invoice editing
- Overdue summary, per-company reminder status and send history
- Manual sends (single invoice, one company, all overdue) and pause toggles
- Queued overdue sends for the arq worker (APP_QUEUE_ENABLED)
- Prometheus metrics

The automatic reminder sweep runs inside this process when
APP_SCHEDULER_ENABLED is true (the default).

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from arq import ArqRedis, create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI, File, HTTPException, Query, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from redis.exceptions import RedisError

from billreminder.api import metrics
from billreminder.invoices.schema import Invoice, InvoiceUpdate
from billreminder.ledger.schema import LedgerEntry
from billreminder.reminders.aggregator import CompanyStatus, InvoiceCounts, InvoiceStatusFilter
from billreminder.reminders.orchestrator import SendResult
from billreminder.reminders.service import BulkSendReport, create_reminder_service
from billreminder.shared.config import get_settings
from billreminder.shared.errors import PersistenceError, SpreadsheetImportError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

reminder_service = create_reminder_service(settings)

_arq_pool: ArqRedis | None = None


async def get_arq_pool() -> ArqRedis:
    """Get or create the arq Redis pool used to enqueue worker jobs."""
    global _arq_pool
    if _arq_pool is None:
        _arq_pool = await create_pool(RedisSettings.from_dsn(settings.redis_url))
        logger.info("arq pool initialized")
    return _arq_pool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the automatic reminder sweep with the app and stop it on shutdown."""
    if settings.scheduler_enabled:
        reminder_service.scheduler.start()
    yield
    await reminder_service.aclose()
    if _arq_pool is not None:
        await _arq_pool.aclose()


app = FastAPI(
    title="Bill Reminder Service",
    description="Invoice tracking with automatic overdue reminders",
    version=settings.service_version,
    lifespan=lifespan,
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Endpoints are labelled by route template so invoice ids and company names
    do not multiply label values.
    """
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint,
    ).observe(duration)

    return response


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Storage error: {exc}"},
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    notification_provider: str
    scheduler_running: bool


class ImportResponse(BaseModel):
    """Spreadsheet import response."""

    success: bool
    imported: int
    invoices: list[Invoice]


class SendResponse(BaseModel):
    """Outcome of a manual send."""

    success: bool
    company: str
    kind: str
    status: str
    invoice_count: int
    notified: bool
    entry: LedgerEntry | None = None
    error: str | None = None

    @classmethod
    def from_result(cls, result: SendResult) -> "SendResponse":
        return cls(success=result.success, **result.model_dump())


_FAILURE_STATUS_CODES = {
    "validation_failed": status.HTTP_400_BAD_REQUEST,
    "dispatch_failed": status.HTTP_502_BAD_GATEWAY,
    "persistence_failed": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "skipped": status.HTTP_409_CONFLICT,
}


def _send_response(result: SendResult) -> SendResponse:
    """Return successful sends; raise with the full outcome otherwise."""
    response = SendResponse.from_result(result)
    if not result.success:
        raise HTTPException(
            status_code=_FAILURE_STATUS_CODES[result.status],
            detail=response.model_dump(mode="json"),
        )
    return response


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness checks."""
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check: the notification provider must be able to deliver."""
    provider = reminder_service.provider
    return ReadinessResponse(
        ready=provider.is_available(),
        notification_provider=provider.provider_name,
        scheduler_running=reminder_service.scheduler.running,
    )


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint."""
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.get("/api/v1/invoices", response_model=list[Invoice], tags=["Invoices"])
async def list_invoices(
    company: str | None = Query(None, description="Case-insensitive company name filter"),
    status_filter: InvoiceStatusFilter = Query(
        "all", alias="status", description="all, overdue (<= 0), due (== 0) or active (>= 0)"
    ),
) -> list[Invoice]:
    """List invoices, newest import first."""
    return await reminder_service.list_invoices(company=company, status=status_filter)


@app.post("/api/v1/invoices/import", response_model=ImportResponse, tags=["Invoices"])
async def import_invoices(
    file: UploadFile = File(..., description="Spreadsheet (.xlsx or .csv)"),  # noqa: B008
) -> ImportResponse:
    """Import invoices from a spreadsheet.

    Expected columns: Company Name, Company Email, Invoice No., Invoice Date,
    Due Days, and either Bill/Pending/Balance Amount or the GST columns
    (Assessable Value, SGST, CGST, IGST).

    Raises:
        HTTPException: 400 if the file is missing, too large, unreadable or empty
    """
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No filename provided")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File exceeds {settings.max_upload_bytes} bytes",
        )

    metrics.spreadsheet_upload_size_bytes.observe(len(content))

    try:
        stored = await reminder_service.import_spreadsheet(content, file.filename)
    except SpreadsheetImportError as e:
        metrics.spreadsheet_uploads_total.labels(status="failed").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    metrics.spreadsheet_uploads_total.labels(status="success").inc()
    return ImportResponse(success=True, imported=len(stored), invoices=stored)


@app.patch("/api/v1/invoices/{invoice_id}", response_model=Invoice, tags=["Invoices"])
async def update_invoice(invoice_id: str, update: InvoiceUpdate) -> Invoice:
    """Edit invoice fields. Only fields present in the body change."""
    updated = await reminder_service.update_invoice(invoice_id, update)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return updated


@app.post("/api/v1/invoices/{invoice_id}/exclude", response_model=Invoice, tags=["Invoices"])
async def toggle_exclude(invoice_id: str) -> Invoice:
    """Toggle whether an invoice takes part in reminders."""
    updated = await reminder_service.toggle_exclude(invoice_id)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return updated


@app.delete(
    "/api/v1/invoices/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Invoices"]
)
async def delete_invoice(invoice_id: str) -> Response:
    if not await reminder_service.delete_invoice(invoice_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.delete("/api/v1/invoices", tags=["Invoices"])
async def clear_invoices() -> dict[str, int]:
    """Delete every invoice. Ledger history is kept."""
    return {"deleted": await reminder_service.clear_invoices()}


@app.get("/api/v1/summary", response_model=InvoiceCounts, tags=["Reminders"])
async def summary() -> InvoiceCounts:
    """Overdue, due-today and excluded counts."""
    return await reminder_service.summary()


@app.get("/api/v1/reminders", response_model=list[CompanyStatus], tags=["Reminders"])
async def reminder_statuses() -> list[CompanyStatus]:
    """Reminder cycle status for every company with invoices."""
    return await reminder_service.company_statuses()


@app.get("/api/v1/ledger", response_model=list[LedgerEntry], tags=["Reminders"])
async def ledger_history() -> list[LedgerEntry]:
    """Send history, most recently contacted company first."""
    return await reminder_service.ledger_history()


@app.post("/api/v1/invoices/{invoice_id}/send", response_model=SendResponse, tags=["Sends"])
async def send_invoice(invoice_id: str) -> SendResponse:
    """Send a reminder for a single invoice."""
    result = await reminder_service.send_invoice(invoice_id)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return _send_response(result)


@app.post("/api/v1/companies/{company:path}/send", response_model=SendResponse, tags=["Sends"])
async def send_company(company: str) -> SendResponse:
    """Send one reminder covering every non-excluded invoice of a company."""
    return _send_response(await reminder_service.send_company(company))


@app.post("/api/v1/companies/{company:path}/pause", response_model=LedgerEntry, tags=["Sends"])
async def toggle_pause(company: str) -> LedgerEntry:
    """Pause or resume automatic reminders for a company."""
    return await reminder_service.toggle_pause(company)


@app.post("/api/v1/reminders/send-overdue", response_model=BulkSendReport, tags=["Sends"])
async def send_all_overdue() -> BulkSendReport:
    """Send an overdue reminder to every company with overdue invoices."""
    return await reminder_service.send_all_overdue()


class QueuedJobResponse(BaseModel):
    """A job accepted by the background queue."""

    job_id: str
    status: str


@app.post(
    "/api/v1/reminders/send-overdue/queue",
    response_model=QueuedJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Sends"],
)
async def queue_send_all_overdue() -> QueuedJobResponse:
    """Hand the global overdue send to the arq worker instead of running it here.

    Raises:
        HTTPException: 503 if the background queue is not enabled or unreachable
    """
    if not settings.queue_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Background queue not enabled. Set APP_QUEUE_ENABLED=true.",
        )

    try:
        pool = await get_arq_pool()
        job = await pool.enqueue_job("send_overdue_reminders")
    except (RedisError, OSError) as e:
        logger.error(f"Failed to enqueue overdue send: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Background queue unavailable: {e}",
        ) from e

    if job is None:
        # arq returns None when a job with the same id is already queued
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="An overdue send is already queued"
        )

    logger.info(f"Queued overdue send as job {job.job_id}")
    return QueuedJobResponse(job_id=job.job_id, status="queued")
