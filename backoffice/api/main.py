"""FastAPI application for invoice reconciliation.

Exposes the reconciliation workflow to the back-office front end:
- Supplier name matching
- Duplicate invoice detection and merge preview
- Applying a merge or replacement chosen by an operator
- Health, readiness and Prometheus metrics

Responses are plain data; presentation is the front end's concern.

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time

from fastapi import FastAPI, HTTPException, Query, Request, Response, status
from pydantic import BaseModel

from backoffice.api import metrics
from backoffice.invoices.schema import ExtractedInvoice
from backoffice.reconciliation.comparator import MergePreview, generate_merge_preview
from backoffice.reconciliation.duplicates import DuplicateCheckResult, DuplicateInvoice
from backoffice.reconciliation.merge import MergeOptions, MergeResult
from backoffice.reconciliation.service import ReconciliationReport, ReconciliationService
from backoffice.shared.config import get_settings
from backoffice.storage.service import StorageService
from backoffice.store.memory import InMemoryInvoiceStore
from backoffice.suppliers.matcher import SupplierMatch

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title="Restaurant Back-Office",
    description="Invoice reconciliation API: supplier matching, duplicate detection, merging",
    version=settings.service_version,
)

store = InMemoryInvoiceStore()
storage_service = StorageService(settings)
reconciliation_service = ReconciliationService(store, settings, storage_service)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request count and duration by route."""
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool


class SupplierMatchRequest(BaseModel):
    """Supplier name as read from a document."""

    name: str


class SupplierMatchResponse(BaseModel):
    """Matched supplier, or null when a human must choose."""

    match: SupplierMatch | None


class DuplicateCheckRequest(BaseModel):
    """Natural key of an incoming invoice."""

    supplier_id: str
    invoice_number: str


class ReconcileDecisionRequest(BaseModel):
    """Incoming invoice plus the operator's merge options."""

    extracted: ExtractedInvoice
    options: MergeOptions = MergeOptions()


def _load_duplicate(invoice_id: str) -> DuplicateInvoice:
    try:
        return reconciliation_service.load_duplicate(invoice_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe."""
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness probe."""
    return ReadinessResponse(ready=True)


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint."""
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post("/api/v1/suppliers/match", response_model=SupplierMatchResponse, tags=["Suppliers"])
def match_supplier(request: SupplierMatchRequest) -> SupplierMatchResponse:
    """Resolve an extracted supplier name onto a known supplier.

    Never creates a supplier; `match` is null when nothing matches.
    """
    return SupplierMatchResponse(match=reconciliation_service.resolve_supplier(request.name))


@app.post(
    "/api/v1/invoices/duplicate-check",
    response_model=DuplicateCheckResult,
    tags=["Invoices"],
)
def duplicate_check(request: DuplicateCheckRequest) -> DuplicateCheckResult:
    """Check whether an invoice with this supplier and number is already stored."""
    return reconciliation_service.check_for_duplicate(request.supplier_id, request.invoice_number)


@app.post("/api/v1/invoices/reconcile", response_model=ReconciliationReport, tags=["Invoices"])
def reconcile(
    extracted: ExtractedInvoice,
    supplier_id: str | None = Query(
        None, description="Supplier chosen by an operator; skips name matching"
    ),
) -> ReconciliationReport:
    """Run supplier matching, duplicate detection and merge preview for an extraction.

    ## Response Fields

    - `supplier_match`: matched supplier and match kind, null if unmatched
    - `duplicate`: duplicate check result, null if it could not run
    - `preview`: totals and per-row comparisons when a duplicate exists
    - `warnings`: why any step was skipped
    """
    return reconciliation_service.reconcile(extracted, supplier_id=supplier_id)


@app.post(
    "/api/v1/invoices/{invoice_id}/merge-preview",
    response_model=MergePreview,
    tags=["Invoices"],
)
def merge_preview(invoice_id: str, extracted: ExtractedInvoice) -> MergePreview:
    """Preview merging an extraction into a stored invoice."""
    duplicate = _load_duplicate(invoice_id)
    return generate_merge_preview(
        duplicate.existing, duplicate.existing_line_items, extracted.line_items
    )


@app.post("/api/v1/invoices/{invoice_id}/merge", response_model=MergeResult, tags=["Invoices"])
def merge(invoice_id: str, request: ReconcileDecisionRequest) -> MergeResult:
    """Merge an extraction into a stored invoice and persist the result."""
    duplicate = _load_duplicate(invoice_id)
    return reconciliation_service.apply_merge(duplicate, request.extracted, request.options)


@app.post("/api/v1/invoices/{invoice_id}/replace", response_model=MergeResult, tags=["Invoices"])
def replace(invoice_id: str, request: ReconcileDecisionRequest) -> MergeResult:
    """Replace a stored invoice's content with an extraction and persist the result."""
    duplicate = _load_duplicate(invoice_id)
    return reconciliation_service.apply_replace(duplicate, request.extracted, request.options)
