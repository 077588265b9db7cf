"""API routes for Rental Tax Ledger."""

import base64
import binascii
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from rental_tax_ledger.api.schemas import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    BulkTagRequest,
    ChecklistItemResponse,
    ChecklistResponse,
    DocumentUpload,
    GroupTotalResponse,
    HealthResponse,
    ImportRowsRequest,
    ImportSummaryResponse,
    InvoiceCreate,
    InvoiceMatchResponse,
    InvoiceResponse,
    ManualTransactionCreate,
    PropertyCreate,
    PropertyResponse,
    ReportResponse,
    TaxEstimateResponse,
    TransactionResponse,
    TransactionUpdate,
    serialize_report_data,
)
from rental_tax_ledger.config import get_settings
from rental_tax_ledger.container import (
    get_ingestion_service,
    get_reconciliation_service,
    get_reporting_service,
    get_tax_service,
)
from rental_tax_ledger.domain.tax_years import TaxYear
from rental_tax_ledger.domain.value_objects import quantize_money
from rental_tax_ledger.services.ingestion import IngestionService
from rental_tax_ledger.services.interfaces import (
    ImportSummary,
    InvoiceFields,
    InvoiceMatchOutcome,
)
from rental_tax_ledger.services.reconciliation import ReconciliationService
from rental_tax_ledger.services.reporting import ReportingService
from rental_tax_ledger.services.tax_estimation import TaxEstimationService

# Create routers
health_router = APIRouter(tags=["health"])
property_router = APIRouter(prefix="/properties", tags=["properties"])
transaction_router = APIRouter(prefix="/transactions", tags=["transactions"])
invoice_router = APIRouter(prefix="/invoices", tags=["invoices"])
tax_router = APIRouter(prefix="/tax", tags=["tax"])
report_router = APIRouter(prefix="/reports", tags=["reports"])

Reconciliation = Annotated[ReconciliationService, Depends(get_reconciliation_service)]
Ingestion = Annotated[IngestionService, Depends(get_ingestion_service)]
TaxService = Annotated[TaxEstimationService, Depends(get_tax_service)]
Reporting = Annotated[ReportingService, Depends(get_reporting_service)]


def _tax_year(value: str | None) -> TaxYear:
    if value is None:
        return get_settings().default_tax_year
    return TaxYear.parse(value)


def _decode_document(upload: DocumentUpload) -> bytes:
    try:
        return base64.b64decode(upload.content_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="content_base64 is not valid base64",
        ) from e


def _summary_response(summary: ImportSummary) -> ImportSummaryResponse:
    return ImportSummaryResponse(
        imported=summary.imported,
        skipped=summary.skipped,
        rejected=summary.rejected,
        message=summary.message,
        transactions=[TransactionResponse.from_domain(t) for t in summary.transactions],
    )


def _match_response(outcome: InvoiceMatchOutcome) -> InvoiceMatchResponse:
    return InvoiceMatchResponse(
        invoice=InvoiceResponse.from_domain(outcome.invoice),
        matched=outcome.matched,
        transaction=TransactionResponse.from_domain(outcome.transaction)
        if outcome.transaction
        else None,
    )


@health_router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=get_settings().app_version)


# Property endpoints
@property_router.post(
    "", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED
)
def create_property(payload: PropertyCreate, service: Reconciliation) -> PropertyResponse:
    prop = service.add_property(payload.name, payload.address, payload.keywords)
    return PropertyResponse.from_domain(prop)


@property_router.get("", response_model=list[PropertyResponse])
def list_properties(service: Reconciliation) -> list[PropertyResponse]:
    return [PropertyResponse.from_domain(p) for p in service.list_properties()]


@property_router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_property(property_id: str, service: Reconciliation) -> Response:
    """Delete a property; its transactions become unassigned."""
    service.delete_property(property_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Transaction endpoints
@transaction_router.get("", response_model=list[TransactionResponse])
def list_transactions(
    service: Reconciliation,
    tax_year: str | None = Query(default=None),
    property_id: str | None = Query(default=None),
    category: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status"),
) -> list[TransactionResponse]:
    transactions = service.list_transactions(
        tax_year=tax_year,
        property_id=property_id,
        category=category,
        status=status_filter,
    )
    return [TransactionResponse.from_domain(t) for t in transactions]


@transaction_router.post("/import", response_model=ImportSummaryResponse)
async def import_rows(
    payload: ImportRowsRequest, service: Ingestion
) -> ImportSummaryResponse:
    """Import bank rows; rows already in the ledger are skipped."""
    summary = await service.import_rows([row.model_dump() for row in payload.rows])
    return _summary_response(summary)


@transaction_router.post("/import/statement", response_model=ImportSummaryResponse)
async def import_statement(
    payload: DocumentUpload, service: Ingestion
) -> ImportSummaryResponse:
    summary = await service.import_statement(_decode_document(payload), payload.mime_type)
    return _summary_response(summary)


@transaction_router.post(
    "", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED
)
def create_manual_transaction(
    payload: ManualTransactionCreate, service: Ingestion
) -> TransactionResponse:
    txn = service.add_manual_transaction(
        payload.date,
        payload.description,
        payload.amount,
        category=payload.category,
        property_id=payload.property_id,
        tag=payload.tag,
        status=payload.status,
    )
    return TransactionResponse.from_domain(txn)


@transaction_router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(transaction_id: str, service: Reconciliation) -> TransactionResponse:
    return TransactionResponse.from_domain(service.get_transaction(transaction_id))


@transaction_router.patch("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: str, payload: TransactionUpdate, service: Reconciliation
) -> TransactionResponse:
    changes = payload.model_dump(include=payload.model_fields_set)
    txn = service.update_transaction(transaction_id, **changes)
    return TransactionResponse.from_domain(txn)


@transaction_router.post("/{transaction_id}/toggle", response_model=TransactionResponse)
def toggle_transaction(transaction_id: str, service: Reconciliation) -> TransactionResponse:
    """Manual sign-off: pending <-> reconciled for a transaction without a receipt."""
    return TransactionResponse.from_domain(service.toggle_reconciled(transaction_id))


@transaction_router.post("/{transaction_id}/flag", response_model=TransactionResponse)
def flag_transaction(transaction_id: str, service: Reconciliation) -> TransactionResponse:
    return TransactionResponse.from_domain(service.flag_transaction(transaction_id))


@transaction_router.post("/bulk/tag", response_model=list[TransactionResponse])
def bulk_tag(payload: BulkTagRequest, service: Reconciliation) -> list[TransactionResponse]:
    tagged = service.apply_tag(payload.transaction_ids, payload.tag)
    return [TransactionResponse.from_domain(t) for t in tagged]


@transaction_router.post("/bulk/delete", response_model=BulkDeleteResponse)
def bulk_delete(payload: BulkDeleteRequest, service: Reconciliation) -> BulkDeleteResponse:
    return BulkDeleteResponse(deleted=service.delete_transactions(payload.transaction_ids))


# Invoice endpoints
@invoice_router.get("", response_model=list[InvoiceResponse])
def list_invoices(
    service: Reconciliation,
    status_filter: str | None = Query(default=None, alias="status"),
) -> list[InvoiceResponse]:
    return [InvoiceResponse.from_domain(i) for i in service.list_invoices(status_filter)]


@invoice_router.post(
    "", response_model=InvoiceMatchResponse, status_code=status.HTTP_201_CREATED
)
def create_invoice(payload: InvoiceCreate, service: Reconciliation) -> InvoiceMatchResponse:
    """Store a receipt from known fields and try to match it to an expense."""
    fields = InvoiceFields(
        date=payload.date,
        vendor=payload.vendor,
        amount=payload.amount,
        description=payload.description,
    )
    return _match_response(service.ingest_invoice(fields, payload.tax_year))


@invoice_router.post(
    "/upload", response_model=InvoiceMatchResponse, status_code=status.HTTP_201_CREATED
)
async def upload_invoice(payload: DocumentUpload, service: Ingestion) -> InvoiceMatchResponse:
    outcome = await service.ingest_invoice_document(
        _decode_document(payload), payload.mime_type, payload.tax_year
    )
    return _match_response(outcome)


@invoice_router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(invoice_id: str, service: Reconciliation) -> Response:
    """Delete a receipt; a matched transaction goes back to pending."""
    service.delete_invoice(invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Tax endpoints
@tax_router.get("/estimate", response_model=TaxEstimateResponse)
def tax_estimate(
    service: TaxService,
    tax_year: str | None = Query(default=None),
    supplemental_income: str = Query(default="0", pattern=r"^\d+(\.\d+)?$"),
) -> TaxEstimateResponse:
    year = _tax_year(tax_year)
    estimate = service.estimate(year, supplemental_income)
    return TaxEstimateResponse.from_domain(year.value, year.label, estimate)


# Report endpoints
@report_router.get("/summary", response_model=ReportResponse)
def dashboard_summary(
    service: Reporting, tax_year: str | None = Query(default=None)
) -> ReportResponse:
    report = service.dashboard_summary(_tax_year(tax_year))
    return ReportResponse(
        report_name=report["report_name"],
        tax_year=report["tax_year"],
        data=serialize_report_data(report["data"]),
    )


@report_router.get("/owner-split", response_model=ReportResponse)
def owner_split(
    service: Reporting, tax_year: str | None = Query(default=None)
) -> ReportResponse:
    report = service.owner_split(_tax_year(tax_year))
    return ReportResponse(
        report_name=report["report_name"],
        tax_year=report["tax_year"],
        data=serialize_report_data(report["data"]),
    )


@report_router.get("/properties", response_model=ReportResponse)
def property_stats(
    service: Reporting, tax_year: str | None = Query(default=None)
) -> ReportResponse:
    year = _tax_year(tax_year)
    return ReportResponse(
        report_name="Property Stats",
        tax_year=year.value,
        data=serialize_report_data(service.property_stats(year)),
    )


@report_router.get("/monthly", response_model=ReportResponse)
def monthly_series(
    service: Reporting, tax_year: str | None = Query(default=None)
) -> ReportResponse:
    year = _tax_year(tax_year)
    return ReportResponse(
        report_name="Monthly Series",
        tax_year=year.value,
        data=serialize_report_data(service.monthly_series(year)),
    )


@report_router.get("/grouped", response_model=list[GroupTotalResponse])
def grouped(
    service: Reporting, tax_year: str | None = Query(default=None)
) -> list[GroupTotalResponse]:
    return [
        GroupTotalResponse(
            property_id=g.property_id,
            property_name=g.property_name,
            category=g.category.value,
            amount=str(quantize_money(g.amount)),
            count=g.count,
        )
        for g in service.grouped_totals(_tax_year(tax_year))
    ]


@report_router.get("/checklist", response_model=ChecklistResponse)
def receipt_checklist(
    service: Reconciliation, tax_year: str | None = Query(default=None)
) -> ChecklistResponse:
    year = _tax_year(tax_year)
    checklist = service.receipt_checklist(year)
    return ChecklistResponse(
        tax_year=year.value,
        total=checklist.total,
        completed=checklist.completed,
        progress=checklist.progress,
        missing_amount=str(quantize_money(checklist.missing_amount)),
        items=[
            ChecklistItemResponse(
                transaction=TransactionResponse.from_domain(item.transaction),
                has_receipt=item.has_receipt,
                is_done=item.is_done,
            )
            for item in checklist.items
        ],
    )


@report_router.get("/export/{kind}")
def export_csv(
    kind: str, service: Reporting, tax_year: str | None = Query(default=None)
) -> Response:
    if kind not in ReportingService.EXPORT_KINDS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown export: {kind}",
        )
    year = _tax_year(tax_year)
    content = service.export(kind, year)
    filename = service.default_filename(kind, year)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
