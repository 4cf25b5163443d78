"""Quotation API routes.

Routes:
- POST  /api/quotations                               - Create draft quotation
- GET   /api/quotations                               - Search/paginate latest versions
- GET   /api/quotations/stats                         - Counts and values by status
- POST  /api/quotations/expire                        - Expire overdue sent/viewed quotes
- GET   /api/quotations/{id}                          - Quotation with items
- GET   /api/quotations/{id}/versions                 - Version history of its family
- POST  /api/quotations/{id}/versions                 - Supersede with a new version
- PATCH /api/quotations/{id}/status                   - Change status
- POST  /api/quotations/{id}/convert-to-invoice       - Create invoice from approved quote
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hvaccrm.db.connection import get_db
from hvaccrm.models import EmployeeRef, QuotationChanges, QuotationStatus, QuoteToInvoiceConversion
from hvaccrm.quotations import repository, service
from hvaccrm.quotations.errors import NotFoundError
from hvaccrm.web.dependencies import get_actor
from hvaccrm.web.models import (
    ConversionRequest,
    ExpireResponse,
    InvoiceCreatedResponse,
    PaginationMeta,
    QuotationCreateRequest,
    QuotationPageResponse,
    QuotationResponse,
    QuotationStatsResponse,
    QuotationSummaryResponse,
    StatusUpdateRequest,
    VersionHistoryResponse,
)

router = APIRouter(prefix="/api/quotations", tags=["quotations"])


@router.post("", response_model=QuotationResponse, status_code=status.HTTP_201_CREATED)
async def create_quotation(
    request: QuotationCreateRequest,
    actor: EmployeeRef = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    quotation = await service.create_quotation(db, request, request.items, actor)
    return QuotationResponse.model_validate(quotation)


@router.get("", response_model=QuotationPageResponse)
async def list_quotations(
    search: str | None = Query(None),
    status_filter: QuotationStatus | None = Query(None, alias="status"),
    project_id: UUID | None = Query(None),
    customer_id: UUID | None = Query(None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    all_versions: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Search by quote number or title; newest first."""
    result = await repository.search_quotations(
        db,
        search=search,
        status=status_filter,
        project_id=project_id,
        customer_id=customer_id,
        page=page,
        limit=limit,
        latest_only=not all_versions,
    )
    return QuotationPageResponse(
        data=[QuotationSummaryResponse.model_validate(q) for q in result.data],
        meta=PaginationMeta(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
        ),
    )


@router.get("/stats", response_model=QuotationStatsResponse)
async def quotation_stats(
    project_id: UUID | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    stats = await repository.get_quotation_stats(db, project_id=project_id)
    return QuotationStatsResponse(
        total=stats.total,
        by_status=stats.by_status,
        total_value=stats.total_value,
        approved_value=stats.approved_value,
        conversion_rate=stats.conversion_rate,
    )


@router.post("/expire", response_model=ExpireResponse)
async def expire_quotations(
    as_of: date | None = Query(None),
    actor: EmployeeRef = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Expire sent/viewed quotations whose validity ended before ``as_of`` (default today)."""
    expired = await service.expire_quotations(db, actor, today=as_of)
    return ExpireResponse(expired=expired, count=len(expired))


@router.get("/{quotation_id}", response_model=QuotationResponse)
async def get_quotation(quotation_id: UUID, db: AsyncSession = Depends(get_db)):
    quotation = await repository.fetch_quotation(db, quotation_id)
    if quotation is None:
        raise NotFoundError(f"Quotation {quotation_id} not found")
    return QuotationResponse.model_validate(quotation)


@router.get("/{quotation_id}/versions", response_model=VersionHistoryResponse)
async def get_version_history(quotation_id: UUID, db: AsyncSession = Depends(get_db)):
    quotation = await repository.fetch_quotation(db, quotation_id)
    if quotation is None:
        raise NotFoundError(f"Quotation {quotation_id} not found")

    history = await repository.fetch_version_history(db, quotation.quote_number)
    latest = history.latest
    return VersionHistoryResponse(
        quote_number=history.quote_number,
        latest_id=latest.id if latest else None,
        versions=[QuotationSummaryResponse.model_validate(q) for q in history.versions],
    )


@router.post(
    "/{quotation_id}/versions",
    response_model=QuotationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_version(
    quotation_id: UUID,
    changes: QuotationChanges,
    actor: EmployeeRef = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    quotation = await service.create_version(db, quotation_id, changes, actor)
    return QuotationResponse.model_validate(quotation)


@router.patch("/{quotation_id}/status", response_model=QuotationResponse)
async def change_status(
    quotation_id: UUID,
    request: StatusUpdateRequest,
    actor: EmployeeRef = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    quotation = await service.update_status(
        db,
        quotation_id,
        request.status,
        actor,
        notes=request.notes,
        expected_row_version=request.expected_row_version,
    )
    return QuotationResponse.model_validate(quotation)


@router.post(
    "/{quotation_id}/convert-to-invoice",
    response_model=InvoiceCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def convert_to_invoice(
    quotation_id: UUID,
    request: ConversionRequest,
    actor: EmployeeRef = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    conversion = QuoteToInvoiceConversion(quote_id=quotation_id, **request.model_dump())
    invoice_id = await service.convert_to_invoice(db, conversion, actor)
    return InvoiceCreatedResponse(invoice_id=invoice_id)
