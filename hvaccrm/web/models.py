"""Request/response models for the HVAC CRM web API.

Usage:
    from hvaccrm.web.models import StatusUpdateRequest

    @router.patch("/api/quotations/{quotation_id}/status")
    async def change_status(quotation_id: UUID, request: StatusUpdateRequest):
        ...
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from hvaccrm.models import (
    ConversionType,
    QuotationCreate,
    QuotationItemInput,
    QuotationStatus,
)


# ============================================================================
# Quotation Requests
# ============================================================================


class QuotationCreateRequest(QuotationCreate):
    """Header plus line items.

    Used by: POST /api/quotations
    """

    items: list[QuotationItemInput] = Field(default_factory=list)


class StatusUpdateRequest(BaseModel):
    """Used by: PATCH /api/quotations/{id}/status"""

    status: QuotationStatus
    notes: str | None = None  # Rejection reason
    expected_row_version: int | None = None


class ConversionRequest(BaseModel):
    """Used by: POST /api/quotations/{id}/convert-to-invoice"""

    invoice_type: ConversionType = ConversionType.FULL
    percentage: Decimal | None = None
    due_date: date | None = None
    payment_terms: str | None = None
    notes: str | None = None


# ============================================================================
# Responses
# ============================================================================


class QuotationItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    total_amount: Decimal
    category: str | None = None
    notes: str | None = None
    sort_order: int


class QuotationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quote_number: str
    version: str
    is_latest_version: bool
    parent_quote_id: UUID | None = None
    superseded_by: UUID | None = None
    row_version: int
    status: QuotationStatus
    project_id: UUID | None = None
    customer_id: UUID
    created_by: UUID
    quote_title: str
    description: str | None = None
    scope_of_work: str | None = None
    terms_and_conditions: str | None = None
    notes: str | None = None
    subtotal: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    issue_date: date
    valid_until: date | None = None
    sent_date: datetime | None = None
    approved_date: datetime | None = None
    created_at: datetime
    updated_at: datetime
    items: list[QuotationItemResponse] = Field(default_factory=list)


class QuotationSummaryResponse(BaseModel):
    """Quotation header without items, for listings."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quote_number: str
    version: str
    is_latest_version: bool
    status: QuotationStatus
    project_id: UUID | None = None
    customer_id: UUID
    quote_title: str
    total_amount: Decimal
    issue_date: date
    valid_until: date | None = None
    created_at: datetime


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class QuotationPageResponse(BaseModel):
    data: list[QuotationSummaryResponse]
    meta: PaginationMeta


class VersionHistoryResponse(BaseModel):
    quote_number: str
    latest_id: UUID | None = None
    versions: list[QuotationSummaryResponse]


class QuotationStatsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    total_value: Decimal
    approved_value: Decimal
    conversion_rate: Decimal


class InvoiceCreatedResponse(BaseModel):
    invoice_id: UUID


class ExpireResponse(BaseModel):
    expired: list[UUID]
    count: int


# ============================================================================
# Project Responses
# ============================================================================


class FinancialSummaryResponse(BaseModel):
    project_id: UUID
    budget: Decimal
    total_quoted: Decimal
    total_invoiced: Decimal
    total_received: Decimal
    outstanding_quotes: Decimal
    outstanding_invoices: Decimal
    profit_margin: Decimal | None = None
    profit_margin_display: str


class ActivityResponse(BaseModel):
    id: UUID
    activity_type: str
    title: str
    description: str | None = None
    related_entity_type: str | None = None
    related_entity_id: UUID | None = None
    performed_by: UUID
    performed_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
