"""HVAC CRM Pydantic models for type-safe data validation.

Monetary values are ``Decimal`` throughout; pydantic coerces numeric strings
and ints, and rejects anything non-numeric at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


class QuotationStatus(str, Enum):
    """Quotation lifecycle states."""

    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    SUPERSEDED = "superseded"  # Replaced by a newer version; terminal


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    PARTIAL = "partial"


class ActivityType(str, Enum):
    """Business events recorded in the project activity log."""

    QUOTE_CREATED = "quote_created"
    QUOTE_SENT = "quote_sent"
    QUOTE_APPROVED = "quote_approved"
    QUOTE_REJECTED = "quote_rejected"
    INVOICE_CREATED = "invoice_created"
    INVOICE_SENT = "invoice_sent"
    PAYMENT_RECEIVED = "payment_received"
    STATUS_CHANGED = "status_changed"
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    NOTE_ADDED = "note_added"
    FILE_UPLOADED = "file_uploaded"


class ConversionType(str, Enum):
    """How much of a quotation an invoice covers."""

    FULL = "full"
    PARTIAL = "partial"


@dataclass(slots=True, frozen=True)
class EmployeeRef:
    """The employee performing an operation."""

    id: UUID
    email: str | None = None
    full_name: str | None = None


class QuotationItemInput(BaseModel):
    """Line item supplied when creating a quotation."""

    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    unit: str = "piece"
    category: str | None = None
    notes: str | None = None

    @field_validator("quantity", "unit_price")
    @classmethod
    def must_be_finite(cls, value: Decimal) -> Decimal:
        if not value.is_finite():
            raise ValueError("must be a finite number")
        return value


class QuotationCreate(BaseModel):
    """Header fields for a new quotation."""

    customer_id: UUID
    project_id: UUID | None = None
    quote_title: str = Field(..., min_length=1)
    quote_number: str | None = None  # Generated when absent
    tax_rate: Decimal | None = Field(default=None, ge=0)  # None -> configured default
    discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    issue_date: date | None = None
    valid_until: date | None = None
    description: str | None = None
    scope_of_work: str | None = None
    terms_and_conditions: str | None = None
    notes: str | None = None

    class Config:
        json_schema_extra = {
            "example": {
                "customer_id": "7d1b6f0e-2f4c-4b5e-9a77-0c4a8a1f2b3c",
                "project_id": "0b0c2f64-5a0e-4c8e-8d3d-2f7a9e6c1d10",
                "quote_title": "VRF system for 3rd floor",
                "tax_rate": "18",
                "discount_percentage": "10",
                "valid_until": "2026-12-31",
            }
        }


class QuotationChanges(BaseModel):
    """Header overrides applied when drafting a new version."""

    quote_title: str | None = Field(default=None, min_length=1)
    tax_rate: Decimal | None = Field(default=None, ge=0)
    discount_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    issue_date: date | None = None
    valid_until: date | None = None
    description: str | None = None
    scope_of_work: str | None = None
    terms_and_conditions: str | None = None
    notes: str | None = None


class QuoteToInvoiceConversion(BaseModel):
    """Request to convert an approved quotation into an invoice.

    ``percentage`` is only meaningful for partial conversions; the range check
    happens in the service so callers get a ``ValidationError``.
    """

    quote_id: UUID
    invoice_type: ConversionType = ConversionType.FULL
    percentage: Decimal | None = None
    due_date: date | None = None  # None -> today + configured due days
    payment_terms: str | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def drop_percentage_for_full(self) -> QuoteToInvoiceConversion:
        if self.invoice_type == ConversionType.FULL:
            self.percentage = None
        return self


@dataclass(slots=True)
class FinancialSummary:
    """Project-level money rollup across quotations, invoices and payments."""

    project_id: UUID
    budget: Decimal
    total_quoted: Decimal
    total_invoiced: Decimal
    total_received: Decimal
    outstanding_quotes: Decimal  # sent/viewed quotations
    outstanding_invoices: Decimal  # balance due on sent/overdue invoices
    profit_margin: Decimal | None  # Percent; None when nothing received

    @property
    def profit_margin_display(self) -> str:
        if self.profit_margin is None:
            return "n/a"
        return f"{self.profit_margin:.2f}%"


@dataclass(slots=True)
class QuotationStats:
    """Counts and values across latest quotation versions."""

    total: int
    by_status: dict[str, int] = field(default_factory=dict)
    total_value: Decimal = Decimal("0")
    approved_value: Decimal = Decimal("0")
    conversion_rate: Decimal = Decimal("0")  # Percent of total approved
