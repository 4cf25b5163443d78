"""SQLAlchemy async database models for the HVAC CRM.

Quotations are versioned in families sharing a ``quote_number``; the database
enforces at most one ``is_latest_version`` row per family.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ProjectModel(Base):
    """Customer project that quotations, invoices and payments hang off."""

    __tablename__ = "projects"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    project_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    project_type: Mapped[str] = mapped_column(Text, nullable=False, default="installation")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft")
    budget: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    site_address: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )


class QuotationModel(Base):
    """One version of a customer quotation.

    ``quote_number`` is stable across versions, ``version`` is ``v1``, ``v2``...
    ``row_version`` is bumped on every update and checked by compare-and-swap.
    """

    __tablename__ = "quotations"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    # Identification & versioning
    quote_number: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    version: Mapped[str] = mapped_column(String(16), nullable=False, default="v1")
    is_latest_version: Mapped[bool] = mapped_column(nullable=False, default=True, index=True)
    parent_quote_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotations.id", ondelete="SET NULL")
    )
    superseded_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft", index=True)

    # References (not owned)
    project_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="SET NULL"), index=True
    )
    customer_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    created_by: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    # Content
    quote_title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    scope_of_work: Mapped[str | None] = mapped_column(Text)
    terms_and_conditions: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)

    # Money; discount_percentage and tax_rate are inputs, the rest derived
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    # Dates
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    valid_until: Mapped[date | None] = mapped_column(Date)
    sent_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )

    items: Mapped[list[QuotationItemModel]] = relationship(
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationItemModel.sort_order",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("discount_percentage >= 0 AND discount_percentage <= 100",
                        name="check_discount_percentage_range"),
        CheckConstraint("tax_rate >= 0", name="check_tax_rate_non_negative"),
        UniqueConstraint("quote_number", "version", name="uq_quotations_number_version"),
        # Enforce one latest version per quote family
        Index(
            "idx_quotations_latest_unique",
            "quote_number",
            unique=True,
            postgresql_where=text("is_latest_version = true"),
            sqlite_where=text("is_latest_version = 1"),
        ),
        Index("idx_quotations_project_created", "project_id", "created_at"),
    )


class QuotationItemModel(Base):
    """Line item owned by a quotation version."""

    __tablename__ = "quotation_items"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    quotation_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False, default="piece")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    category: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    quotation: Mapped[QuotationModel] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_quote_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="check_quote_item_unit_price_non_negative"),
    )


class InvoiceModel(Base):
    """Invoice, usually produced by converting an approved quotation."""

    __tablename__ = "invoices"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    invoice_type: Mapped[str] = mapped_column(Text, nullable=False, default="invoice")

    # Back-references to the source quotation version
    quote_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotations.id", ondelete="SET NULL"), index=True
    )
    quote_version: Mapped[str | None] = mapped_column(String(16))

    project_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="SET NULL"), index=True
    )
    customer_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    created_by: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft", index=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    balance_due: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_terms: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )

    items: Mapped[list[InvoiceItemModel]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItemModel.sort_order",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("balance_due = total_amount - amount_paid", name="check_invoice_balance"),
        CheckConstraint("amount_paid >= 0", name="check_invoice_amount_paid_non_negative"),
    )


class InvoiceItemModel(Base):
    """Line item owned by an invoice."""

    __tablename__ = "invoice_items"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False, default="piece")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    category: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    invoice: Mapped[InvoiceModel] = relationship(back_populates="items")


class PaymentModel(Base):
    """Payment received against an invoice, quotation or project."""

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    payment_reference: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    invoice_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="SET NULL"), index=True
    )
    project_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="SET NULL"), index=True
    )
    quote_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[str] = mapped_column(Text, nullable=False, default="bank_transfer")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="completed")
    recorded_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (CheckConstraint("amount > 0", name="check_payment_amount_positive"),)


class ProjectActivityModel(Base):
    """Append-only audit entry recording a business event on a project."""

    __tablename__ = "project_activities"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    activity_type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    related_entity_type: Mapped[str | None] = mapped_column(Text)
    related_entity_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    performed_by: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    # "metadata" is reserved on declarative classes
    extra: Mapped[dict] = mapped_column("metadata", JSON, default=dict, nullable=False)

    __table_args__ = (
        Index("idx_project_activities_project_time", "project_id", "performed_at"),
    )
