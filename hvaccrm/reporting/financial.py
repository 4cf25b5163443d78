"""Project financial rollup across quotations, invoices and payments."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hvaccrm.db.models import InvoiceModel, PaymentModel, ProjectModel, QuotationModel
from hvaccrm.models import FinancialSummary, InvoiceStatus, QuotationStatus
from hvaccrm.quotations.errors import NotFoundError, StoreError
from hvaccrm.quotations.totals import HUNDRED, round_money

OUTSTANDING_QUOTE_STATES = {QuotationStatus.SENT.value, QuotationStatus.VIEWED.value}
OUTSTANDING_INVOICE_STATES = {InvoiceStatus.SENT.value, InvoiceStatus.OVERDUE.value}

ZERO = Decimal("0")


def _field(record: Any, name: str) -> Any:
    return record[name] if isinstance(record, Mapping) else getattr(record, name)


def _money(value: Any) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _status(record: Any) -> str:
    status = _field(record, "status")
    return getattr(status, "value", status)


def compute_financial_summary(
    project_id: UUID,
    budget: Decimal | None,
    quotations: Iterable[Any],
    invoices: Iterable[Any],
    payments: Iterable[Any],
) -> FinancialSummary:
    """Roll up a project's money.

    Records may be ORM rows or mappings. Every quotation counts towards
    ``total_quoted`` whatever its status; ``profit_margin`` is None when
    nothing has been received.
    """
    quotations = list(quotations)
    invoices = list(invoices)
    budget = _money(budget)

    total_quoted = sum((_money(_field(q, "total_amount")) for q in quotations), ZERO)
    total_invoiced = sum((_money(_field(i, "total_amount")) for i in invoices), ZERO)
    total_received = sum((_money(_field(p, "amount")) for p in payments), ZERO)
    outstanding_quotes = sum(
        (_money(_field(q, "total_amount")) for q in quotations if _status(q) in OUTSTANDING_QUOTE_STATES),
        ZERO,
    )
    outstanding_invoices = sum(
        (_money(_field(i, "balance_due")) for i in invoices if _status(i) in OUTSTANDING_INVOICE_STATES),
        ZERO,
    )

    profit_margin = None
    if total_received > 0:
        profit_margin = round_money((total_received - budget) / total_received * HUNDRED)

    return FinancialSummary(
        project_id=project_id,
        budget=round_money(budget),
        total_quoted=round_money(total_quoted),
        total_invoiced=round_money(total_invoiced),
        total_received=round_money(total_received),
        outstanding_quotes=round_money(outstanding_quotes),
        outstanding_invoices=round_money(outstanding_invoices),
        profit_margin=profit_margin,
    )


async def fetch_project_financial_summary(
    session: AsyncSession, project_id: UUID
) -> FinancialSummary:
    """Load a project's records and roll them up.

    Raises:
        NotFoundError: Project does not exist
        StoreError: Database error
    """
    try:
        project = await session.get(ProjectModel, project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        quotations = (
            await session.execute(
                select(QuotationModel.status, QuotationModel.total_amount).where(
                    QuotationModel.project_id == project_id
                )
            )
        ).mappings().all()
        invoices = (
            await session.execute(
                select(InvoiceModel.status, InvoiceModel.total_amount, InvoiceModel.balance_due).where(
                    InvoiceModel.project_id == project_id
                )
            )
        ).mappings().all()
        payments = (
            await session.execute(
                select(PaymentModel.amount).where(PaymentModel.project_id == project_id)
            )
        ).mappings().all()
    except SQLAlchemyError as exc:
        raise StoreError(f"Failed to load financials for project {project_id}") from exc

    return compute_financial_summary(project_id, project.budget, quotations, invoices, payments)
