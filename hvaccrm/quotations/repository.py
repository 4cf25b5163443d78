"""Database queries for quotations."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hvaccrm.db.models import QuotationModel
from hvaccrm.models import QuotationStats, QuotationStatus
from hvaccrm.quotations.totals import HUNDRED, round_money

_VERSION_RE = re.compile(r"^v(\d+)$")


def version_number(version: str | None) -> int:
    """Parse ``v<N>``; anything unparsable counts as version 1."""
    match = _VERSION_RE.match((version or "").strip())
    return int(match.group(1)) if match else 1


@dataclass(slots=True)
class QuotationPage:
    data: list[QuotationModel]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass(slots=True)
class VersionHistory:
    quote_number: str
    versions: list[QuotationModel] = field(default_factory=list)

    @property
    def latest(self) -> QuotationModel | None:
        return next((q for q in self.versions if q.is_latest_version), None)


async def fetch_quotation(session: AsyncSession, quotation_id: UUID) -> QuotationModel | None:
    """Return the quotation with its items, or None."""
    stmt = select(QuotationModel).where(QuotationModel.id == quotation_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def fetch_project_quotations(
    session: AsyncSession, project_id: UUID
) -> list[QuotationModel]:
    """All quotation versions linked to a project, newest first."""
    stmt = (
        select(QuotationModel)
        .where(QuotationModel.project_id == project_id)
        .order_by(QuotationModel.created_at.desc(), QuotationModel.quote_number.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def fetch_version_history(session: AsyncSession, quote_number: str) -> VersionHistory:
    """Every version in a quote family, oldest first."""
    stmt = select(QuotationModel).where(QuotationModel.quote_number == quote_number)
    result = await session.execute(stmt)
    versions = sorted(result.scalars().all(), key=lambda q: version_number(q.version))
    return VersionHistory(quote_number=quote_number, versions=versions)


async def count_quote_families(session: AsyncSession) -> int:
    stmt = select(func.count(func.distinct(QuotationModel.quote_number)))
    return (await session.execute(stmt)).scalar_one()


async def search_quotations(
    session: AsyncSession,
    search: str | None = None,
    status: QuotationStatus | str | None = None,
    project_id: UUID | None = None,
    customer_id: UUID | None = None,
    page: int = 1,
    limit: int = 10,
    latest_only: bool = True,
) -> QuotationPage:
    """Filter and paginate quotations, newest first.

    ``search`` matches quote number or title, case-insensitively.
    """
    page = max(page, 1)
    limit = max(limit, 1)

    filters = []
    if latest_only:
        filters.append(QuotationModel.is_latest_version.is_(True))
    if search:
        pattern = f"%{search}%"
        filters.append(
            or_(
                QuotationModel.quote_number.ilike(pattern),
                QuotationModel.quote_title.ilike(pattern),
            )
        )
    if status:
        filters.append(QuotationModel.status == QuotationStatus(status).value)
    if project_id:
        filters.append(QuotationModel.project_id == project_id)
    if customer_id:
        filters.append(QuotationModel.customer_id == customer_id)

    count_stmt = select(func.count()).select_from(QuotationModel).where(*filters)
    total = (await session.execute(count_stmt)).scalar_one()

    stmt = (
        select(QuotationModel)
        .where(*filters)
        .order_by(QuotationModel.created_at.desc(), QuotationModel.quote_number.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return QuotationPage(data=list(result.scalars().all()), page=page, limit=limit, total=total)


async def get_quotation_stats(
    session: AsyncSession, project_id: UUID | None = None
) -> QuotationStats:
    """Counts and values over the latest version of each quotation."""
    stmt = select(QuotationModel.status, QuotationModel.total_amount).where(
        QuotationModel.is_latest_version.is_(True)
    )
    if project_id:
        stmt = stmt.where(QuotationModel.project_id == project_id)

    rows = (await session.execute(stmt)).all()

    by_status: dict[str, int] = {}
    total_value = Decimal("0")
    approved_value = Decimal("0")
    approved_count = 0
    for status, amount in rows:
        by_status[status] = by_status.get(status, 0) + 1
        total_value += amount
        if status == QuotationStatus.APPROVED.value:
            approved_value += amount
            approved_count += 1

    conversion_rate = (
        round_money(Decimal(approved_count) / Decimal(len(rows)) * HUNDRED) if rows else Decimal("0")
    )
    return QuotationStats(
        total=len(rows),
        by_status=by_status,
        total_value=round_money(total_value),
        approved_value=round_money(approved_value),
        conversion_rate=conversion_rate,
    )
