"""Project activity log.

Activities are appended inside a SAVEPOINT after the primary change has been
flushed. A failure here is logged and dropped; it never undoes the quotation
or invoice change that triggered it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hvaccrm.db.models import InvoiceModel, ProjectActivityModel, QuotationModel
from hvaccrm.models import ActivityType, EmployeeRef

logger = structlog.get_logger(__name__)


async def log_activity(
    session: AsyncSession,
    project_id: UUID,
    activity_type: ActivityType | str,
    title: str,
    actor: EmployeeRef,
    description: str | None = None,
    related_entity_type: str | None = None,
    related_entity_id: UUID | None = None,
    metadata: dict[str, Any] | None = None,
) -> ProjectActivityModel | None:
    """Append one activity entry; return it, or None if it could not be written.

    Args:
        session: Session holding the caller's unit of work
        project_id: Project the event belongs to
        activity_type: Business event (see ActivityType)
        title: Short human-readable summary
        actor: Employee who performed the action
        description: Optional longer text (e.g. a rejection reason)
        related_entity_type: "quotation", "invoice", ...
        related_entity_id: Id of the related record
        metadata: Free-form JSON context
    """
    activity_type = ActivityType(activity_type)

    try:
        async with session.begin_nested():
            entry = ProjectActivityModel(
                project_id=project_id,
                activity_type=activity_type.value,
                title=title,
                description=description,
                related_entity_type=related_entity_type,
                related_entity_id=related_entity_id,
                performed_by=actor.id,
                performed_at=datetime.now(timezone.utc),
                extra=metadata or {},
            )
            session.add(entry)
    except Exception as exc:
        logger.warning(
            "activity_log_failed",
            project_id=str(project_id),
            activity_type=activity_type.value,
            related_entity_id=str(related_entity_id) if related_entity_id else None,
            error=str(exc),
            exc_info=True,
        )
        return None

    return entry


async def log_quote_created(
    session: AsyncSession, quotation: QuotationModel, actor: EmployeeRef
) -> ProjectActivityModel | None:
    if quotation.project_id is None:
        return None
    return await log_activity(
        session,
        quotation.project_id,
        ActivityType.QUOTE_CREATED,
        f"Quote {quotation.quote_number} created",
        actor,
        related_entity_type="quotation",
        related_entity_id=quotation.id,
        metadata={"version": quotation.version},
    )


async def log_quote_sent(
    session: AsyncSession, quotation: QuotationModel, actor: EmployeeRef
) -> ProjectActivityModel | None:
    if quotation.project_id is None:
        return None
    return await log_activity(
        session,
        quotation.project_id,
        ActivityType.QUOTE_SENT,
        f"Quote {quotation.quote_number} sent to customer",
        actor,
        related_entity_type="quotation",
        related_entity_id=quotation.id,
    )


async def log_quote_approved(
    session: AsyncSession, quotation: QuotationModel, actor: EmployeeRef
) -> ProjectActivityModel | None:
    if quotation.project_id is None:
        return None
    return await log_activity(
        session,
        quotation.project_id,
        ActivityType.QUOTE_APPROVED,
        f"Quote {quotation.quote_number} approved by customer",
        actor,
        related_entity_type="quotation",
        related_entity_id=quotation.id,
    )


async def log_quote_rejected(
    session: AsyncSession,
    quotation: QuotationModel,
    actor: EmployeeRef,
    reason: str | None = None,
) -> ProjectActivityModel | None:
    if quotation.project_id is None:
        return None
    return await log_activity(
        session,
        quotation.project_id,
        ActivityType.QUOTE_REJECTED,
        f"Quote {quotation.quote_number} rejected",
        actor,
        description=f"Reason: {reason}" if reason else None,
        related_entity_type="quotation",
        related_entity_id=quotation.id,
    )


async def log_invoice_created(
    session: AsyncSession, invoice: InvoiceModel, actor: EmployeeRef
) -> ProjectActivityModel | None:
    if invoice.project_id is None:
        return None
    return await log_activity(
        session,
        invoice.project_id,
        ActivityType.INVOICE_CREATED,
        f"Invoice {invoice.invoice_number} created",
        actor,
        related_entity_type="invoice",
        related_entity_id=invoice.id,
        metadata={"quote_id": str(invoice.quote_id), "quote_version": invoice.quote_version},
    )


async def fetch_project_activities(
    session: AsyncSession, project_id: UUID, limit: int = 50
) -> list[ProjectActivityModel]:
    """Newest first."""
    stmt = (
        select(ProjectActivityModel)
        .where(ProjectActivityModel.project_id == project_id)
        .order_by(ProjectActivityModel.performed_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
