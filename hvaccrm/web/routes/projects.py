"""Project API routes.

Routes:
- GET /api/projects/{id}/financial-summary   - Money rollup for the project
- GET /api/projects/{id}/activities          - Activity log, newest first
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hvaccrm.activity.logger import fetch_project_activities
from hvaccrm.db.connection import get_db
from hvaccrm.reporting.financial import fetch_project_financial_summary
from hvaccrm.web.models import ActivityResponse, FinancialSummaryResponse

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.get("/{project_id}/financial-summary", response_model=FinancialSummaryResponse)
async def financial_summary(project_id: UUID, db: AsyncSession = Depends(get_db)):
    """Quoted, invoiced and received totals with outstanding amounts.

    ``profit_margin`` is null until a payment has been received.
    """
    summary = await fetch_project_financial_summary(db, project_id)
    return FinancialSummaryResponse(
        project_id=summary.project_id,
        budget=summary.budget,
        total_quoted=summary.total_quoted,
        total_invoiced=summary.total_invoiced,
        total_received=summary.total_received,
        outstanding_quotes=summary.outstanding_quotes,
        outstanding_invoices=summary.outstanding_invoices,
        profit_margin=summary.profit_margin,
        profit_margin_display=summary.profit_margin_display,
    )


@router.get("/{project_id}/activities", response_model=list[ActivityResponse])
async def project_activities(
    project_id: UUID,
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    activities = await fetch_project_activities(db, project_id, limit=limit)
    return [
        ActivityResponse(
            id=activity.id,
            activity_type=activity.activity_type,
            title=activity.title,
            description=activity.description,
            related_entity_type=activity.related_entity_type,
            related_entity_id=activity.related_entity_id,
            performed_by=activity.performed_by,
            performed_at=activity.performed_at,
            metadata=activity.extra or {},
        )
        for activity in activities
    ]
