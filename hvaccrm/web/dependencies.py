"""Shared dependencies for HVAC CRM web routes.

Usage:
    from fastapi import Depends
    from hvaccrm.web.dependencies import get_actor

    @router.post("/api/quotations")
    async def create(actor: EmployeeRef = Depends(get_actor)):
        ...
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Header

from hvaccrm.models import EmployeeRef


def get_actor(
    x_employee_id: UUID = Header(..., alias="X-Employee-Id"),
    x_employee_email: str | None = Header(None, alias="X-Employee-Email"),
) -> EmployeeRef:
    """Acting employee for the request.

    The id is trusted as given; verifying it belongs to the authenticated
    user is the job of whatever sits in front of this API.
    """
    return EmployeeRef(id=x_employee_id, email=x_employee_email)
