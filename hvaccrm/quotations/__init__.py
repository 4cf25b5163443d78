"""Quotation lifecycle: creation, status changes, versioning and invoicing."""

from hvaccrm.quotations.errors import (
    ConflictError,
    InvalidStateError,
    LifecycleError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from hvaccrm.quotations.repository import (
    fetch_project_quotations,
    fetch_quotation,
    fetch_version_history,
    get_quotation_stats,
    search_quotations,
)
from hvaccrm.quotations.service import (
    convert_to_invoice,
    create_quotation,
    create_version,
    expire_quotations,
    next_version,
    update_status,
)
from hvaccrm.quotations.totals import compute_totals, validate_items

__all__ = [
    "ConflictError",
    "InvalidStateError",
    "LifecycleError",
    "NotFoundError",
    "StoreError",
    "ValidationError",
    "compute_totals",
    "convert_to_invoice",
    "create_quotation",
    "create_version",
    "expire_quotations",
    "fetch_project_quotations",
    "fetch_quotation",
    "fetch_version_history",
    "get_quotation_stats",
    "next_version",
    "search_quotations",
    "update_status",
    "validate_items",
]
