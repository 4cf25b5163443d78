"""Database layer for the HVAC CRM with async SQLAlchemy."""

from hvaccrm.db.connection import get_db, get_session, init_db
from hvaccrm.db.models import (
    Base,
    InvoiceItemModel,
    InvoiceModel,
    PaymentModel,
    ProjectActivityModel,
    ProjectModel,
    QuotationItemModel,
    QuotationModel,
)

__all__ = [
    "Base",
    "ProjectModel",
    "QuotationModel",
    "QuotationItemModel",
    "InvoiceModel",
    "InvoiceItemModel",
    "PaymentModel",
    "ProjectActivityModel",
    "get_db",
    "get_session",
    "init_db",
]
