"""Pytest configuration and fixtures for HVAC CRM tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from hvaccrm.config import QuotationConfig, reset_config
from hvaccrm.db.models import Base, ProjectModel
from hvaccrm.models import EmployeeRef, QuotationCreate, QuotationItemInput

ENV_VARS = (
    "DEFAULT_CURRENCY",
    "DEFAULT_TAX_RATE",
    "QUOTE_NUMBER_PREFIX",
    "INVOICE_NUMBER_PREFIX",
    "INVOICE_DUE_DAYS",
    "INVOICE_PAYMENT_TERMS",
    "INVOICE_TAX_BASE",
    "QUOTE_STRICT_TRANSITIONS",
)


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Point configuration at an in-memory database with default settings."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture
def settings() -> QuotationConfig:
    """Default quotation settings (18% tax, tax-on-quote-total conversion)."""
    return QuotationConfig()


@pytest.fixture
def employee() -> EmployeeRef:
    """Acting sales engineer."""
    return EmployeeRef(id=uuid4(), email="sales@example.com", full_name="Asha Menon")


@pytest.fixture
def customer_id():
    return uuid4()


@pytest_asyncio.fixture()
async def project(db_session: AsyncSession, customer_id) -> ProjectModel:
    """Project with a 1500 budget."""
    project = ProjectModel(
        project_number="PRJ-0001",
        project_name="Office HVAC retrofit",
        customer_id=customer_id,
        budget=Decimal("1500.00"),
    )
    db_session.add(project)
    await db_session.flush()
    return project


@pytest.fixture
def sample_items() -> list[QuotationItemInput]:
    """2 x 500 + 1 x 1000 = 2000 subtotal."""
    return [
        QuotationItemInput(
            description="Split AC 1.5 ton",
            quantity=Decimal("2"),
            unit_price=Decimal("500"),
            unit="piece",
            category="equipment",
        ),
        QuotationItemInput(
            description="Installation and copper piping",
            quantity=Decimal("1"),
            unit_price=Decimal("1000"),
            unit="job",
            category="labour",
            notes="Up to 5 m piping",
        ),
    ]


@pytest.fixture
def quotation_data(customer_id, project: ProjectModel) -> QuotationCreate:
    """Header for a 10% discount, 18% tax quotation linked to the project."""
    return QuotationCreate(
        customer_id=customer_id,
        project_id=project.id,
        quote_title="Ground floor split AC installation",
        discount_percentage=Decimal("10"),
        tax_rate=Decimal("18"),
    )
