"""Tests for hvaccrm.web.routes.quotations - Quotation lifecycle routes."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import UUID, uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from hvaccrm.db.connection import get_db
from hvaccrm.models import ConversionType, QuotationStats, QuotationStatus
from hvaccrm.quotations.errors import (
    ConflictError,
    InvalidStateError,
    LifecycleError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from hvaccrm.quotations.repository import QuotationPage, VersionHistory
from hvaccrm.web.app import lifecycle_error_handler
from hvaccrm.web.routes import quotations

EMPLOYEE_ID = UUID("3f0c1a52-8b7e-4d8a-9a51-6f2e0d4b7c11")
HEADERS = {"X-Employee-Id": str(EMPLOYEE_ID), "X-Employee-Email": "sales@example.com"}


@pytest.fixture
def mock_db_session():
    """Mock database session."""
    return AsyncMock()


@pytest.fixture
def app(mock_db_session):
    """Create test FastAPI app with quotations router."""
    test_app = FastAPI()
    test_app.include_router(quotations.router)
    test_app.add_exception_handler(LifecycleError, lifecycle_error_handler)
    test_app.dependency_overrides[get_db] = lambda: mock_db_session
    return test_app


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


def make_quotation(**overrides):
    """Quotation row as returned by the service layer."""
    now = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
    values = dict(
        id=uuid4(),
        quote_number="Q001",
        version="v1",
        is_latest_version=True,
        parent_quote_id=None,
        superseded_by=None,
        row_version=1,
        status="draft",
        project_id=uuid4(),
        customer_id=uuid4(),
        created_by=EMPLOYEE_ID,
        quote_title="Ground floor split AC installation",
        description=None,
        scope_of_work=None,
        terms_and_conditions=None,
        notes=None,
        subtotal=Decimal("2000.00"),
        discount_percentage=Decimal("10.00"),
        discount_amount=Decimal("200.00"),
        tax_rate=Decimal("18.00"),
        tax_amount=Decimal("324.00"),
        total_amount=Decimal("2124.00"),
        issue_date=date(2026, 3, 1),
        valid_until=None,
        sent_date=None,
        approved_date=None,
        created_at=now,
        updated_at=now,
        items=[
            SimpleNamespace(
                id=uuid4(),
                description="Split AC 1.5 ton",
                quantity=Decimal("2.000"),
                unit="piece",
                unit_price=Decimal("500.00"),
                total_amount=Decimal("1000.00"),
                category="equipment",
                notes=None,
                sort_order=0,
            )
        ],
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def create_payload():
    return {
        "customer_id": str(uuid4()),
        "quote_title": "Ground floor split AC installation",
        "discount_percentage": "10",
        "tax_rate": "18",
        "items": [
            {"description": "Split AC 1.5 ton", "quantity": "2", "unit_price": "500"},
            {"description": "Installation", "quantity": "1", "unit_price": "1000", "unit": "job"},
        ],
    }


class TestCreateQuotation:
    """Tests for POST /api/quotations route."""

    @patch("hvaccrm.quotations.service.create_quotation", new_callable=AsyncMock)
    def test_create_success(self, mock_create, client, create_payload, mock_db_session):
        mock_create.return_value = make_quotation()

        response = client.post("/api/quotations", json=create_payload, headers=HEADERS)

        assert response.status_code == 201
        body = response.json()
        assert body["quote_number"] == "Q001"
        assert body["version"] == "v1"
        assert body["status"] == "draft"
        assert body["total_amount"] == "2124.00"
        assert len(body["items"]) == 1

        session, data, items, actor = mock_create.call_args.args
        assert session is mock_db_session
        assert data.quote_title == "Ground floor split AC installation"
        assert [item.quantity for item in items] == [Decimal("2"), Decimal("1")]
        assert actor.id == EMPLOYEE_ID
        assert actor.email == "sales@example.com"

    @patch("hvaccrm.quotations.service.create_quotation", new_callable=AsyncMock)
    def test_create_requires_employee_header(self, mock_create, client, create_payload):
        response = client.post("/api/quotations", json=create_payload)

        assert response.status_code == 422
        mock_create.assert_not_called()

    @patch("hvaccrm.quotations.service.create_quotation", new_callable=AsyncMock)
    def test_create_rejects_malformed_employee_id(self, mock_create, client, create_payload):
        response = client.post(
            "/api/quotations", json=create_payload, headers={"X-Employee-Id": "not-a-uuid"}
        )

        assert response.status_code == 422
        mock_create.assert_not_called()

    @patch("hvaccrm.quotations.service.create_quotation", new_callable=AsyncMock)
    def test_create_rejects_zero_quantity(self, mock_create, client, create_payload):
        create_payload["items"][0]["quantity"] = "0"

        response = client.post("/api/quotations", json=create_payload, headers=HEADERS)

        assert response.status_code == 422
        mock_create.assert_not_called()

    @patch("hvaccrm.quotations.service.create_quotation", new_callable=AsyncMock)
    def test_create_rejects_discount_over_100(self, mock_create, client, create_payload):
        create_payload["discount_percentage"] = "120"

        response = client.post("/api/quotations", json=create_payload, headers=HEADERS)

        assert response.status_code == 422
        mock_create.assert_not_called()

    @patch("hvaccrm.quotations.service.create_quotation", new_callable=AsyncMock)
    def test_create_without_items_maps_validation_error(self, mock_create, client, create_payload):
        mock_create.side_effect = ValidationError("Quotation must have at least one line item")
        create_payload["items"] = []

        response = client.post("/api/quotations", json=create_payload, headers=HEADERS)

        assert response.status_code == 422
        assert response.json() == {
            "detail": "Quotation must have at least one line item",
            "error": "ValidationError",
        }

    @patch("hvaccrm.quotations.service.create_quotation", new_callable=AsyncMock)
    def test_store_failure_maps_to_503(self, mock_create, client, create_payload):
        mock_create.side_effect = StoreError("Failed to create quotation")

        response = client.post("/api/quotations", json=create_payload, headers=HEADERS)

        assert response.status_code == 503
        assert response.json()["error"] == "StoreError"


class TestListQuotations:
    """Tests for GET /api/quotations route."""

    @patch("hvaccrm.quotations.repository.search_quotations", new_callable=AsyncMock)
    def test_list_defaults(self, mock_search, client):
        rows = [make_quotation(quote_number="Q002"), make_quotation()]
        mock_search.return_value = QuotationPage(data=rows, page=1, limit=10, total=2)

        response = client.get("/api/quotations")

        assert response.status_code == 200
        body = response.json()
        assert [q["quote_number"] for q in body["data"]] == ["Q002", "Q001"]
        assert "items" not in body["data"][0]
        assert body["meta"] == {"page": 1, "limit": 10, "total": 2, "total_pages": 1}

        kwargs = mock_search.call_args.kwargs
        assert kwargs["latest_only"] is True
        assert kwargs["status"] is None

    @patch("hvaccrm.quotations.repository.search_quotations", new_callable=AsyncMock)
    def test_list_with_filters(self, mock_search, client):
        project_id = uuid4()
        mock_search.return_value = QuotationPage(data=[], page=3, limit=5, total=11)

        response = client.get(
            "/api/quotations",
            params={
                "search": "chiller",
                "status": "sent",
                "project_id": str(project_id),
                "page": 3,
                "limit": 5,
                "all_versions": "true",
            },
        )

        assert response.status_code == 200
        assert response.json()["meta"]["total_pages"] == 3
        kwargs = mock_search.call_args.kwargs
        assert kwargs["search"] == "chiller"
        assert kwargs["status"] == QuotationStatus.SENT
        assert kwargs["project_id"] == project_id
        assert kwargs["page"] == 3
        assert kwargs["limit"] == 5
        assert kwargs["latest_only"] is False

    @patch("hvaccrm.quotations.repository.search_quotations", new_callable=AsyncMock)
    def test_list_rejects_unknown_status(self, mock_search, client):
        response = client.get("/api/quotations", params={"status": "archived"})

        assert response.status_code == 422
        mock_search.assert_not_called()

    @patch("hvaccrm.quotations.repository.search_quotations", new_callable=AsyncMock)
    def test_list_rejects_oversized_page(self, mock_search, client):
        response = client.get("/api/quotations", params={"limit": 500})

        assert response.status_code == 422


class TestQuotationStats:
    """Tests for GET /api/quotations/stats route."""

    @patch("hvaccrm.quotations.repository.get_quotation_stats", new_callable=AsyncMock)
    def test_stats(self, mock_stats, client):
        mock_stats.return_value = QuotationStats(
            total=4,
            by_status={"draft": 1, "sent": 2, "approved": 1},
            total_value=Decimal("8496.00"),
            approved_value=Decimal("2124.00"),
            conversion_rate=Decimal("25.00"),
        )

        response = client.get("/api/quotations/stats")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 4
        assert body["by_status"]["sent"] == 2
        assert body["conversion_rate"] == "25.00"
        assert mock_stats.call_args.kwargs["project_id"] is None


class TestGetQuotation:
    """Tests for GET /api/quotations/{id} and its version history."""

    @patch("hvaccrm.quotations.repository.fetch_quotation", new_callable=AsyncMock)
    def test_get_success(self, mock_fetch, client):
        quotation = make_quotation()
        mock_fetch.return_value = quotation

        response = client.get(f"/api/quotations/{quotation.id}")

        assert response.status_code == 200
        assert response.json()["id"] == str(quotation.id)
        assert response.json()["items"][0]["description"] == "Split AC 1.5 ton"

    @patch("hvaccrm.quotations.repository.fetch_quotation", new_callable=AsyncMock)
    def test_get_not_found(self, mock_fetch, client):
        mock_fetch.return_value = None

        response = client.get(f"/api/quotations/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_get_rejects_malformed_id(self, client):
        response = client.get("/api/quotations/not-a-uuid")

        assert response.status_code == 422

    @patch("hvaccrm.quotations.repository.fetch_version_history", new_callable=AsyncMock)
    @patch("hvaccrm.quotations.repository.fetch_quotation", new_callable=AsyncMock)
    def test_version_history(self, mock_fetch, mock_history, client):
        v1 = make_quotation(status="superseded", is_latest_version=False)
        v2 = make_quotation(version="v2", parent_quote_id=v1.id)
        mock_fetch.return_value = v1
        mock_history.return_value = VersionHistory(quote_number="Q001", versions=[v1, v2])

        response = client.get(f"/api/quotations/{v1.id}/versions")

        assert response.status_code == 200
        body = response.json()
        assert body["latest_id"] == str(v2.id)
        assert [v["version"] for v in body["versions"]] == ["v1", "v2"]
        mock_history.assert_awaited_once()
        assert mock_history.call_args.args[1] == "Q001"


class TestCreateVersion:
    """Tests for POST /api/quotations/{id}/versions route."""

    @patch("hvaccrm.quotations.service.create_version", new_callable=AsyncMock)
    def test_create_version(self, mock_version, client):
        original_id = uuid4()
        mock_version.return_value = make_quotation(version="v2", parent_quote_id=original_id)

        response = client.post(
            f"/api/quotations/{original_id}/versions",
            json={"discount_percentage": "5"},
            headers=HEADERS,
        )

        assert response.status_code == 201
        assert response.json()["version"] == "v2"
        _, called_id, changes, actor = mock_version.call_args.args
        assert called_id == original_id
        assert changes.model_dump(exclude_unset=True) == {"discount_percentage": Decimal("5")}
        assert actor.id == EMPLOYEE_ID

    @patch("hvaccrm.quotations.service.create_version", new_callable=AsyncMock)
    def test_versioning_superseded_quote_conflicts(self, mock_version, client):
        mock_version.side_effect = InvalidStateError("Quotation Q001 v1 is not the latest version")

        response = client.post(f"/api/quotations/{uuid4()}/versions", json={}, headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["error"] == "InvalidStateError"


class TestChangeStatus:
    """Tests for PATCH /api/quotations/{id}/status route."""

    @patch("hvaccrm.quotations.service.update_status", new_callable=AsyncMock)
    def test_reject_with_reason(self, mock_update, client):
        quotation_id = uuid4()
        mock_update.return_value = make_quotation(id=quotation_id, status="rejected", row_version=3)

        response = client.patch(
            f"/api/quotations/{quotation_id}/status",
            json={"status": "rejected", "notes": "Budget cut", "expected_row_version": 2},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        args, kwargs = mock_update.call_args
        assert args[1] == quotation_id
        assert args[2] == QuotationStatus.REJECTED
        assert kwargs == {"notes": "Budget cut", "expected_row_version": 2}

    @patch("hvaccrm.quotations.service.update_status", new_callable=AsyncMock)
    def test_unknown_status_rejected(self, mock_update, client):
        response = client.patch(
            f"/api/quotations/{uuid4()}/status", json={"status": "archived"}, headers=HEADERS
        )

        assert response.status_code == 422
        mock_update.assert_not_called()

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (NotFoundError("Quotation not found"), 404),
            (InvalidStateError("Cannot move from approved"), 409),
            (ConflictError("Quotation was modified concurrently"), 409),
        ],
    )
    @patch("hvaccrm.quotations.service.update_status", new_callable=AsyncMock)
    def test_error_mapping(self, mock_update, client, error, status_code):
        mock_update.side_effect = error

        response = client.patch(
            f"/api/quotations/{uuid4()}/status", json={"status": "sent"}, headers=HEADERS
        )

        assert response.status_code == status_code
        assert response.json() == {"detail": str(error), "error": type(error).__name__}


class TestConvertToInvoice:
    """Tests for POST /api/quotations/{id}/convert-to-invoice route."""

    @patch("hvaccrm.quotations.service.convert_to_invoice", new_callable=AsyncMock)
    def test_partial_conversion(self, mock_convert, client):
        quotation_id = uuid4()
        invoice_id = uuid4()
        mock_convert.return_value = invoice_id

        response = client.post(
            f"/api/quotations/{quotation_id}/convert-to-invoice",
            json={"invoice_type": "partial", "percentage": "50", "due_date": "2026-04-01"},
            headers=HEADERS,
        )

        assert response.status_code == 201
        assert response.json() == {"invoice_id": str(invoice_id)}
        conversion = mock_convert.call_args.args[1]
        assert conversion.quote_id == quotation_id
        assert conversion.invoice_type == ConversionType.PARTIAL
        assert conversion.percentage == Decimal("50")
        assert conversion.due_date == date(2026, 4, 1)

    @patch("hvaccrm.quotations.service.convert_to_invoice", new_callable=AsyncMock)
    def test_full_conversion_ignores_percentage(self, mock_convert, client):
        mock_convert.return_value = uuid4()

        response = client.post(
            f"/api/quotations/{uuid4()}/convert-to-invoice",
            json={"percentage": "30"},
            headers=HEADERS,
        )

        assert response.status_code == 201
        conversion = mock_convert.call_args.args[1]
        assert conversion.invoice_type == ConversionType.FULL
        assert conversion.percentage is None

    @patch("hvaccrm.quotations.service.convert_to_invoice", new_callable=AsyncMock)
    def test_unapproved_quote_conflicts(self, mock_convert, client):
        mock_convert.side_effect = InvalidStateError("Quotation Q001 must be approved")

        response = client.post(f"/api/quotations/{uuid4()}/convert-to-invoice", json={}, headers=HEADERS)

        assert response.status_code == 409

    @patch("hvaccrm.quotations.service.convert_to_invoice", new_callable=AsyncMock)
    def test_bad_percentage_is_unprocessable(self, mock_convert, client):
        mock_convert.side_effect = ValidationError("percentage must be greater than 0 and at most 100")

        response = client.post(
            f"/api/quotations/{uuid4()}/convert-to-invoice",
            json={"invoice_type": "partial", "percentage": "150"},
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"


class TestExpireQuotations:
    """Tests for POST /api/quotations/expire route."""

    @patch("hvaccrm.quotations.service.expire_quotations", new_callable=AsyncMock)
    def test_expire_as_of(self, mock_expire, client):
        expired = [uuid4(), uuid4()]
        mock_expire.return_value = expired

        response = client.post("/api/quotations/expire", params={"as_of": "2026-03-01"}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"expired": [str(i) for i in expired], "count": 2}
        assert mock_expire.call_args.kwargs["today"] == date(2026, 3, 1)

    @patch("hvaccrm.quotations.service.expire_quotations", new_callable=AsyncMock)
    def test_expire_defaults_to_today(self, mock_expire, client):
        mock_expire.return_value = []

        response = client.post("/api/quotations/expire", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["count"] == 0
        assert mock_expire.call_args.kwargs["today"] is None


class TestErrorHandler:
    def test_unmapped_lifecycle_error_is_500(self, app, mock_db_session):
        @app.get("/boom")
        async def boom():
            raise LifecycleError("unexpected")

        response = TestClient(app).get("/boom")

        assert response.status_code == 500
        assert response.json()["error"] == "LifecycleError"


def test_session_is_injected(app, mock_db_session):
    """Routes receive the overridden session, not a real one."""
    with patch("hvaccrm.quotations.repository.fetch_quotation", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.return_value = None
        TestClient(app).get(f"/api/quotations/{uuid4()}")

    assert mock_fetch.call_args.args[0] is mock_db_session
