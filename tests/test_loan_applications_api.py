from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from app.services import unified_applications
from app.services.unified_applications import UnifiedApplicationRow


def _row(**overrides) -> UnifiedApplicationRow:
    defaults = dict(
        id=uuid4(),
        source="approval",
        user_id=uuid4(),
        status="pending",
        applicant_name="Ada Nangolo",
        created_at=datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc),
        priority="normal",
        amount=Decimal("5000"),
        term_months=12,
    )
    defaults.update(overrides)
    return UnifiedApplicationRow(**defaults)


def test_list_loan_applications_passes_filters(client, monkeypatch):
    rows = [_row(), _row(source="loan", status="approved", priority=None)]
    captured = {}

    async def _list(db, filters):
        captured["filters"] = filters
        return rows, "unified_view"

    monkeypatch.setattr(unified_applications, "list_applications", _list)

    resp = client.get(
        "/api/v1/loan-applications",
        params={
            "status": "pending",
            "search": "ada",
            "date_from": "2026-03-01",
            "amount_min": "100",
            "limit": 1,
        },
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total"] == 2
    assert data["strategy"] == "unified_view"
    assert len(data["items"]) == 1
    assert data["items"][0]["source"] == "approval"
    assert Decimal(str(data["items"][0]["amount"])) == Decimal("5000")
    filters = captured["filters"]
    assert filters.status == "pending"
    assert filters.search == "ada"
    assert filters.date_from.isoformat().startswith("2026-03-01")
    assert filters.amount_min == Decimal("100")


def test_amount_range_must_be_ordered(client):
    resp = client.get("/api/v1/loan-applications", params={"amount_min": "500", "amount_max": "100"})
    assert resp.status_code == 422


def test_clients_cannot_list_applications(client, test_user):
    test_user.roles = ["client"]
    resp = client.get("/api/v1/loan-applications")
    assert resp.status_code == 403
