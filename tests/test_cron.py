from datetime import datetime, timezone

import pytest

from strata.config import settings
from strata.models.models import Bill


@pytest.fixture
def cron_secret(monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "s3cret-token")
    return "s3cret-token"


def test_cron_rejects_missing_or_bad_token(db_session, api_client, cron_secret):
    client = api_client()

    assert client.get("/api/cron/billing").status_code == 401
    assert client.get("/api/cron/billing", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.get("/api/cron/reminders", headers={"Authorization": "s3cret-token"}).status_code == 401


def test_cron_rejects_everything_without_configured_secret(db_session, api_client, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", None)

    response = api_client().get("/api/cron/billing", headers={"Authorization": "Bearer "})

    assert response.status_code == 401


def test_cron_billing_generates_current_month(db_session, create_unit, api_client, cron_secret):
    create_unit("M-1-1")
    create_unit("M-1-2", unit_type="ATAS")
    headers = {"Authorization": f"Bearer {cron_secret}"}
    now = datetime.now(timezone.utc)

    response = api_client().get("/api/cron/billing", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "count": 2, "month": now.month, "year": now.year}

    again = api_client().get("/api/cron/billing", headers=headers)
    assert again.json()["count"] == 0
    assert db_session.query(Bill).count() == 2


def test_cron_reminders_counts_reachable_owners(db_session, create_user, create_unit, create_bill, api_client, cron_secret):
    now = datetime.now(timezone.utc)
    create_bill(create_unit("N-1-1", owner=create_user(phone="0198765432")), month=now.month, year=now.year)
    create_bill(create_unit("N-1-2"), month=now.month, year=now.year)
    create_bill(create_unit("N-1-3", owner=create_user()), month=now.month, year=now.year, status="APPROVED")

    response = api_client().get("/api/cron/reminders", headers={"Authorization": f"Bearer {cron_secret}"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "sentCount": 1,
        "totalPending": 2,
        "month": now.month,
        "year": now.year,
    }


def test_cron_internal_failure_returns_500(db_session, api_client, cron_secret, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr("strata.api.cron.generate_monthly_bills", _boom)

    response = api_client().get("/api/cron/billing", headers={"Authorization": f"Bearer {cron_secret}"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "database unavailable"}
