from decimal import Decimal

import pytest

from strata.core.errors import StateConflict, ValidationFailed
from strata.models.models import AuditLog, Bill, SystemSetting
from strata.services import billing


def test_generation_adds_unit_adjustment_to_base_amount(db_session, create_unit):
    create_unit("A-1-1", unit_type="BAWAH")
    create_unit("A-1-2", unit_type="BAWAH", adjustment="40")

    result = billing.generate_monthly_bills(db_session, 3, 2025)

    assert result.count == 2
    bills = db_session.query(Bill).order_by(Bill.amount.asc()).all()
    assert [bill.amount for bill in bills] == [Decimal("88.00"), Decimal("128.00")]
    assert {bill.status for bill in bills} == {"PENDING"}
    assert {(bill.month, bill.year, bill.type) for bill in bills} == {(3, 2025, "MAINTENANCE")}


def test_generation_uses_unit_type_rates(db_session, create_unit):
    atas = create_unit("B-2-1", unit_type="ATAS")
    bawah = create_unit("B-2-2", unit_type="BAWAH")

    billing.generate_monthly_bills(db_session, 4, 2025)

    amounts = {bill.unit_id: bill.amount for bill in db_session.query(Bill).all()}
    assert amounts[atas.id] == Decimal("95.00")
    assert amounts[bawah.id] == Decimal("88.00")


def test_generation_follows_stored_settings(db_session, create_unit):
    db_session.add(SystemSetting(key="BASE_MONTHLY_BILL_ATAS", value="120"))
    db_session.commit()
    create_unit("C-1-1", unit_type="ATAS", adjustment="5")

    billing.generate_monthly_bills(db_session, 5, 2025)

    assert db_session.query(Bill).one().amount == Decimal("125.00")


def test_generation_is_idempotent(db_session, create_unit):
    create_unit("D-1-1")
    create_unit("D-1-2", unit_type="ATAS")

    first = billing.generate_monthly_bills(db_session, 6, 2025)
    second = billing.generate_monthly_bills(db_session, 6, 2025)

    assert first.count == 2
    assert second.count == 0
    assert sorted(second.skipped_unit_ids) == sorted(bill.unit_id for bill in db_session.query(Bill).all())
    assert db_session.query(Bill).count() == 2


def test_generation_skips_units_with_any_bill_for_the_period(db_session, create_unit, create_bill):
    sinking = create_unit("D-2-1")
    create_bill(sinking, amount="30.00", month=3, year=2025, bill_type="SINKING")
    create_unit("D-2-2")

    result = billing.generate_monthly_bills(db_session, 3, 2025)

    assert result.count == 1
    assert result.skipped_unit_ids == [sinking.id]
    assert db_session.query(Bill).filter(Bill.unit_id == sinking.id).count() == 1


def test_generation_skips_inactive_units(db_session, create_unit):
    create_unit("E-1-1")
    create_unit("E-1-2", is_active=False)

    result = billing.generate_monthly_bills(db_session, 7, 2025)

    assert result.count == 1


def test_generation_queues_owner_notifications(db_session, create_user, create_unit, monkeypatch):
    sent = []
    monkeypatch.setattr("strata.services.whatsapp.send_whatsapp", lambda phone, message: sent.append(phone) or True)
    owner = create_user(phone="0123456789")
    create_unit("F-1-1", owner=owner)

    billing.generate_monthly_bills(db_session, 8, 2025)

    assert sent == ["0123456789"]


def test_generation_notification_failure_does_not_abort(db_session, create_user, create_unit, monkeypatch):
    def _fail(*args, **kwargs):
        raise RuntimeError("provider down")

    monkeypatch.setattr("strata.services.email.send_email", _fail)
    create_unit("G-1-1", owner=create_user())
    create_unit("G-1-2", owner=create_user())

    assert billing.generate_monthly_bills(db_session, 9, 2025).count == 2


@pytest.mark.parametrize("month,year", [(0, 2025), (13, 2025), (1, 1999)])
def test_generation_rejects_invalid_period(db_session, month, year):
    with pytest.raises(ValidationFailed):
        billing.generate_monthly_bills(db_session, month, year)


def test_generation_is_audited_when_actor_given(db_session, create_user, create_unit):
    admin = create_user(role="JMB")
    create_unit("H-1-1")

    billing.generate_monthly_bills(db_session, 10, 2025, actor_id=admin.id)

    entry = db_session.query(AuditLog).filter(AuditLog.action == "GENERATE_BILLS").one()
    assert entry.actor_user_id == admin.id


def test_create_bill_adds_adjustment_and_rejects_duplicates(db_session, create_user, create_unit):
    staff = create_user(role="STAFF")
    unit = create_unit("K-1-1", adjustment="12")

    bill = billing.create_bill(db_session, unit.id, "500", 1, 2026, "DEPOSIT", staff)
    assert bill.amount == Decimal("512.00")
    assert bill.status == "PENDING"

    with pytest.raises(StateConflict):
        billing.create_bill(db_session, unit.id, "500", 1, 2026, "DEPOSIT", staff)
    # Different type in the same period is allowed.
    billing.create_bill(db_session, unit.id, "20", 1, 2026, "SINKING", staff)
    assert db_session.query(Bill).count() == 2


@pytest.mark.parametrize("amount,bill_type", [("0", "MAINTENANCE"), ("-3", "MAINTENANCE"), ("abc", "MAINTENANCE"), ("10", "OTHER")])
def test_create_bill_validation(db_session, create_user, create_unit, amount, bill_type):
    staff = create_user(role="STAFF")
    unit = create_unit()
    with pytest.raises(ValidationFailed) as excinfo:
        billing.create_bill(db_session, unit.id, amount, 1, 2026, bill_type, staff)
    assert excinfo.value.message == "Semua medan wajib diisi dengan format yang betul"


def test_generate_endpoint_requires_management(db_session, create_user, create_unit, api_client):
    create_unit()
    owner = create_user(role="OWNER")
    response = api_client(owner).post("/billing/generate", json={"month": 3, "year": 2025})
    assert response.status_code == 403

    staff = create_user(role="STAFF")
    response = api_client(staff).post("/billing/generate", json={"month": 3, "year": 2025})
    assert response.status_code == 200
    assert response.json()["count"] == 1


def test_bill_listing_is_scoped_for_residents(db_session, create_user, create_unit, create_bill, api_client):
    owner = create_user()
    mine = create_unit("L-1-1", owner=owner)
    other = create_unit("L-1-2")
    create_bill(mine)
    other_bill = create_bill(other)

    response = api_client(owner).get("/billing/bills")
    assert response.status_code == 200
    assert [row["unit_number"] for row in response.json()] == ["L-1-1"]

    assert api_client(owner).get(f"/billing/bills/{other_bill.id}").status_code == 403

    staff = create_user(role="STAFF")
    response = api_client(staff).get("/billing/bills", params={"status": "PENDING"})
    assert len(response.json()) == 2


def test_create_bill_endpoint_conflict(db_session, create_user, create_unit, api_client):
    staff = create_user(role="STAFF")
    unit = create_unit()
    client = api_client(staff)
    payload = {"unit_id": unit.id, "amount": "88", "month": 2, "year": 2026, "type": "MAINTENANCE"}

    assert client.post("/billing/bills", json=payload).status_code == 201
    response = client.post("/billing/bills", json=payload)
    assert response.status_code == 409
    assert "sudah wujud" in response.json()["detail"]
