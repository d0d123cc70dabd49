from decimal import Decimal

import pytest

from strata.core.errors import NotFound, PermissionDenied, StateConflict, ValidationFailed
from strata.models.models import AuditLog
from strata.services import units as unit_service


def test_create_unit_normalises_number_and_rejects_duplicates(db_session, create_user):
    committee = create_user(role="JMB")
    owner = create_user()

    unit = unit_service.create_unit(db_session, committee, " j-20-1 ", type="ATAS", owner_id=owner.id)
    assert unit.unit_number == "J-20-1"
    assert unit.owner_id == owner.id

    with pytest.raises(StateConflict) as excinfo:
        unit_service.create_unit(db_session, committee, "J-20-1")
    assert excinfo.value.message == "Nombor unit sudah wujud."


def test_create_unit_validation(db_session, create_user):
    committee = create_user(role="JMB")
    staff = create_user(role="STAFF")

    with pytest.raises(PermissionDenied):
        unit_service.create_unit(db_session, staff, "J-1-1")
    with pytest.raises(ValidationFailed):
        unit_service.create_unit(db_session, committee, "J-1-1", type="TENGAH")
    with pytest.raises(ValidationFailed):
        unit_service.create_unit(db_session, committee, "J-1-1", manual_arrears_amount="-1")
    with pytest.raises(NotFound):
        unit_service.create_unit(db_session, committee, "J-1-1", owner_id=4242)


def test_update_unit_records_before_and_after(db_session, create_user, create_unit):
    staff = create_user(role="STAFF")
    tenant = create_user(role="TENANT")
    unit = create_unit(adjustment="0")

    unit_service.update_unit(db_session, unit, staff, {"tenant_id": tenant.id, "monthly_adjustment_amount": "-5"})

    assert unit.tenant_id == tenant.id
    assert unit.monthly_adjustment_amount == Decimal("-5")
    entry = db_session.query(AuditLog).filter(AuditLog.action == "UPDATE_UNIT").one()
    assert '"after"' in entry.details


def test_deactivate_unit_is_soft(db_session, create_user, create_unit):
    committee = create_user(role="JMB")
    unit = create_unit("K-1-1")

    unit_service.deactivate_unit(db_session, unit, committee)

    assert unit.is_active is False
    assert unit.deleted_at is not None
    assert [row.unit_number for row in unit_service.list_units(db_session)] == []
    assert [row.unit_number for row in unit_service.list_units(db_session, include_inactive=True)] == ["K-1-1"]


def test_unit_routes(db_session, create_user, create_unit, create_bill, api_client):
    committee = create_user(role="JMB")
    owner = create_user()
    mine = create_unit("L-1-1", owner=owner, manual_arrears="20")
    create_bill(mine)
    create_unit("L-1-2")

    response = api_client(committee).post("/units/", json={"unit_number": "L-1-3", "type": "ATAS"})
    assert response.status_code == 201

    response = api_client(committee).post("/units/", json={"unit_number": "L-1-3"})
    assert response.status_code == 409
    assert response.json()["detail"] == "Nombor unit sudah wujud."

    client = api_client(owner)
    assert [row["unit_number"] for row in client.get("/units/").json()] == ["L-1-1"]

    detail = client.get(f"/units/{mine.id}").json()
    assert Decimal(detail["arrears"]["total"]) == Decimal("108")

    other = db_session.query(type(mine)).filter_by(unit_number="L-1-2").one()
    assert client.get(f"/units/{other.id}").status_code == 403
    assert client.delete(f"/units/{mine.id}").status_code == 403
    assert api_client(committee).get("/units/9999").status_code == 404
