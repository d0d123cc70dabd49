import pytest

from strata.core.errors import PermissionDenied, StateConflict, ValidationFailed
from strata.services import users as user_service


def test_create_user_rules(db_session, create_user):
    admin = create_user(role="SUPER_ADMIN")
    committee = create_user(role="JMB")

    user = user_service.create_user(db_session, admin, " Baru@Example.com ", "Pemilik Baru", "rahsia-123", role="OWNER")
    assert user.email == "baru@example.com"

    with pytest.raises(StateConflict):
        user_service.create_user(db_session, admin, "BARU@example.com", "Lain", "rahsia-123")
    with pytest.raises(ValidationFailed):
        user_service.create_user(db_session, admin, "pendek@example.com", "Pendek", "123")
    with pytest.raises(PermissionDenied):
        user_service.create_user(db_session, committee, "jmb@example.com", "JMB", "rahsia-123")


def test_admin_cannot_deactivate_self(db_session, create_user):
    admin = create_user(role="SUPER_ADMIN")
    target = create_user()

    with pytest.raises(PermissionDenied):
        user_service.deactivate_user(db_session, admin, admin)

    user_service.deactivate_user(db_session, target, admin)
    assert target.is_active is False
    assert user_service.authenticate(db_session, target.email, "changeme123") is None


def test_user_detail_route_includes_units_arrears_and_eligibility(
    db_session, create_user, create_unit, create_bill, api_client
):
    staff = create_user(role="STAFF")
    owner = create_user(name="Rahim")
    unit = create_unit("J-13-1", owner=owner, manual_arrears="100")
    create_bill(unit, month=3, year=2025)

    response = api_client(staff).get(f"/users/{owner.id}")

    assert response.status_code == 200
    body = response.json()
    assert [row["unit_number"] for row in body["units"]] == ["J-13-1"]
    assert float(body["arrears"]["total"]) == 188.0
    assert body["eligibility"]["eligible"] is False


def test_user_routes_permissions(db_session, create_user, api_client):
    admin = create_user(role="SUPER_ADMIN")
    staff = create_user(role="STAFF")
    create_user(name="Zainab", role="TENANT")

    response = api_client(staff).get("/users/", params={"role": "TENANT"})
    assert [row["name"] for row in response.json()] == ["Zainab"]

    payload = {"email": "penyewa@example.com", "name": "Penyewa", "password": "rahsia-123", "role": "TENANT"}
    assert api_client(staff).post("/users/", json=payload).status_code == 403
    response = api_client(admin).post("/users/", json=payload)
    assert response.status_code == 201
    assert api_client(admin).post("/users/", json=payload).status_code == 409

    new_id = response.json()["id"]
    response = api_client(admin).patch(f"/users/{new_id}", json={"role": "OWNER", "phone": "0133333333"})
    assert response.json()["role"] == "OWNER"

    assert api_client(admin).delete(f"/users/{admin.id}").status_code == 403
    assert api_client(admin).delete(f"/users/{new_id}").json()["is_active"] is False


def test_committee_fields_are_validated_and_cleared(db_session, create_user):
    admin = create_user(role="SUPER_ADMIN")
    member = create_user(role="OWNER")

    user_service.update_user(
        db_session, member, admin, {"committee_type": "jmb", "committee_position": " Bendahari "}
    )
    assert (member.committee_type, member.committee_position) == ("JMB", "Bendahari")

    with pytest.raises(ValidationFailed):
        user_service.update_user(db_session, member, admin, {"committee_type": "PERSATUAN", "name": "Tukar"})
    assert member.name != "Tukar"

    user_service.update_user(db_session, member, admin, {"committee_type": None})
    assert (member.committee_type, member.committee_position) == (None, None)


def test_committee_directory_route(db_session, create_user, create_unit, api_client):
    admin = create_user(role="SUPER_ADMIN")
    chair = create_user(name="Aminah", role="JMB")
    helper = create_user(name="Bakar")
    retired = create_user(name="Chong", role="JMB")
    create_unit("J-1-1", owner=helper)
    user_service.update_user(db_session, chair, admin, {"committee_type": "JMB", "committee_position": "Pengerusi"})
    user_service.update_user(db_session, helper, admin, {"committee_type": "COMMUNITY", "committee_position": "AJK"})
    user_service.update_user(db_session, retired, admin, {"committee_type": "JMB"})
    user_service.deactivate_user(db_session, retired, admin)

    response = api_client(create_user(role="TENANT")).get("/users/committee")

    assert response.status_code == 200
    body = response.json()
    assert [(row["name"], row["committee_position"]) for row in body["jmb"]] == [("Aminah", "Pengerusi")]
    assert [(row["name"], row["unit_numbers"]) for row in body["community"]] == [("Bakar", ["J-1-1"])]
