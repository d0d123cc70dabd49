from datetime import datetime

import pytest

from strata.core.errors import PermissionDenied, ValidationFailed
from strata.services import community


def _emails(tmp_path):
    return sorted((tmp_path / "emails").glob("*.html")) if (tmp_path / "emails").exists() else []


def test_notices_are_scoped_by_audience(db_session, create_user):
    staff = create_user(role="STAFF")
    resident = create_user()
    community.create_notice(db_session, staff, "Air dipotong", "Esok 9 pagi", "ALL")
    community.create_notice(db_session, staff, "Mesyuarat JMB", "Bilik mesyuarat", "MANAGEMENT")
    community.create_notice(db_session, staff, "Kutipan sampah", "Jadual baharu", "RESIDENTS")

    assert {notice.title for notice in community.list_notices(db_session, resident)} == {"Air dipotong", "Kutipan sampah"}
    assert len(community.list_notices(db_session, staff)) == 3

    with pytest.raises(PermissionDenied):
        community.create_notice(db_session, resident, "Jualan", "Murah", "ALL")


def test_complaint_status_change_emails_reporter(db_session, create_user, tmp_path):
    staff = create_user(role="STAFF")
    reporter = create_user(email="pengadu@example.com")
    complaint = community.create_complaint(db_session, reporter, "Lif rosak", "Blok J tidak berfungsi", "KEROSAKAN")

    with pytest.raises(ValidationFailed):
        community.create_complaint(db_session, reporter, "Lain", "x", "BUKAN_JENIS")

    community.update_complaint_status(db_session, complaint.id, "IN_PROGRESS", staff)

    assert complaint.status == "IN_PROGRESS"
    written = _emails(tmp_path)
    assert len(written) == 1
    content = written[0].read_text(encoding="utf-8")
    assert "pengadu@example.com" in content
    assert "IN_PROGRESS" in content


def test_complaints_list_is_scoped(db_session, create_user):
    staff = create_user(role="STAFF")
    first = create_user()
    second = create_user()
    community.create_complaint(db_session, first, "Bising", "Unit sebelah", "BISING")
    community.create_complaint(db_session, second, "Sampah", "Tidak dikutip", "KEBERSIHAN")

    assert [row.title for row in community.list_complaints(db_session, first)] == ["Bising"]
    assert len(community.list_complaints(db_session, staff)) == 2


def test_activity_must_be_for_own_unit(db_session, create_user, create_unit):
    resident = create_user()
    mine = create_unit("J-1-1", owner=resident)
    theirs = create_unit("J-1-2", owner=create_user())

    with pytest.raises(PermissionDenied) as excinfo:
        community.create_activity(db_session, resident, "Kenduri", "Majlis", datetime(2026, 6, 1), unit_id=theirs.id)
    assert excinfo.value.message == "Anda hanya boleh memohon bagi unit anda sendiri."

    activity = community.create_activity(
        db_session, resident, "Kenduri", "Majlis", datetime(2026, 6, 1), location="  Dewan  ", unit_id=mine.id
    )
    assert activity.status == "PENDING"
    assert activity.location == "Dewan"


def test_activity_approval_notifies_requester(db_session, create_user, tmp_path):
    staff = create_user(role="STAFF")
    resident = create_user(email="pemohon@example.com")
    activity = community.create_activity(db_session, resident, "Hari Keluarga", "Sukaneka", datetime(2026, 7, 4, 8, 0))

    community.update_activity_status(db_session, activity.id, "APPROVED", staff)

    assert activity.approved_by_id == staff.id
    written = _emails(tmp_path)
    assert len(written) == 1
    assert "04/07/2026" in written[0].read_text(encoding="utf-8")

    community.update_activity_status(db_session, activity.id, "CANCELLED", staff)
    assert activity.approved_by_id is None
    assert len(_emails(tmp_path)) == 1


def test_community_routes(db_session, create_user, api_client):
    resident = create_user()
    staff = create_user(role="STAFF")

    response = api_client(resident).post(
        "/complaints/", json={"title": "Paip bocor", "description": "Tingkat 3", "type": "KEROSAKAN"}
    )
    assert response.status_code == 201
    complaint_id = response.json()["id"]

    assert api_client(resident).patch(f"/complaints/{complaint_id}/status", json={"status": "CLOSED"}).status_code == 403
    response = api_client(staff).patch(f"/complaints/{complaint_id}/status", json={"status": "RESOLVED"})
    assert response.json()["status"] == "RESOLVED"
    assert api_client(staff).patch("/complaints/999/status", json={"status": "RESOLVED"}).status_code == 404

    response = api_client(resident).post(
        "/activities/", json={"title": "Kenduri", "description": "Majlis", "date": "2026-06-01T10:00:00"}
    )
    assert response.status_code == 201

    response = api_client(staff).post("/notices/", json={"title": "Notis", "content": "Isi", "target": "RESIDENTS"})
    assert response.status_code == 201
    assert [row["title"] for row in api_client(resident).get("/notices/").json()] == ["Notis"]
