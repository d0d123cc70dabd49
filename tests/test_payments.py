from decimal import Decimal

import pytest

from strata.core.errors import PermissionDenied, StateConflict, ValidationFailed
from strata.models.models import AuditLog, Fund, IncomeCollection
from strata.services import payments
from strata.services.storage import UploadedFile

PNG = UploadedFile(filename="receipt.png", content_type="image/png", content=b"\x89PNG fake image")
PDF = UploadedFile(filename="payout.pdf", content_type="application/pdf", content=b"%PDF-1.4 fake")


def _income_rows(session, bill):
    return session.query(IncomeCollection).filter(IncomeCollection.bill_id == bill.id).all()


def test_receipt_then_verify_posts_income_once(db_session, create_user, create_unit, create_bill):
    owner = create_user()
    staff = create_user(role="STAFF")
    bill = create_bill(create_unit(owner=owner), month=3, year=2025)

    payments.upload_receipt(db_session, bill, owner, PNG)
    assert bill.status == "PAID"
    assert bill.receipt_url.startswith("/uploads/receipts/receipt-")

    payments.verify_payment(db_session, bill, True, staff)
    payments.verify_payment(db_session, bill, True, staff)

    rows = _income_rows(db_session, bill)
    assert len(rows) == 1
    income = rows[0]
    assert income.amount == Decimal("88.00")
    assert income.date.isoformat() == "2025-03-01"
    assert income.fund.code == "MAINTENANCE"
    assert bill.status == "APPROVED"


def test_reject_then_resubmit(db_session, create_user, create_unit, create_bill):
    owner = create_user()
    staff = create_user(role="STAFF")
    bill = create_bill(create_unit(owner=owner))

    payments.upload_receipt(db_session, bill, owner, PNG)
    payments.verify_payment(db_session, bill, False, staff)
    assert bill.status == "REJECTED"
    assert _income_rows(db_session, bill) == []

    payments.upload_receipt(db_session, bill, owner, PNG)
    assert bill.status == "PAID"


def test_receipt_rules(db_session, create_user, create_unit, create_bill):
    owner = create_user()
    stranger = create_user()
    bill = create_bill(create_unit(owner=owner))

    with pytest.raises(PermissionDenied):
        payments.upload_receipt(db_session, bill, stranger, PNG)

    with pytest.raises(ValidationFailed) as excinfo:
        payments.upload_receipt(db_session, bill, owner, UploadedFile("a.gif", "image/gif", b"GIF89a"))
    assert excinfo.value.message == "Format fail tidak sah. Sila muat naik JPG, PNG atau PDF sahaja."

    too_big = UploadedFile("big.pdf", "application/pdf", b"0" * (5 * 1024 * 1024 + 1))
    with pytest.raises(ValidationFailed) as excinfo:
        payments.upload_receipt(db_session, bill, owner, too_big)
    assert excinfo.value.message == "Saiz fail terlalu besar (Max 5MB)."
    assert bill.status == "PENDING"


def test_tenant_can_upload_receipt(db_session, create_user, create_unit, create_bill):
    tenant = create_user(role="TENANT")
    bill = create_bill(create_unit(owner=create_user(), tenant=tenant))

    payments.upload_receipt(db_session, bill, tenant, PNG)

    assert bill.status == "PAID"


def test_manual_payment_requires_reference_and_is_idempotent(db_session, create_user, create_unit, create_bill):
    staff = create_user(role="STAFF")
    bill = create_bill(create_unit(), bill_type="SINKING", amount="20.00")

    with pytest.raises(ValidationFailed):
        payments.record_manual_payment(db_session, bill, "  ", staff)

    payments.record_manual_payment(db_session, bill, "CASH-001", staff)
    payments.record_manual_payment(db_session, bill, "CASH-002", staff)

    rows = _income_rows(db_session, bill)
    assert len(rows) == 1
    assert rows[0].fund.code == "SINKING"
    assert rows[0].description == "CASH-001"
    assert bill.reference == "CASH-001"


def test_manual_payment_denied_for_residents(db_session, create_user, create_unit, create_bill):
    owner = create_user()
    bill = create_bill(create_unit(owner=owner))

    with pytest.raises(PermissionDenied):
        payments.record_manual_payment(db_session, bill, "REF", owner)


def test_fpx_payment_approves_immediately(db_session, create_user, create_unit, create_bill):
    owner = create_user()
    bill = create_bill(create_unit(owner=owner))

    message = payments.process_fpx_payment(db_session, bill, owner)

    assert message == "Pembayaran FPX Berjaya (Simulasi)"
    assert bill.status == "APPROVED"
    assert bill.reference.startswith(f"FPX-{bill.id}-")
    assert len(_income_rows(db_session, bill)) == 1
    with pytest.raises(StateConflict):
        payments.process_fpx_payment(db_session, bill, owner)


def test_deposit_refund_flow(db_session, create_user, create_unit, create_bill):
    staff = create_user(role="STAFF")
    finance = create_user(role="FINANCE")
    bill = create_bill(create_unit(), bill_type="DEPOSIT", amount="500.00")
    payments.record_manual_payment(db_session, bill, "DEP-1", staff)
    assert not bill.is_refunded

    payments.initiate_refund(
        db_session,
        bill,
        staff,
        reference="REFUND-1",
        checklist=["kunci_dipulangkan", "UNIT_DIPERIKSA"],
        upload=PNG,
    )
    assert bill.status == "REFUND_PROCESSING"
    assert bill.refund_checklist == ["KUNCI_DIPULANGKAN", "UNIT_DIPERIKSA"]
    proof_url = bill.refund_proof_url
    assert proof_url.startswith("/uploads/refunds/")

    with pytest.raises(PermissionDenied):
        payments.approve_refund(db_session, bill, staff, PDF)
    with pytest.raises(ValidationFailed):
        payments.approve_refund(db_session, bill, finance, None)

    payments.approve_refund(db_session, bill, finance, PDF)

    assert bill.status == "APPROVED"
    assert bill.is_refunded
    assert bill.refund_proof_url == proof_url
    assert bill.refund_payout_url.startswith("/uploads/refunds/refund-payout-")
    # Deposit income stays posted once in the maintenance fund.
    rows = _income_rows(db_session, bill)
    assert len(rows) == 1
    assert rows[0].fund_id == db_session.query(Fund).filter(Fund.code == "MAINTENANCE").one().id

    with pytest.raises(StateConflict):
        payments.initiate_refund(db_session, bill, staff, reference="AGAIN")


def test_refund_guards(db_session, create_user, create_unit, create_bill):
    staff = create_user(role="STAFF")
    maintenance = create_bill(create_unit(), status="APPROVED")
    deposit = create_bill(create_unit("J-2-2"), bill_type="DEPOSIT", status="PENDING")

    with pytest.raises(StateConflict):
        payments.initiate_refund(db_session, maintenance, staff, reference="X")
    with pytest.raises(StateConflict):
        payments.initiate_refund(db_session, deposit, staff, reference="X")

    deposit.status = "APPROVED"
    db_session.commit()
    with pytest.raises(ValidationFailed):
        payments.initiate_refund(db_session, deposit, staff)
    with pytest.raises(ValidationFailed):
        payments.initiate_refund(db_session, deposit, staff, checklist=["NOT_AN_ITEM"])


def test_status_override_records_income_once(db_session, create_user, create_unit, create_bill):
    staff = create_user(role="STAFF")
    bill = create_bill(create_unit())

    payments.update_bill_status(db_session, bill, "REJECTED", staff)
    payments.update_bill_status(db_session, bill, "APPROVED", staff)
    payments.update_bill_status(db_session, bill, "APPROVED", staff)

    assert len(_income_rows(db_session, bill)) == 1
    with pytest.raises(ValidationFailed):
        payments.update_bill_status(db_session, bill, "REFUND_PROCESSING", staff)
    actions = [row.action for row in db_session.query(AuditLog).order_by(AuditLog.id).all()]
    assert actions.count("UPDATE_BILL_STATUS") == 2


@pytest.mark.parametrize("status", ["PENDING", "PAID", "REJECTED"])
def test_status_override_cannot_reopen_bill_with_income(db_session, create_user, create_unit, create_bill, status):
    staff = create_user(role="STAFF")
    bill = create_bill(create_unit())
    payments.update_bill_status(db_session, bill, "APPROVED", staff)

    with pytest.raises(StateConflict) as excinfo:
        payments.update_bill_status(db_session, bill, status, staff)

    assert excinfo.value.message == payments.LOCKED_APPROVED_MESSAGE
    db_session.refresh(bill)
    assert bill.status == "APPROVED"
    assert len(_income_rows(db_session, bill)) == 1


def test_status_override_keeps_refunded_deposit_closed(db_session, create_user, create_unit, create_bill):
    staff = create_user(role="STAFF")
    finance = create_user(role="FINANCE")
    deposit = create_bill(create_unit(), bill_type="DEPOSIT", status="APPROVED")
    payments.initiate_refund(db_session, deposit, staff, reference="RF-1")
    payments.approve_refund(db_session, deposit, finance, PDF)

    with pytest.raises(StateConflict):
        payments.update_bill_status(db_session, deposit, "PENDING", staff)
    assert deposit.status == "APPROVED"
    assert deposit.refunded_at is not None


def test_receipt_file_removed_when_commit_fails(db_session, create_user, create_unit, create_bill, monkeypatch, tmp_path):
    owner = create_user()
    bill = create_bill(create_unit(owner=owner))

    def failing_commit():
        raise RuntimeError("database unavailable")

    with monkeypatch.context() as patch:
        patch.setattr(db_session, "commit", failing_commit)
        with pytest.raises(StateConflict) as excinfo:
            payments.upload_receipt(db_session, bill, owner, PNG)

    assert bill.status == "PENDING"
    assert excinfo.value.message == payments.UPLOAD_FAILED_MESSAGE
    receipts = tmp_path / "uploads" / "receipts"
    assert not receipts.exists() or list(receipts.iterdir()) == []


def test_payment_routes(db_session, create_user, create_unit, create_bill, api_client):
    owner = create_user()
    bill = create_bill(create_unit(owner=owner))

    response = api_client(owner).post(
        f"/billing/bills/{bill.id}/receipt",
        files={"file": ("receipt.png", b"\x89PNG fake", "image/png")},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "PAID"

    staff = create_user(role="STAFF")
    response = api_client(staff).post(f"/billing/bills/{bill.id}/verify", json={"approved": True})
    assert response.status_code == 200
    assert response.json()["status"] == "APPROVED"

    response = api_client(staff).post(f"/billing/bills/{bill.id}/manual-payment", data={"reference": "R-1"})
    assert response.status_code == 200
    assert len(_income_rows(db_session, bill)) == 1


def test_refund_routes(db_session, create_user, create_unit, create_bill, api_client):
    staff = create_user(role="STAFF")
    finance = create_user(role="FINANCE")
    bill = create_bill(create_unit(), bill_type="DEPOSIT", status="APPROVED")

    response = api_client(staff).post(
        f"/billing/bills/{bill.id}/refund",
        data={"reference": "RF-9", "checklist": ["KUNCI_DIPULANGKAN", "TIADA_TUNGGAKAN"]},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "REFUND_PROCESSING"

    response = api_client(finance).post(
        f"/billing/bills/{bill.id}/refund/approve",
        files={"file": ("payout.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "APPROVED"
    assert body["is_refunded"] is True
    assert body["refund_payout_url"]
