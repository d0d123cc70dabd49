"""Bill payment lifecycle.

    PENDING --receipt--> PAID --verify--> APPROVED | REJECTED
    REJECTED --receipt--> PAID
    PENDING/PAID/REJECTED --manual payment | FPX--> APPROVED
    DEPOSIT: APPROVED --refund--> REFUND_PROCESSING --payout proof--> APPROVED (refunded)

Income is posted exactly once per bill, when it first reaches APPROVED. The
status override cannot move a bill with posted income out of APPROVED.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..constants import MANUAL_BILL_STATUSES, REFUND_CHECKLIST_ITEMS
from ..core.errors import PermissionDenied, StateConflict, ValidationFailed
from ..core.permissions import ensure_permission, is_allowed
from ..models.models import Bill, IncomeCollection, Unit, User, utcnow
from . import notifications
from .audit import audit_log
from .billing import _ensure_decimal, fund_for_bill_type
from .storage import UploadedFile, storage_service

logger = logging.getLogger(__name__)

UPLOAD_FAILED_MESSAGE = "Gagal memuat naik resit."
RECEIPT_NOT_ALLOWED_MESSAGE = "Anda hanya boleh memuat naik resit bagi unit anda sendiri."
REFERENCE_REQUIRED_MESSAGE = "Nombor rujukan diperlukan untuk bayaran manual."
ALREADY_PAID_MESSAGE = "Bil ini telah dibayar."
FPX_SUCCESS_MESSAGE = "Pembayaran FPX Berjaya (Simulasi)"
LOCKED_APPROVED_MESSAGE = "Bil yang telah diluluskan dan direkodkan sebagai pendapatan tidak boleh diubah status."


def _unit_of(session: Session, bill: Bill) -> Unit:
    return bill.unit if bill.unit is not None else session.get(Unit, bill.unit_id)


def _is_unit_occupant(unit: Unit, user: User) -> bool:
    return user.id is not None and user.id in (unit.owner_id, unit.tenant_id)


def income_for_bill(session: Session, bill: Bill) -> Optional[IncomeCollection]:
    return session.query(IncomeCollection).filter(IncomeCollection.bill_id == bill.id).first()


def _record_bill_income(
    session: Session,
    bill: Bill,
    actor: Optional[User],
    description: Optional[str] = None,
) -> Optional[IncomeCollection]:
    """Post the income row for an approved bill unless the bill already has one."""
    if income_for_bill(session, bill) is not None:
        logger.info("Bill %s already has income recorded; skipping.", bill.id)
        return None
    income = IncomeCollection(
        fund_id=fund_for_bill_type(session, bill.type).id,
        unit_id=bill.unit_id,
        bill_id=bill.id,
        amount=_ensure_decimal(bill.amount),
        date=date(bill.year, bill.month, 1),
        source=bill.type,
        description=description,
        recorded_by_id=actor.id if actor else None,
    )
    session.add(income)
    return income


def _approve(session: Session, bill: Bill, actor: Optional[User], description: Optional[str] = None) -> None:
    bill.status = "APPROVED"
    bill.verified_by_id = actor.id if actor else None
    bill.verified_at = utcnow()
    _record_bill_income(session, bill, actor, description)


def _notify_paid(session: Session, bill: Bill) -> None:
    unit = _unit_of(session, bill)
    notifications.notify_payment_received(unit.owner, unit.unit_number, bill.amount, bill.id)


def upload_receipt(session: Session, bill: Bill, user: User, upload: UploadedFile) -> Bill:
    unit = _unit_of(session, bill)
    if not is_allowed(user.role, "bills:upload_receipt") and not _is_unit_occupant(unit, user):
        raise PermissionDenied(RECEIPT_NOT_ALLOWED_MESSAGE)
    if bill.status not in ("PENDING", "REJECTED"):
        raise StateConflict(ALREADY_PAID_MESSAGE if bill.status == "APPROVED" else "Resit telah dihantar dan sedang disemak.")

    stored = storage_service.save_upload("receipts", f"receipt-{bill.id}", upload)
    try:
        bill.receipt_url = stored.public_path
        bill.status = "PAID"
        session.commit()
    except Exception:
        session.rollback()
        storage_service.delete_file(stored)
        logger.exception("Could not attach receipt to bill %s.", bill.id)
        raise StateConflict(UPLOAD_FAILED_MESSAGE)

    audit_log(
        session,
        user.id,
        "UPLOAD_RECEIPT",
        f"Resit dimuat naik untuk bil {bill.id} (unit {unit.unit_number})",
        target_entity_type="Bill",
        target_entity_id=bill.id,
    )
    return bill


def verify_payment(session: Session, bill: Bill, approved: bool, actor: User) -> Bill:
    ensure_permission(actor, "bills:verify")
    if bill.status == "APPROVED":
        # Re-verification must not post the income twice.
        return bill
    if bill.status not in ("PENDING", "PAID"):
        raise StateConflict(f"Bil berstatus {bill.status} tidak boleh disahkan.")

    if approved:
        _approve(session, bill, actor)
    else:
        bill.status = "REJECTED"
        bill.verified_by_id = actor.id
        bill.verified_at = utcnow()
    session.commit()

    audit_log(
        session,
        actor.id,
        "VERIFY_PAYMENT",
        f"Bil {bill.id} {'diluluskan' if approved else 'ditolak'}",
        target_entity_type="Bill",
        target_entity_id=bill.id,
    )
    if approved:
        _notify_paid(session, bill)
    return bill


def record_manual_payment(
    session: Session,
    bill: Bill,
    reference: Optional[str],
    actor: User,
    upload: Optional[UploadedFile] = None,
) -> Bill:
    ensure_permission(actor, "bills:manual_payment")
    reference = (reference or "").strip()
    if not reference:
        raise ValidationFailed(REFERENCE_REQUIRED_MESSAGE)
    if bill.status == "APPROVED":
        return bill
    if bill.status == "REFUND_PROCESSING":
        raise StateConflict(f"Bil berstatus {bill.status} tidak boleh dibayar.")

    if upload is not None and upload.content:
        stored = storage_service.save_upload("receipts", f"manual-receipt-{bill.id}", upload)
        bill.receipt_url = stored.public_path
    bill.reference = reference
    _approve(session, bill, actor, description=reference)
    session.commit()

    audit_log(
        session,
        actor.id,
        "MANUAL_PAYMENT",
        f"Bayaran manual bil {bill.id} (rujukan {reference})",
        target_entity_type="Bill",
        target_entity_id=bill.id,
    )
    _notify_paid(session, bill)
    return bill


def process_fpx_payment(session: Session, bill: Bill, user: User) -> str:
    """Simulated online banking payment: approves immediately."""
    unit = _unit_of(session, bill)
    if not is_allowed(user.role, "bills:manual_payment") and not _is_unit_occupant(unit, user):
        raise PermissionDenied(RECEIPT_NOT_ALLOWED_MESSAGE)
    if bill.status == "APPROVED":
        raise StateConflict(ALREADY_PAID_MESSAGE)
    if bill.status == "REFUND_PROCESSING":
        raise StateConflict(f"Bil berstatus {bill.status} tidak boleh dibayar.")

    bill.reference = f"FPX-{bill.id}-{utcnow().strftime('%Y%m%d%H%M%S')}"
    _approve(session, bill, user, description=bill.reference)
    session.commit()

    audit_log(
        session,
        user.id,
        "FPX_PAYMENT",
        f"Bayaran FPX (simulasi) bil {bill.id}",
        target_entity_type="Bill",
        target_entity_id=bill.id,
    )
    _notify_paid(session, bill)
    return FPX_SUCCESS_MESSAGE


def _clean_checklist(items: Optional[Iterable[str]]) -> List[str]:
    cleaned = []
    for item in items or []:
        value = (item or "").strip().upper()
        if not value:
            continue
        if value not in REFUND_CHECKLIST_ITEMS:
            raise ValidationFailed(f"Item senarai semak tidak sah: {item}")
        if value not in cleaned:
            cleaned.append(value)
    return cleaned


def initiate_refund(
    session: Session,
    bill: Bill,
    actor: User,
    reference: Optional[str] = None,
    checklist: Optional[Iterable[str]] = None,
    upload: Optional[UploadedFile] = None,
) -> Bill:
    ensure_permission(actor, "bills:initiate_refund")
    if bill.type != "DEPOSIT":
        raise StateConflict("Hanya bil deposit boleh dipulangkan.")
    if bill.status != "APPROVED" or bill.refunded_at is not None:
        raise StateConflict("Deposit mesti diluluskan dan belum dipulangkan.")

    reference = (reference or "").strip() or None
    items = _clean_checklist(checklist)
    has_photo = upload is not None and bool(upload.content)
    if not (reference or items or has_photo):
        raise ValidationFailed("Sila sertakan rujukan, gambar atau senarai semak untuk pemulangan deposit.")

    if has_photo:
        stored = storage_service.save_upload("refunds", f"refund-proof-{bill.id}", upload)
        bill.refund_proof_url = stored.public_path
    bill.refund_reference = reference
    bill.refund_checklist = items
    bill.refund_requested_at = utcnow()
    bill.status = "REFUND_PROCESSING"
    session.commit()

    audit_log(
        session,
        actor.id,
        "INITIATE_REFUND",
        {"bill_id": bill.id, "reference": reference, "checklist": items, "photo": has_photo},
        target_entity_type="Bill",
        target_entity_id=bill.id,
    )
    return bill


def approve_refund(session: Session, bill: Bill, actor: User, upload: Optional[UploadedFile]) -> Bill:
    """Close a deposit refund; the bill returns to APPROVED with ``refunded_at`` set."""
    ensure_permission(actor, "bills:approve_refund")
    if bill.status != "REFUND_PROCESSING":
        raise StateConflict("Bil ini tiada permohonan pemulangan deposit.")
    if upload is None or not upload.content:
        raise ValidationFailed("Bukti pembayaran balik diperlukan.")

    stored = storage_service.save_upload("refunds", f"refund-payout-{bill.id}", upload)
    bill.refund_payout_url = stored.public_path
    if not bill.refund_proof_url:
        bill.refund_proof_url = stored.public_path
    bill.refunded_at = utcnow()
    bill.status = "APPROVED"
    session.commit()

    audit_log(
        session,
        actor.id,
        "APPROVE_REFUND",
        f"Deposit bil {bill.id} telah dipulangkan",
        target_entity_type="Bill",
        target_entity_id=bill.id,
    )
    return bill


def update_bill_status(session: Session, bill: Bill, status: str, actor: User) -> Bill:
    ensure_permission(actor, "bills:update_status")
    if status not in MANUAL_BILL_STATUSES:
        raise ValidationFailed("Status bil tidak sah.")
    if bill.status == "REFUND_PROCESSING":
        raise StateConflict("Bil dalam proses pemulangan deposit.")
    previous = bill.status
    if previous == status:
        return bill
    if previous == "APPROVED" and (bill.refunded_at is not None or income_for_bill(session, bill) is not None):
        # The income row already counts towards the fund balance.
        raise StateConflict(LOCKED_APPROVED_MESSAGE)

    if status == "APPROVED":
        _approve(session, bill, actor)
    else:
        bill.status = status
    session.commit()

    audit_log(
        session,
        actor.id,
        "UPDATE_BILL_STATUS",
        f"Status bil {bill.id}: {previous} -> {status}",
        target_entity_type="Bill",
        target_entity_id=bill.id,
    )
    return bill
