from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import get_db, read_upload
from ..auth.jwt import get_current_user, require_permission
from ..core.errors import PermissionDenied
from ..core.permissions import is_allowed
from ..models.models import Bill, Unit, User
from ..schemas.schemas import (
    BillCreate,
    BillRead,
    BillStatus,
    BillStatusUpdate,
    FPXResult,
    GenerateBillsRequest,
    GenerateBillsResult,
    VerifyPaymentRequest,
)
from ..services import billing as billing_service
from ..services import payments as payment_service

router = APIRouter()


def bill_to_read(bill: Bill) -> BillRead:
    read = BillRead.model_validate(bill)
    read.unit_number = bill.unit.unit_number if bill.unit else None
    return read


def _load_visible_bill(db: Session, bill_id: int, user: User) -> Bill:
    bill = billing_service.get_bill(db, bill_id)
    if not is_allowed(user.role, "bills:read_all") and user.id not in (bill.unit.owner_id, bill.unit.tenant_id):
        raise PermissionDenied("Anda hanya boleh melihat bil bagi unit anda sendiri.")
    return bill


@router.get("/bills", response_model=List[BillRead])
def list_bills(
    status: Optional[BillStatus] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None),
    unit_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> List[BillRead]:
    query = db.query(Bill).join(Unit, Unit.id == Bill.unit_id).options(joinedload(Bill.unit))
    if not is_allowed(user.role, "bills:read_all"):
        query = query.filter(or_(Unit.owner_id == user.id, Unit.tenant_id == user.id))
    if status:
        query = query.filter(Bill.status == status)
    if month:
        query = query.filter(Bill.month == month)
    if year:
        query = query.filter(Bill.year == year)
    if unit_id:
        query = query.filter(Bill.unit_id == unit_id)
    bills = query.order_by(Bill.year.desc(), Bill.month.desc(), Unit.unit_number.asc()).all()
    return [bill_to_read(bill) for bill in bills]


@router.post("/bills", response_model=BillRead, status_code=201)
def create_bill(
    payload: BillCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("bills:create")),
) -> BillRead:
    bill = billing_service.create_bill(
        db,
        unit_id=payload.unit_id,
        amount=payload.amount,
        month=payload.month,
        year=payload.year,
        bill_type=payload.type,
        actor=actor,
    )
    return bill_to_read(bill)


@router.post("/generate", response_model=GenerateBillsResult)
def generate_bills(
    payload: GenerateBillsRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("bills:generate")),
) -> GenerateBillsResult:
    result = billing_service.generate_monthly_bills(db, payload.month, payload.year, actor_id=actor.id)
    return GenerateBillsResult(count=result.count, month=result.month, year=result.year, bill_ids=result.bill_ids)


@router.get("/bills/{bill_id}", response_model=BillRead)
def get_bill(bill_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> BillRead:
    return bill_to_read(_load_visible_bill(db, bill_id, user))


@router.post("/bills/{bill_id}/receipt", response_model=BillRead)
async def upload_receipt(
    bill_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> BillRead:
    upload = await read_upload(file)
    bill = billing_service.get_bill(db, bill_id)
    return bill_to_read(payment_service.upload_receipt(db, bill, user, upload))


@router.post("/bills/{bill_id}/verify", response_model=BillRead)
def verify_payment(
    bill_id: int,
    payload: VerifyPaymentRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("bills:verify")),
) -> BillRead:
    bill = billing_service.get_bill(db, bill_id)
    return bill_to_read(payment_service.verify_payment(db, bill, payload.approved, actor))


@router.post("/bills/{bill_id}/manual-payment", response_model=BillRead)
async def record_manual_payment(
    bill_id: int,
    reference: str = Form(""),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("bills:manual_payment")),
) -> BillRead:
    upload = await read_upload(file)
    bill = billing_service.get_bill(db, bill_id)
    return bill_to_read(payment_service.record_manual_payment(db, bill, reference, actor, upload=upload))


@router.post("/bills/{bill_id}/fpx", response_model=FPXResult)
def pay_with_fpx(bill_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> FPXResult:
    bill = billing_service.get_bill(db, bill_id)
    message = payment_service.process_fpx_payment(db, bill, user)
    return FPXResult(message=message, bill=bill_to_read(bill))


@router.post("/bills/{bill_id}/refund", response_model=BillRead)
async def initiate_refund(
    bill_id: int,
    reference: Optional[str] = Form(None),
    checklist: List[str] = Form([]),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("bills:initiate_refund")),
) -> BillRead:
    upload = await read_upload(file)
    bill = billing_service.get_bill(db, bill_id)
    bill = payment_service.initiate_refund(db, bill, actor, reference=reference, checklist=checklist, upload=upload)
    return bill_to_read(bill)


@router.post("/bills/{bill_id}/refund/approve", response_model=BillRead)
async def approve_refund(
    bill_id: int,
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("bills:approve_refund")),
) -> BillRead:
    upload = await read_upload(file)
    bill = billing_service.get_bill(db, bill_id)
    return bill_to_read(payment_service.approve_refund(db, bill, actor, upload))


@router.patch("/bills/{bill_id}/status", response_model=BillRead)
def update_bill_status(
    bill_id: int,
    payload: BillStatusUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("bills:update_status")),
) -> BillRead:
    bill = billing_service.get_bill(db, bill_id)
    return bill_to_read(payment_service.update_bill_status(db, bill, payload.status, actor))
