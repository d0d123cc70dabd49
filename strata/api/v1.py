"""Versioned API consumed by the mobile app; payloads use camelCase keys."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..models.models import Bill, Unit, User
from ..schemas.schemas import (
    BillStatus,
    NotificationFeed,
    SearchResults,
    SuccessResponse,
    V1ArrearsTotals,
    V1Bill,
    V1Finance,
    V1UnitArrears,
    V1UserMe,
)
from ..services import arrears as arrears_service
from ..services.finance import get_funds
from ..services.notifications import build_notification_feed
from ..services.search import search

router = APIRouter()


@router.get("/bills", response_model=List[V1Bill])
def list_my_bills(
    status: Optional[BillStatus] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> List[V1Bill]:
    query = (
        db.query(Bill)
        .join(Unit, Unit.id == Bill.unit_id)
        .options(joinedload(Bill.unit))
        .filter(or_(Unit.owner_id == user.id, Unit.tenant_id == user.id))
    )
    if status:
        query = query.filter(Bill.status == status)
    bills = query.order_by(Bill.created_at.desc(), Bill.id.desc()).all()
    return [
        V1Bill(
            id=bill.id,
            unit_id=bill.unit_id,
            unit_number=bill.unit.unit_number,
            amount=bill.amount,
            month=bill.month,
            year=bill.year,
            type=bill.type,
            status=bill.status,
            receipt_url=bill.receipt_url,
            refund_proof_url=bill.refund_proof_url,
            created_at=bill.created_at,
        )
        for bill in bills
    ]


@router.get("/finance", response_model=V1Finance)
def read_finance(db: Session = Depends(get_db), _: User = Depends(get_current_user)) -> V1Finance:
    return V1Finance.model_validate(get_funds(db))


@router.get("/user/me", response_model=V1UserMe)
def read_me(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> V1UserMe:
    units = arrears_service.units_for_user(db, user)
    summary = arrears_service.arrears_for_units(db, units)
    return V1UserMe(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        phone=user.phone,
        units=[
            V1UnitArrears(
                id=row.unit_id,
                unit_number=row.unit_number,
                manual_arrears_amount=row.manual,
                system_arrears_amount=row.system,
                total_arrears_amount=row.total,
                pending_bill_count=row.pending_bill_count,
            )
            for row in summary.per_unit
        ],
        arrears=V1ArrearsTotals(total_amount=summary.total, bill_count=summary.bill_count),
    )


@router.get("/notifications", response_model=NotificationFeed)
def read_notifications(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> NotificationFeed:
    return NotificationFeed(notifications=build_notification_feed(db, user))


@router.post("/notifications/read-all", response_model=SuccessResponse)
def mark_all_read(_: User = Depends(get_current_user)) -> SuccessResponse:
    return SuccessResponse(success=True)


@router.post("/notifications/{notification_id}/read", response_model=SuccessResponse)
def mark_read(notification_id: str, _: User = Depends(get_current_user)) -> SuccessResponse:
    return SuccessResponse(success=True)


@router.get("/search", response_model=SearchResults)
def quick_search(
    q: str = Query(""),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> SearchResults:
    return SearchResults(results=search(db, user, q))
