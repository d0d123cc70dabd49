from datetime import date
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, read_upload
from ..auth.jwt import require_permission
from ..models.models import ExpenseCategory, User
from ..schemas.schemas import (
    ExpenseCategoryRead,
    ExpenseRead,
    FinancialReport,
    FundsSummary,
    IncomeCreate,
    IncomeRead,
)
from ..services import finance as finance_service

router = APIRouter()

FundCode = Literal["MAINTENANCE", "SINKING"]


@router.get("/funds", response_model=FundsSummary)
def read_funds(db: Session = Depends(get_db), _: User = Depends(require_permission("finance:read"))):
    return finance_service.get_funds(db)


@router.get("/categories", response_model=List[ExpenseCategoryRead])
def list_categories(db: Session = Depends(get_db), _: User = Depends(require_permission("finance:read"))):
    return db.query(ExpenseCategory).order_by(ExpenseCategory.name.asc()).all()


@router.get("/expenses", response_model=List[ExpenseRead])
def list_expenses(
    fund_code: Optional[FundCode] = Query(None),
    status: Optional[Literal["PENDING", "APPROVED", "REJECTED"]] = Query(None),
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("finance:read")),
):
    return finance_service.list_expenses(db, fund_code=fund_code, status=status, year=year, month=month)


@router.post("/expenses", response_model=ExpenseRead, status_code=201)
async def create_expense(
    fund_code: FundCode = Form(...),
    category_id: int = Form(...),
    description: str = Form(...),
    amount: Decimal = Form(...),
    expense_date: date = Form(...),
    attachment: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("finance:create_expense")),
):
    upload = await read_upload(attachment)
    return finance_service.create_expense(
        db,
        actor,
        fund_code=fund_code,
        category_id=category_id,
        description=description,
        amount=amount,
        expense_date=expense_date,
        attachment=upload,
    )


@router.post("/expenses/{expense_id}/approve", response_model=ExpenseRead)
def approve_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("finance:approve_expense")),
):
    return finance_service.approve_expense(db, expense_id, actor)


@router.post("/expenses/{expense_id}/reject", response_model=ExpenseRead)
def reject_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("finance:approve_expense")),
):
    return finance_service.reject_expense(db, expense_id, actor)


@router.get("/income", response_model=List[IncomeRead])
def list_income(
    fund_code: Optional[FundCode] = Query(None),
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("finance:read")),
):
    return finance_service.list_income(db, fund_code=fund_code, year=year, month=month)


@router.post("/income", response_model=IncomeRead, status_code=201)
def create_income(
    payload: IncomeCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("finance:create_income")),
):
    return finance_service.create_manual_income(
        db,
        actor,
        fund_code=payload.fund_code,
        amount=payload.amount,
        income_date=payload.date,
        source=payload.source,
        description=payload.description,
        unit_id=payload.unit_id,
    )


@router.get("/reports/{year}", response_model=FinancialReport)
def read_financial_report(
    year: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("finance:report")),
):
    return finance_service.financial_report(db, year)
