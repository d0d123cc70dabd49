from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import extract, func
from sqlalchemy.orm import Session, joinedload

from ..core.errors import NotFound, StateConflict, ValidationFailed
from ..core.permissions import ensure_permission
from ..models.models import Expense, ExpenseCategory, Fund, IncomeCollection, Unit, User, utcnow
from .audit import audit_log
from .billing import _ensure_decimal, get_fund
from .storage import UploadedFile, storage_service

ZERO = Decimal("0")


def _sum_income(session: Session, fund_id: int, year: Optional[int] = None) -> Decimal:
    query = session.query(func.coalesce(func.sum(IncomeCollection.amount), 0)).filter(
        IncomeCollection.fund_id == fund_id
    )
    if year is not None:
        query = query.filter(IncomeCollection.date >= date(year, 1, 1), IncomeCollection.date <= date(year, 12, 31))
    return _ensure_decimal(query.scalar() or 0)


def _sum_approved_expense(session: Session, year: Optional[int] = None, **filters) -> Decimal:
    query = session.query(func.coalesce(func.sum(Expense.amount), 0)).filter(Expense.status == "APPROVED")
    for column, value in filters.items():
        query = query.filter(getattr(Expense, column) == value)
    if year is not None:
        query = query.filter(Expense.expense_date >= date(year, 1, 1), Expense.expense_date <= date(year, 12, 31))
    return _ensure_decimal(query.scalar() or 0)


def get_funds(session: Session) -> Dict[str, object]:
    """Fund balances, recomputed from the ledgers on every call."""
    funds: List[Dict[str, object]] = []
    total_income = ZERO
    total_expense = ZERO
    for fund in session.query(Fund).order_by(Fund.id.asc()).all():
        income = _sum_income(session, fund.id)
        expense = _sum_approved_expense(session, fund_id=fund.id)
        funds.append(
            {
                "id": fund.id,
                "code": fund.code,
                "name": fund.name,
                "total_income": income,
                "total_expense": expense,
                "balance": income - expense,
            }
        )
        total_income += income
        total_expense += expense
    return {
        "funds": funds,
        "total_income": total_income,
        "total_expense": total_expense,
        "balance": total_income - total_expense,
    }


def _get_category(session: Session, category_id: int) -> ExpenseCategory:
    category = session.get(ExpenseCategory, category_id)
    if category is None:
        raise NotFound("Kategori perbelanjaan tidak dijumpai.")
    return category


def _positive_amount(amount) -> Decimal:
    try:
        value = _ensure_decimal(amount)
    except ArithmeticError:
        raise ValidationFailed("Jumlah tidak sah.") from None
    if not value.is_finite() or value <= 0:
        raise ValidationFailed("Jumlah tidak sah.")
    return value


def create_expense(
    session: Session,
    actor: User,
    fund_code: str,
    category_id: int,
    description: str,
    amount,
    expense_date: date,
    attachment: Optional[UploadedFile] = None,
) -> Expense:
    ensure_permission(actor, "finance:create_expense")
    description = (description or "").strip()
    if not description or expense_date is None:
        raise ValidationFailed("Semua medan wajib diisi")
    value = _positive_amount(amount)
    fund = get_fund(session, fund_code)
    category = _get_category(session, category_id)

    expense = Expense(
        fund_id=fund.id,
        category_id=category.id,
        description=description,
        amount=value,
        expense_date=expense_date,
        status="PENDING",
        requested_by_id=actor.id,
    )
    if attachment is not None and attachment.content:
        expense.attachment_url = storage_service.save_upload("expenses", "expense", attachment).public_path
    session.add(expense)
    session.commit()
    session.refresh(expense)

    audit_log(
        session,
        actor.id,
        "CREATE_EXPENSE",
        f"Perbelanjaan {category.name} RM {value:.2f} ({fund.code}) dimohon",
        target_entity_type="Expense",
        target_entity_id=expense.id,
    )
    return expense


def _decide_expense(session: Session, expense_id: int, actor: User, status: str, action: str) -> Expense:
    ensure_permission(actor, "finance:approve_expense")
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise NotFound("Perbelanjaan tidak dijumpai.")
    if expense.status != "PENDING":
        raise StateConflict(f"Perbelanjaan ini telah {expense.status}.")
    expense.status = status
    expense.approved_by_id = actor.id
    expense.decided_at = utcnow()
    session.commit()
    audit_log(
        session,
        actor.id,
        action,
        f"Perbelanjaan {expense.id} RM {_ensure_decimal(expense.amount):.2f} -> {status}",
        target_entity_type="Expense",
        target_entity_id=expense.id,
    )
    return expense


def approve_expense(session: Session, expense_id: int, actor: User) -> Expense:
    return _decide_expense(session, expense_id, actor, "APPROVED", "APPROVE_EXPENSE")


def reject_expense(session: Session, expense_id: int, actor: User) -> Expense:
    return _decide_expense(session, expense_id, actor, "REJECTED", "REJECT_EXPENSE")


def list_expenses(
    session: Session,
    fund_code: Optional[str] = None,
    status: Optional[str] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> List[Expense]:
    query = session.query(Expense).options(joinedload(Expense.fund), joinedload(Expense.category))
    if fund_code:
        query = query.join(Fund, Fund.id == Expense.fund_id).filter(Fund.code == fund_code)
    if status:
        query = query.filter(Expense.status == status)
    if year:
        query = query.filter(extract("year", Expense.expense_date) == year)
    if month:
        query = query.filter(extract("month", Expense.expense_date) == month)
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


def list_income(
    session: Session,
    fund_code: Optional[str] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> List[IncomeCollection]:
    query = session.query(IncomeCollection).options(
        joinedload(IncomeCollection.fund), joinedload(IncomeCollection.unit)
    )
    if fund_code:
        query = query.join(Fund, Fund.id == IncomeCollection.fund_id).filter(Fund.code == fund_code)
    if year:
        query = query.filter(extract("year", IncomeCollection.date) == year)
    if month:
        query = query.filter(extract("month", IncomeCollection.date) == month)
    return query.order_by(IncomeCollection.date.desc(), IncomeCollection.id.desc()).all()


def create_manual_income(
    session: Session,
    actor: User,
    fund_code: str,
    amount,
    income_date: date,
    source: str,
    description: Optional[str] = None,
    unit_id: Optional[int] = None,
) -> IncomeCollection:
    ensure_permission(actor, "finance:create_income")
    source = (source or "").strip()
    if not source or income_date is None:
        raise ValidationFailed("Semua medan wajib diisi")
    value = _positive_amount(amount)
    fund = get_fund(session, fund_code)
    if unit_id is not None and session.get(Unit, unit_id) is None:
        raise NotFound("Unit tidak dijumpai.")

    income = IncomeCollection(
        fund_id=fund.id,
        unit_id=unit_id,
        amount=value,
        date=income_date,
        source=source,
        description=description,
        recorded_by_id=actor.id,
    )
    session.add(income)
    session.commit()
    session.refresh(income)
    audit_log(
        session,
        actor.id,
        "CREATE_INCOME",
        f"Pendapatan manual RM {value:.2f} ke {fund.code} ({source})",
        target_entity_type="IncomeCollection",
        target_entity_id=income.id,
    )
    return income


def financial_report(session: Session, year: int) -> Dict[str, object]:
    funds = session.query(Fund).order_by(Fund.id.asc()).all()
    income_by_fund = [
        {"fund_id": fund.id, "fund_name": fund.name, "total_income": _sum_income(session, fund.id, year)}
        for fund in funds
    ]
    expense_by_fund = [
        {"fund_id": fund.id, "fund_name": fund.name, "total_expense": _sum_approved_expense(session, year, fund_id=fund.id)}
        for fund in funds
    ]
    expense_by_category = []
    for category in session.query(ExpenseCategory).order_by(ExpenseCategory.name.asc()).all():
        total = _sum_approved_expense(session, year, category_id=category.id)
        if total == 0:
            continue
        expense_by_category.append({"category_name": category.name, "total": total})

    total_income = sum((row["total_income"] for row in income_by_fund), ZERO)
    total_expense = sum((row["total_expense"] for row in expense_by_fund), ZERO)
    return {
        "year": year,
        "income_by_fund": income_by_fund,
        "expense_by_fund": expense_by_fund,
        "expense_by_category": expense_by_category,
        "total_income": total_income,
        "total_expense": total_expense,
        "net": total_income - total_expense,
    }
