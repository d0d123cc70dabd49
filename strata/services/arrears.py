"""Arrears: legacy manual debt plus the sum of PENDING bills.

``compute_arrears`` is the only place the figures are added up; the user API,
user detail, unit detail, dashboard and voting gate all feed it pre-fetched
rows.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.errors import ValidationFailed
from ..models.models import Bill, IncomeCollection, Unit, User, utcnow
from .audit import audit_log
from .billing import _ensure_decimal, get_fund

ZERO = Decimal("0")


@dataclass
class UnitArrears:
    unit_id: int
    unit_number: str
    manual: Decimal
    system: Decimal
    total: Decimal
    pending_bill_count: int


@dataclass
class ArrearsSummary:
    manual: Decimal = ZERO
    system: Decimal = ZERO
    total: Decimal = ZERO
    bill_count: int = 0
    per_unit: List[UnitArrears] = field(default_factory=list)


def compute_arrears(units: Iterable[Unit], pending_bills_by_unit: Mapping[int, Sequence[Bill]]) -> ArrearsSummary:
    summary = ArrearsSummary()
    for unit in units:
        manual = _ensure_decimal(unit.manual_arrears_amount or 0)
        bills = pending_bills_by_unit.get(unit.id, ())
        system = sum((_ensure_decimal(bill.amount) for bill in bills), ZERO)
        summary.per_unit.append(
            UnitArrears(
                unit_id=unit.id,
                unit_number=unit.unit_number,
                manual=manual,
                system=system,
                total=manual + system,
                pending_bill_count=len(bills),
            )
        )
        summary.manual += manual
        summary.system += system
        summary.bill_count += len(bills)
    summary.total = summary.manual + summary.system
    return summary


def load_pending_bills_by_unit(session: Session, unit_ids: Sequence[int]) -> Dict[int, List[Bill]]:
    grouped: Dict[int, List[Bill]] = defaultdict(list)
    if not unit_ids:
        return grouped
    bills = (
        session.query(Bill)
        .filter(Bill.unit_id.in_(list(unit_ids)), Bill.status == "PENDING")
        .order_by(Bill.year.asc(), Bill.month.asc(), Bill.id.asc())
        .all()
    )
    for bill in bills:
        grouped[bill.unit_id].append(bill)
    return grouped


def units_for_user(session: Session, user: User, active_only: bool = False) -> List[Unit]:
    query = session.query(Unit).filter(or_(Unit.owner_id == user.id, Unit.tenant_id == user.id))
    if active_only:
        query = query.filter(Unit.is_active.is_(True))
    return query.order_by(Unit.unit_number.asc()).all()


def arrears_for_units(session: Session, units: Sequence[Unit]) -> ArrearsSummary:
    return compute_arrears(units, load_pending_bills_by_unit(session, [unit.id for unit in units]))


def arrears_for_user(session: Session, user: User) -> ArrearsSummary:
    return arrears_for_units(session, units_for_user(session, user))


def pay_manual_arrears(
    session: Session,
    unit: Unit,
    amount,
    actor: User,
    reference: Optional[str] = None,
    paid_on: Optional[date] = None,
) -> IncomeCollection:
    """Record an instalment against a unit's legacy arrears.

    The arrears reduction and the income row are committed together. The
    income is dated ``paid_on``, or today when no payment date is given.
    """
    try:
        payment = _ensure_decimal(amount)
    except ArithmeticError:
        raise ValidationFailed("Jumlah bayaran tidak sah.") from None
    if not payment.is_finite() or payment <= 0:
        raise ValidationFailed("Jumlah bayaran tidak sah.")

    reference = (reference or "").strip() or None
    previous = _ensure_decimal(unit.manual_arrears_amount or 0)
    today = utcnow().date()
    if paid_on is not None and paid_on > today:
        raise ValidationFailed("Tarikh bayaran tidak boleh melebihi hari ini.")
    try:
        unit.manual_arrears_amount = max(ZERO, previous - payment)
        income = IncomeCollection(
            fund_id=get_fund(session, "MAINTENANCE").id,
            unit_id=unit.id,
            amount=payment,
            date=paid_on or today,
            source="MAINTENANCE",
            description=reference or f"Bayaran ansuran tunggakan untuk unit {unit.unit_number}",
            recorded_by_id=actor.id,
        )
        session.add(income)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(income)

    audit_log(
        session,
        actor.id,
        "PAY_MANUAL_ARREARS",
        f"Bayaran tunggakan manual RM {payment:.2f} untuk unit {unit.unit_number} "
        f"(baki RM {previous:.2f} -> RM {unit.manual_arrears_amount:.2f})",
        target_entity_type="Unit",
        target_entity_id=unit.id,
    )
    return income
