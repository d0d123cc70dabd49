import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..constants import BILL_TYPE_FUND_CODES, BILL_TYPES
from ..core.errors import NotFound, StateConflict, ValidationFailed
from ..models.models import Bill, Fund, Unit, User
from . import notifications
from .audit import audit_log
from .system_settings import base_amount_for_unit_type, get_base_bill_amounts

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Semua medan wajib diisi dengan format yang betul"


@dataclass
class GenerationResult:
    month: int
    year: int
    count: int = 0
    bill_ids: List[int] = field(default_factory=list)
    skipped_unit_ids: List[int] = field(default_factory=list)


def _ensure_decimal(amount: Decimal | float | int | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def validate_period(month: int, year: int) -> None:
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationFailed("Bulan mestilah antara 1 hingga 12.")
    if not isinstance(year, int) or not 2000 <= year <= 2100:
        raise ValidationFailed("Tahun tidak sah.")


def get_fund(session: Session, code: str) -> Fund:
    fund = session.query(Fund).filter(Fund.code == code).first()
    if fund is None:
        raise NotFound(f"Dana {code} tidak dijumpai.")
    return fund


def fund_for_bill_type(session: Session, bill_type: str) -> Fund:
    return get_fund(session, BILL_TYPE_FUND_CODES.get(bill_type, "MAINTENANCE"))


def insert_bill_if_absent(
    session: Session,
    unit_id: int,
    amount: Decimal,
    month: int,
    year: int,
    bill_type: str = "MAINTENANCE",
) -> Tuple[Optional[int], bool]:
    """Insert a PENDING bill unless one already exists for the unit, period and type.

    The unique constraint on (unit_id, month, year, type) decides, so two
    concurrent runs cannot both create the bill. Returns ``(bill_id, created)``;
    ``bill_id`` is None when the row already existed.
    """
    values = {
        "unit_id": unit_id,
        "amount": amount,
        "month": month,
        "year": year,
        "type": bill_type,
        "status": "PENDING",
    }
    dialect = session.get_bind().dialect.name
    if dialect in ("sqlite", "postgresql"):
        dialect_insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = dialect_insert(Bill).values(**values).on_conflict_do_nothing(
            index_elements=["unit_id", "month", "year", "type"]
        )
        bill_id = session.execute(stmt.returning(Bill.id)).scalar_one_or_none()
        return bill_id, bill_id is not None

    try:
        with session.begin_nested():
            bill_id = session.execute(insert(Bill).values(**values)).inserted_primary_key[0]
    except IntegrityError:
        return None, False
    return bill_id, True


def generate_monthly_bills(session: Session, month: int, year: int, actor_id: Optional[int] = None) -> GenerationResult:
    """Create the MAINTENANCE bill of ``month``/``year`` for every active unit.

    Safe to re-run: a unit that already has any bill for the period (including
    a manual SINKING or DEPOSIT bill) is skipped and only newly created bills
    are counted. Owners of new bills are notified through the background
    dispatcher.
    """
    validate_period(month, year)
    base_amounts = get_base_bill_amounts(session)
    result = GenerationResult(month=month, year=year)

    billed_unit_ids = {
        unit_id
        for (unit_id,) in session.query(Bill.unit_id).filter(Bill.month == month, Bill.year == year).distinct()
    }
    units = (
        session.query(Unit)
        .options(joinedload(Unit.owner))
        .filter(Unit.is_active.is_(True))
        .order_by(Unit.unit_number.asc())
        .all()
    )
    for unit in units:
        if unit.id in billed_unit_ids:
            result.skipped_unit_ids.append(unit.id)
            continue
        amount =base_amount_for_unit_type(base_amounts, unit.type) + _ensure_decimal(
            unit.monthly_adjustment_amount or 0
        )
        bill_id, created = insert_bill_if_absent(session, unit.id, amount, month, year)
        if not created:
            result.skipped_unit_ids.append(unit.id)
            continue
        session.commit()
        result.count += 1
        result.bill_ids.append(bill_id)
        notifications.notify_bill_created(unit.owner, unit.unit_number, amount, month, year)

    session.commit()
    logger.info(
        "Generated %d bills for %02d/%d (%d units already billed).",
        result.count,
        month,
        year,
        len(result.skipped_unit_ids),
    )
    if actor_id is not None:
        audit_log(
            session,
            actor_id,
            "GENERATE_BILLS",
            f"Jana {result.count} bil untuk {month}/{year}",
            target_entity_type="Bill",
        )
    return result


def create_bill(
    session: Session,
    unit_id: int,
    amount,
    month: int,
    year: int,
    bill_type: str,
    actor: User,
) -> Bill:
    """Manual bill entry; the unit's monthly adjustment is added to the entered amount."""
    try:
        entered = _ensure_decimal(amount)
    except ArithmeticError:
        raise ValidationFailed(REQUIRED_FIELDS_MESSAGE) from None
    if not entered.is_finite() or entered <= 0 or bill_type not in BILL_TYPES:
        raise ValidationFailed(REQUIRED_FIELDS_MESSAGE)
    validate_period(month, year)

    unit = session.get(Unit, unit_id)
    if unit is None or not unit.is_active:
        raise NotFound("Unit tidak dijumpai.")

    total = entered + _ensure_decimal(unit.monthly_adjustment_amount or 0)
    bill_id, created = insert_bill_if_absent(session, unit.id, total, month, year, bill_type)
    if not created:
        session.rollback()
        raise StateConflict(f"Bil {bill_type} untuk unit {unit.unit_number} bagi {month}/{year} sudah wujud.")
    session.commit()
    bill = session.get(Bill, bill_id)

    audit_log(
        session,
        actor.id,
        "CREATE_BILL",
        f"Bil {bill_type} RM {total:.2f} untuk unit {unit.unit_number} ({month}/{year})",
        target_entity_type="Bill",
        target_entity_id=bill_id,
    )
    notifications.notify_bill_created(unit.owner, unit.unit_number, total, month, year)
    return bill


def get_bill(session: Session, bill_id: int) -> Bill:
    bill = session.get(Bill, bill_id, options=[joinedload(Bill.unit)])
    if bill is None:
        raise NotFound("Bil tidak dijumpai.")
    return bill
