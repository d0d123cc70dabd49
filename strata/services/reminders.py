import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session, joinedload

from ..models.models import Bill, Unit
from . import notifications
from .billing import _ensure_decimal, validate_period

logger = logging.getLogger(__name__)


@dataclass
class ReminderResult:
    month: int
    year: int
    sent_count: int
    total_pending: int


def send_payment_reminders(session: Session, month: int, year: int) -> ReminderResult:
    """Queue a reminder for every bill of the period that is still PENDING.

    Units without a reachable owner are counted in ``total_pending`` but not in
    ``sent_count``.
    """
    validate_period(month, year)
    pending = (
        session.query(Bill)
        .join(Unit, Unit.id == Bill.unit_id)
        .options(joinedload(Bill.unit).joinedload(Unit.owner))
        .filter(Bill.month == month, Bill.year == year, Bill.status == "PENDING")
        .order_by(Unit.unit_number.asc())
        .all()
    )

    sent = 0
    for bill in pending:
        amount: Decimal = _ensure_decimal(bill.amount)
        if notifications.notify_payment_reminder(bill.unit.owner, bill.unit.unit_number, amount, month, year):
            sent += 1

    logger.info("Queued %d payment reminders for %02d/%d (%d pending bills).", sent, month, year, len(pending))
    return ReminderResult(month=month, year=year, sent_count=sent, total_pending=len(pending))
