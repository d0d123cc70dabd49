from typing import Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.models import Bill, Complaint, Expense, Unit
from .arrears import arrears_for_units
from .finance import get_funds

TOP_DEBTORS = 10


def management_summary(session: Session) -> Dict[str, object]:
    units = session.query(Unit).filter(Unit.is_active.is_(True)).order_by(Unit.unit_number.asc()).all()
    arrears = arrears_for_units(session, units)
    status_counts = dict(session.query(Bill.status, func.count(Bill.id)).group_by(Bill.status).all())
    debtors = sorted((row for row in arrears.per_unit if row.total > 0), key=lambda row: row.total, reverse=True)

    return {
        "unit_count": len(units),
        "arrears": {
            "manual": arrears.manual,
            "system": arrears.system,
            "total": arrears.total,
            "pending_bill_count": arrears.bill_count,
            "units_in_arrears": len(debtors),
        },
        "top_debtors": debtors[:TOP_DEBTORS],
        "bills_awaiting_verification": status_counts.get("PAID", 0),
        "refunds_in_progress": status_counts.get("REFUND_PROCESSING", 0),
        "pending_expenses": session.query(func.count(Expense.id)).filter(Expense.status == "PENDING").scalar() or 0,
        "open_complaints": session.query(func.count(Complaint.id)).filter(Complaint.status == "OPEN").scalar() or 0,
        "finance": get_funds(session),
    }
