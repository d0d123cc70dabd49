from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from ..constants import UNIT_TYPES
from ..core.errors import NotFound, StateConflict, ValidationFailed
from ..core.permissions import ensure_permission
from ..models.models import Unit, User, utcnow
from .audit import audit_log
from .billing import _ensure_decimal

DUPLICATE_UNIT_MESSAGE = "Nombor unit sudah wujud."
UNIT_FIELDS = ("owner_id", "tenant_id", "type", "manual_arrears_amount", "monthly_adjustment_amount")


def get_unit(session: Session, unit_id: int) -> Unit:
    unit = session.get(Unit, unit_id, options=[joinedload(Unit.owner), joinedload(Unit.tenant)])
    if unit is None:
        raise NotFound("Unit tidak dijumpai.")
    return unit


def list_units(session: Session, include_inactive: bool = False) -> List[Unit]:
    query = session.query(Unit).options(joinedload(Unit.owner), joinedload(Unit.tenant))
    if not include_inactive:
        query = query.filter(Unit.is_active.is_(True))
    return query.order_by(Unit.unit_number.asc()).all()


def _check_user(session: Session, user_id: Optional[int]) -> None:
    if user_id is not None and session.get(User, user_id) is None:
        raise NotFound("Pengguna tidak dijumpai.")


def _non_negative(value, label: str) -> Decimal:
    try:
        amount = _ensure_decimal(value if value is not None else 0)
    except ArithmeticError:
        raise ValidationFailed(f"{label} tidak sah.") from None
    if not amount.is_finite():
        raise ValidationFailed(f"{label} tidak sah.")
    return amount


def _validate_fields(session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = dict(data)
    if "type" in cleaned and cleaned["type"] not in UNIT_TYPES:
        raise ValidationFailed("Jenis unit mestilah ATAS atau BAWAH.")
    if "manual_arrears_amount" in cleaned:
        amount = _non_negative(cleaned["manual_arrears_amount"], "Tunggakan manual")
        if amount < 0:
            raise ValidationFailed("Tunggakan manual tidak boleh negatif.")
        cleaned["manual_arrears_amount"] = amount
    if "monthly_adjustment_amount" in cleaned:
        cleaned["monthly_adjustment_amount"] = _non_negative(cleaned["monthly_adjustment_amount"], "Pelarasan bulanan")
    for key in ("owner_id", "tenant_id"):
        if key in cleaned:
            _check_user(session, cleaned[key])
    return cleaned


def create_unit(session: Session, actor: User, unit_number: str, **fields: Any) -> Unit:
    ensure_permission(actor, "units:create")
    unit_number = (unit_number or "").strip().upper()
    if not unit_number:
        raise ValidationFailed("Nombor unit diperlukan.")
    if session.query(Unit.id).filter(Unit.unit_number == unit_number).first():
        raise StateConflict(DUPLICATE_UNIT_MESSAGE)

    values = _validate_fields(session, {key: value for key, value in fields.items() if key in UNIT_FIELDS})
    unit = Unit(unit_number=unit_number, **values)
    session.add(unit)
    session.commit()
    session.refresh(unit)
    audit_log(session, actor.id, "CREATE_UNIT", f"Unit {unit.unit_number} dicipta", target_entity_type="Unit", target_entity_id=unit.id)
    return unit


def update_unit(session: Session, unit: Unit, actor: User, changes: Dict[str, Any]) -> Unit:
    ensure_permission(actor, "units:update")
    values = _validate_fields(session, {key: value for key, value in changes.items() if key in UNIT_FIELDS})
    before = {key: getattr(unit, key) for key in values}
    for key, value in values.items():
        setattr(unit, key, value)
    session.commit()
    audit_log(
        session,
        actor.id,
        "UPDATE_UNIT",
        {"unit": unit.unit_number, "before": before, "after": values},
        target_entity_type="Unit",
        target_entity_id=unit.id,
    )
    return unit


def deactivate_unit(session: Session, unit: Unit, actor: User) -> Unit:
    ensure_permission(actor, "units:deactivate")
    if not unit.is_active:
        return unit
    unit.is_active = False
    unit.deleted_at = utcnow()
    session.commit()
    audit_log(session, actor.id, "DELETE_UNIT", f"Unit {unit.unit_number} dinyahaktifkan", target_entity_type="Unit", target_entity_id=unit.id)
    return unit
