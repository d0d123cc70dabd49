from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_permission
from ..core.errors import PermissionDenied
from ..core.permissions import is_allowed
from ..models.models import User
from ..schemas.schemas import (
    IncomeRead,
    ManualArrearsPayment,
    UnitArrearsRead,
    UnitCreate,
    UnitDetail,
    UnitRead,
    UnitUpdate,
)
from ..services import arrears as arrears_service
from ..services import units as unit_service

router = APIRouter()


@router.get("/", response_model=List[UnitRead])
def list_units(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> List[UnitRead]:
    if is_allowed(user.role, "units:read"):
        units = unit_service.list_units(db, include_inactive=include_inactive)
    else:
        units = arrears_service.units_for_user(db, user, active_only=True)
    return [UnitRead.model_validate(unit) for unit in units]


@router.post("/", response_model=UnitRead, status_code=201)
def create_unit(
    payload: UnitCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("units:create")),
) -> UnitRead:
    unit = unit_service.create_unit(db, actor, **payload.model_dump())
    return UnitRead.model_validate(unit)


@router.get("/{unit_id}", response_model=UnitDetail)
def get_unit(unit_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> UnitDetail:
    unit = unit_service.get_unit(db, unit_id)
    if not is_allowed(user.role, "units:read") and user.id not in (unit.owner_id, unit.tenant_id):
        raise PermissionDenied()
    summary = arrears_service.arrears_for_units(db, [unit])
    return UnitDetail(
        **UnitRead.model_validate(unit).model_dump(),
        arrears=UnitArrearsRead.model_validate(summary.per_unit[0]),
    )


@router.patch("/{unit_id}", response_model=UnitRead)
def update_unit(
    unit_id: int,
    payload: UnitUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("units:update")),
) -> UnitRead:
    unit = unit_service.get_unit(db, unit_id)
    unit = unit_service.update_unit(db, unit, actor, payload.model_dump(exclude_unset=True))
    return UnitRead.model_validate(unit)


@router.delete("/{unit_id}", response_model=UnitRead)
def deactivate_unit(
    unit_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("units:deactivate")),
) -> UnitRead:
    unit = unit_service.get_unit(db, unit_id)
    return UnitRead.model_validate(unit_service.deactivate_unit(db, unit, actor))


@router.post("/{unit_id}/manual-arrears/payments", response_model=IncomeRead, status_code=201)
def pay_manual_arrears(
    unit_id: int,
    payload: ManualArrearsPayment,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("units:pay_manual_arrears")),
) -> IncomeRead:
    unit = unit_service.get_unit(db, unit_id)
    income = arrears_service.pay_manual_arrears(
        db, unit, payload.amount, actor, reference=payload.reference, paid_on=payload.paid_on
    )
    return IncomeRead.model_validate(income)
