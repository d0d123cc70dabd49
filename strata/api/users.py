from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_permission
from ..models.models import User
from ..schemas.schemas import (
    ArrearsRead,
    CommitteeDirectory,
    CommitteeMember,
    EligibilityOverride,
    EligibilityRead,
    RoleName,
    UnitRead,
    UserCreate,
    UserDetail,
    UserRead,
    UserUpdate,
)
from ..services import agm as agm_service
from ..services import arrears as arrears_service
from ..services import users as user_service

router = APIRouter()


@router.get("/", response_model=List[UserRead])
def list_users(
    role: Optional[RoleName] = Query(None),
    q: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("users:read")),
) -> List[UserRead]:
    query = db.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    if role:
        query = query.filter(User.role == role)
    if q:
        pattern = f"%{q.strip().lower()}%"
        query = query.filter(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)))
    return [UserRead.model_validate(user) for user in query.order_by(User.name.asc()).all()]


@router.post("/", response_model=UserRead, status_code=201)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("users:manage")),
) -> UserRead:
    user = user_service.create_user(
        db,
        actor,
        email=payload.email,
        name=payload.name,
        password=payload.password,
        role=payload.role,
        phone=payload.phone,
        committee_type=payload.committee_type,
        committee_position=payload.committee_position,
    )
    return UserRead.model_validate(user)


def _committee_member(user: User) -> CommitteeMember:
    units = sorted(
        {unit.unit_number for unit in [*user.owned_units, *user.rented_units] if unit.is_active}
    )
    return CommitteeMember(
        id=user.id,
        name=user.name,
        phone=user.phone,
        email=user.email,
        committee_type=user.committee_type,
        committee_position=user.committee_position,
        unit_numbers=units,
    )


@router.get("/committee", response_model=CommitteeDirectory)
def list_committee(
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("committee:read")),
) -> CommitteeDirectory:
    directory = user_service.committee_directory(db)
    return CommitteeDirectory(
        jmb=[_committee_member(user) for user in directory["JMB"]],
        community=[_committee_member(user) for user in directory["COMMUNITY"]],
    )


@router.get("/{user_id}", response_model=UserDetail)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("users:read")),
) -> UserDetail:
    user = user_service.get_user(db, user_id)
    units = arrears_service.units_for_user(db, user)
    summary = arrears_service.arrears_for_units(db, units)
    eligibility = agm_service.check_voting_eligibility(db, user)
    return UserDetail(
        **UserRead.model_validate(user).model_dump(),
        units=[UnitRead.model_validate(unit) for unit in units],
        arrears=ArrearsRead.model_validate(summary),
        eligibility=EligibilityRead.model_validate(eligibility),
    )


@router.patch("/{user_id}", response_model=UserRead)
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("users:manage")),
) -> UserRead:
    user = user_service.get_user(db, user_id)
    user = user_service.update_user(db, user, actor, payload.model_dump(exclude_unset=True))
    return UserRead.model_validate(user)


@router.delete("/{user_id}", response_model=UserRead)
def deactivate_user(
    user_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("users:manage")),
) -> UserRead:
    user = user_service.get_user(db, user_id)
    return UserRead.model_validate(user_service.deactivate_user(db, user, actor))


@router.put("/{user_id}/voting-eligibility", response_model=EligibilityRead)
def set_voting_eligibility(
    user_id: int,
    payload: EligibilityOverride,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("agm:override_eligibility")),
) -> EligibilityRead:
    user = user_service.get_user(db, user_id)
    agm_service.set_voting_override(db, user, payload.eligible, payload.reason, actor)
    return EligibilityRead.model_validate(agm_service.check_voting_eligibility(db, user))
