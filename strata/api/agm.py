from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_permission
from ..core.permissions import is_allowed
from ..models.models import AGM, User
from ..schemas.schemas import (
    AGMCreate,
    AGMRead,
    AGMStatusUpdate,
    AGMUpdate,
    EligibilityRead,
    ResolutionCreate,
    ResolutionRead,
    ResolutionResult,
    VoteCast,
    VoteRead,
)
from ..services import agm as agm_service

router = APIRouter()


def _agm_read(db: Session, agm: AGM, user: User) -> AGMRead:
    read = AGMRead.model_validate(agm)
    read.my_votes = agm_service.my_votes(db, agm, user)
    return read


@router.get("/", response_model=List[AGMRead])
def list_agms(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> List[AGMRead]:
    query = db.query(AGM)
    if not is_allowed(user.role, "agm:manage"):
        query = query.filter(AGM.status != "DRAFT")
    return [_agm_read(db, agm, user) for agm in query.order_by(AGM.meeting_date.desc()).all()]


@router.post("/", response_model=AGMRead, status_code=201)
def create_agm(
    payload: AGMCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("agm:manage")),
) -> AGMRead:
    agm = agm_service.create_agm(
        db,
        actor,
        title=payload.title,
        meeting_date=payload.meeting_date,
        description=payload.description,
        resolutions=[item.model_dump() for item in payload.resolutions],
    )
    return _agm_read(db, agm, actor)


@router.get("/eligibility/me", response_model=EligibilityRead)
def read_my_eligibility(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> EligibilityRead:
    return EligibilityRead.model_validate(agm_service.check_voting_eligibility(db, user))


@router.post("/resolutions/{resolution_id}/vote", response_model=VoteRead)
def cast_vote(
    resolution_id: int,
    payload: VoteCast,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("agm:vote")),
) -> VoteRead:
    return VoteRead.model_validate(agm_service.cast_vote(db, user, resolution_id, payload.choice))


@router.delete("/resolutions/{resolution_id}", status_code=204)
def delete_resolution(
    resolution_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("agm:manage")),
) -> Response:
    agm_service.delete_resolution(db, resolution_id, actor)
    return Response(status_code=204)


@router.get("/{agm_id}", response_model=AGMRead)
def get_agm(agm_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> AGMRead:
    return _agm_read(db, agm_service.get_agm(db, agm_id), user)


@router.patch("/{agm_id}", response_model=AGMRead)
def update_agm(
    agm_id: int,
    payload: AGMUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("agm:manage")),
) -> AGMRead:
    agm = agm_service.get_agm(db, agm_id)
    agm = agm_service.update_agm(db, agm, actor, **payload.model_dump(exclude_unset=True))
    return _agm_read(db, agm, actor)


@router.delete("/{agm_id}", status_code=204)
def delete_agm(
    agm_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("agm:manage")),
) -> Response:
    agm_service.delete_agm(db, agm_service.get_agm(db, agm_id), actor)
    return Response(status_code=204)


@router.patch("/{agm_id}/status", response_model=AGMRead)
def update_agm_status(
    agm_id: int,
    payload: AGMStatusUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("agm:manage")),
) -> AGMRead:
    agm = agm_service.update_agm_status(db, agm_service.get_agm(db, agm_id), payload.status, actor)
    return _agm_read(db, agm, actor)


@router.post("/{agm_id}/resolutions", response_model=ResolutionRead, status_code=201)
def add_resolution(
    agm_id: int,
    payload: ResolutionCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("agm:manage")),
) -> ResolutionRead:
    agm = agm_service.get_agm(db, agm_id)
    resolution = agm_service.add_resolution(db, agm, actor, payload.title, payload.description)
    return ResolutionRead.model_validate(resolution)


@router.get("/{agm_id}/results", response_model=List[ResolutionResult])
def read_results(agm_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return agm_service.compute_results(db, agm_service.get_agm(db, agm_id))
