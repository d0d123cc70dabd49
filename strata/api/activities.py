from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_permission
from ..models.models import User
from ..schemas.schemas import ActivityCreate, ActivityRead, ActivityStatusUpdate
from ..services import community

router = APIRouter(prefix="/activities", tags=["activities"])


@router.get("/", response_model=List[ActivityRead])
def list_activities(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return community.list_activities(db, user)


@router.post("/", response_model=ActivityRead, status_code=201)
def create_activity(payload: ActivityCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return community.create_activity(
        db,
        user,
        title=payload.title,
        description=payload.description,
        date=payload.date,
        location=payload.location,
        unit_id=payload.unit_id,
    )


@router.patch("/{activity_id}/status", response_model=ActivityRead)
def update_activity_status(
    activity_id: int,
    payload: ActivityStatusUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("activities:update_status")),
):
    return community.update_activity_status(db, activity_id, payload.status, actor)
