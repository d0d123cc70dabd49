from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_permission
from ..models.models import User
from ..schemas.schemas import ComplaintCreate, ComplaintRead, ComplaintStatusUpdate
from ..services import community

router = APIRouter(prefix="/complaints", tags=["complaints"])


@router.get("/", response_model=List[ComplaintRead])
def list_complaints(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return community.list_complaints(db, user)


@router.post("/", response_model=ComplaintRead, status_code=201)
def create_complaint(payload: ComplaintCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return community.create_complaint(db, user, payload.title, payload.description, payload.type)


@router.patch("/{complaint_id}/status", response_model=ComplaintRead)
def update_complaint_status(
    complaint_id: int,
    payload: ComplaintStatusUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("complaints:update_status")),
):
    return community.update_complaint_status(db, complaint_id, payload.status, actor)
