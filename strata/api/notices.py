from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_permission
from ..models.models import User
from ..schemas.schemas import NoticeCreate, NoticeRead
from ..services import community

router = APIRouter(prefix="/notices", tags=["notices"])


@router.get("/", response_model=List[NoticeRead])
def list_notices(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return community.list_notices(db, user)


@router.post("/", response_model=NoticeRead, status_code=201)
def create_notice(
    payload: NoticeCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("notices:create")),
):
    return community.create_notice(db, actor, payload.title, payload.content, payload.target)
