from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..models.models import User
from ..schemas.schemas import NotificationFeed, SuccessResponse
from ..services.notifications import build_notification_feed

router = APIRouter()


@router.get("/", response_model=NotificationFeed)
def read_feed(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> NotificationFeed:
    return NotificationFeed(notifications=build_notification_feed(db, user))


# Read state is not persisted yet; both endpoints acknowledge without storing anything.
@router.post("/read-all", response_model=SuccessResponse)
def mark_all_read(_: User = Depends(get_current_user)) -> SuccessResponse:
    return SuccessResponse(success=True)


@router.post("/{notification_id}/read", response_model=SuccessResponse)
def mark_read(notification_id: str, _: User = Depends(get_current_user)) -> SuccessResponse:
    return SuccessResponse(success=True)
