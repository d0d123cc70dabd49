from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_permission
from ..models.models import User
from ..schemas.schemas import DashboardSummary
from ..services.dashboard import management_summary

router = APIRouter()


@router.get("/summary", response_model=DashboardSummary)
def read_summary(db: Session = Depends(get_db), _: User = Depends(require_permission("dashboard:summary"))):
    return management_summary(db)
