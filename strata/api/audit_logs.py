from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_permission
from ..models.models import AuditLog, User
from ..schemas.schemas import AuditLogList, AuditLogRead

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("/", response_model=AuditLogList)
def list_audit_logs(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    action: Optional[str] = Query(None),
    actor_user_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("audit_logs:read")),
) -> AuditLogList:
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action.upper())
    if actor_user_id is not None:
        query = query.filter(AuditLog.actor_user_id == actor_user_id)
    total = query.count()
    logs = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()
    return AuditLogList(
        items=[AuditLogRead.model_validate(entry) for entry in logs],
        total=total,
        limit=limit,
        offset=offset,
    )
