import json
import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import AuditLog, utcnow

logger = logging.getLogger(__name__)


def _serialize(data: Any) -> Optional[str]:
    if data is None:
        return None
    if isinstance(data, str):
        return data
    try:
        return json.dumps(data, default=str)
    except TypeError:
        return str(data)


def audit_log(
    db_session: Session,
    actor_user_id: Optional[int],
    action: str,
    details: Any = None,
    target_entity_type: Optional[str] = None,
    target_entity_id: Optional[Any] = None,
) -> Optional[AuditLog]:
    """Append an audit entry and commit it.

    Auditing is best effort: an entry without an actor is skipped, and a
    database failure is rolled back and logged rather than raised, so the
    caller's own (already committed) change is never undone by it.
    """
    if actor_user_id is None:
        logger.warning("Audit entry %s skipped: no acting user.", action)
        return None

    entry = AuditLog(
        timestamp=utcnow(),
        actor_user_id=actor_user_id,
        action=action,
        details=_serialize(details),
        target_entity_type=target_entity_type,
        target_entity_id=str(target_entity_id) if target_entity_id is not None else None,
    )
    try:
        db_session.add(entry)
        db_session.commit()
    except SQLAlchemyError:
        db_session.rollback()
        logger.exception("Failed to write audit entry %s for user %s.", action, actor_user_id)
        return None
    return entry
