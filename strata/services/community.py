"""Notices, complaints and activity requests."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..constants import ACTIVITY_STATUSES, COMPLAINT_STATUSES, COMPLAINT_TYPES, NOTICE_TARGETS
from ..core.errors import NotFound, PermissionDenied, ValidationFailed
from ..core.permissions import ensure_permission, is_allowed
from ..models.models import ActivityRequest, Complaint, Notice, Unit, User
from . import notifications
from .audit import audit_log


def create_notice(session: Session, actor: User, title: str, content: str, target: str = "ALL") -> Notice:
    ensure_permission(actor, "notices:create")
    title, content = (title or "").strip(), (content or "").strip()
    if not title or not content or target not in NOTICE_TARGETS:
        raise ValidationFailed("Semua medan wajib diisi")
    notice = Notice(title=title, content=content, target=target, created_by_id=actor.id)
    session.add(notice)
    session.commit()
    session.refresh(notice)
    audit_log(session, actor.id, "CREATE_NOTICE", f"Notis: {title}", target_entity_type="Notice", target_entity_id=notice.id)
    return notice


def list_notices(session: Session, user: User) -> List[Notice]:
    query = session.query(Notice)
    if not user.is_management:
        query = query.filter(Notice.target.in_(["ALL", "RESIDENTS"]))
    return query.order_by(Notice.created_at.desc()).all()


def create_complaint(session: Session, user: User, title: str, description: str, complaint_type: str) -> Complaint:
    title, description = (title or "").strip(), (description or "").strip()
    if not title or not description or complaint_type not in COMPLAINT_TYPES:
        raise ValidationFailed("Sila isi semua maklumat yang diperlukan.")
    complaint = Complaint(title=title, description=description, type=complaint_type, user_id=user.id, status="OPEN")
    session.add(complaint)
    session.commit()
    session.refresh(complaint)
    audit_log(session, user.id, "CREATE_COMPLAINT", f"Aduan: {title} ({complaint.id})", target_entity_type="Complaint", target_entity_id=complaint.id)
    return complaint


def list_complaints(session: Session, user: User) -> List[Complaint]:
    query = session.query(Complaint).options(joinedload(Complaint.user))
    if not is_allowed(user.role, "complaints:read_all"):
        query = query.filter(Complaint.user_id == user.id)
    return query.order_by(Complaint.created_at.desc()).all()


def update_complaint_status(session: Session, complaint_id: int, status: str, actor: User) -> Complaint:
    ensure_permission(actor, "complaints:update_status")
    if status not in COMPLAINT_STATUSES:
        raise ValidationFailed("Status aduan tidak sah.")
    complaint = session.get(Complaint, complaint_id, options=[joinedload(Complaint.user)])
    if complaint is None:
        raise NotFound("Aduan tidak dijumpai.")
    complaint.status = status
    session.commit()
    audit_log(
        session,
        actor.id,
        "UPDATE_COMPLAINT_STATUS",
        f"Aduan {complaint.id} dikemaskini kepada {status}",
        target_entity_type="Complaint",
        target_entity_id=complaint.id,
    )
    notifications.notify_complaint_status(complaint.user, complaint.id, complaint.title, status)
    return complaint


def create_activity(
    session: Session,
    user: User,
    title: str,
    description: str,
    date: Optional[datetime],
    location: Optional[str] = None,
    unit_id: Optional[int] = None,
) -> ActivityRequest:
    title, description = (title or "").strip(), (description or "").strip()
    if not title or not description or date is None:
        raise ValidationFailed("Sila isi semua maklumat yang diperlukan.")
    if unit_id is not None:
        owns_unit = (
            session.query(Unit.id)
            .filter(Unit.id == unit_id, Unit.is_active.is_(True))
            .filter(or_(Unit.owner_id == user.id, Unit.tenant_id == user.id))
            .first()
        )
        if not owns_unit:
            raise PermissionDenied("Anda hanya boleh memohon bagi unit anda sendiri.")

    activity = ActivityRequest(
        title=title,
        description=description,
        date=date,
        location=(location or "").strip() or None,
        status="PENDING",
        created_by_id=user.id,
        unit_id=unit_id,
    )
    session.add(activity)
    session.commit()
    session.refresh(activity)
    audit_log(
        session,
        user.id,
        "CREATE_ACTIVITY_REQUEST",
        f"Permohonan aktiviti {activity.title} ({activity.id})",
        target_entity_type="ActivityRequest",
        target_entity_id=activity.id,
    )
    return activity


def list_activities(session: Session, user: User) -> List[ActivityRequest]:
    query = session.query(ActivityRequest).options(joinedload(ActivityRequest.created_by))
    if not is_allowed(user.role, "activities:read_all"):
        query = query.filter(ActivityRequest.created_by_id == user.id)
    return query.order_by(ActivityRequest.date.desc()).all()


def update_activity_status(session: Session, activity_id: int, status: str, actor: User) -> ActivityRequest:
    ensure_permission(actor, "activities:update_status")
    if status not in ACTIVITY_STATUSES:
        raise ValidationFailed("Status aktiviti tidak sah.")
    activity = session.get(ActivityRequest, activity_id, options=[joinedload(ActivityRequest.created_by)])
    if activity is None:
        raise NotFound("Permohonan aktiviti tidak dijumpai.")
    activity.status = status
    activity.approved_by_id = actor.id if status in ("APPROVED", "REJECTED") else None
    session.commit()
    audit_log(
        session,
        actor.id,
        "UPDATE_ACTIVITY_STATUS",
        f"Kemaskini status aktiviti {activity.id} kepada {status}",
        target_entity_type="ActivityRequest",
        target_entity_id=activity.id,
    )
    if status == "APPROVED":
        notifications.notify_activity_approved(activity.created_by, activity.title, activity.date, activity.location)
    return activity
