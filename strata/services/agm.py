from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..constants import AGM_STATUS_TRANSITIONS, VOTE_CHOICES
from ..core.errors import NotFound, PermissionDenied, StateConflict, ValidationFailed
from ..core.permissions import ensure_permission
from ..models.models import AGM, AGMResolution, User, Vote, utcnow
from .arrears import ZERO, arrears_for_units, units_for_user
from .audit import audit_log

OVERRIDE_APPROVED_REASON = "Diluluskan oleh JMB"
OVERRIDE_DENIED_REASON = "Tidak dibenarkan oleh JMB"
NO_UNIT_REASON = "Tiada unit berdaftar"
NOT_ALLOWED_MESSAGE = "Tidak dibenarkan"


@dataclass
class Eligibility:
    eligible: bool
    reason: Optional[str]
    arrears: Decimal = ZERO
    overridden: bool = False


def arrears_reason(total: Decimal) -> str:
    return f"Mempunyai tunggakan sebanyak RM {total:.2f}. Sila selesaikan tunggakan untuk layak mengundi."


def check_voting_eligibility(session: Session, user: User) -> Eligibility:
    """Decide whether ``user`` may vote right now.

    A committee override wins outright. Otherwise the user needs at least one
    unit and zero arrears across all of them.
    """
    if user.voting_eligibility_override is not None:
        eligible = bool(user.voting_eligibility_override)
        default_reason = OVERRIDE_APPROVED_REASON if eligible else OVERRIDE_DENIED_REASON
        return Eligibility(
            eligible=eligible,
            reason=user.voting_override_reason or default_reason,
            overridden=True,
        )

    units = units_for_user(session, user)
    if not units:
        return Eligibility(eligible=False, reason=NO_UNIT_REASON)

    summary = arrears_for_units(session, units)
    if summary.total > 0:
        return Eligibility(eligible=False, reason=arrears_reason(summary.total), arrears=summary.total)
    return Eligibility(eligible=True, reason=None, arrears=summary.total)


def set_voting_override(
    session: Session,
    target: User,
    eligible: Optional[bool],
    reason: Optional[str],
    actor: User,
) -> User:
    ensure_permission(actor, "agm:override_eligibility", NOT_ALLOWED_MESSAGE)
    reason = (reason or "").strip() or None
    if eligible is not None and not reason:
        raise ValidationFailed("Sila nyatakan sebab keputusan kelayakan.")

    target.voting_eligibility_override = eligible
    target.voting_override_reason = reason if eligible is not None else None
    target.voting_override_set_by_id = actor.id
    target.voting_override_set_at = utcnow()
    session.commit()

    if eligible is None:
        label = "RESET (ikut sistem)"
    else:
        label = "LAYAK (manual)" if eligible else "TIDAK LAYAK (manual)"
    audit_log(
        session,
        actor.id,
        "SET_VOTING_ELIGIBILITY",
        f"Kelayakan mengundi {target.name} ({target.email}) ditetapkan kepada {label}"
        + (f". Sebab: {reason}" if reason else ""),
        target_entity_type="User",
        target_entity_id=target.id,
    )
    return target


def get_agm(session: Session, agm_id: int) -> AGM:
    agm = session.get(AGM, agm_id, options=[joinedload(AGM.resolutions)])
    if agm is None:
        raise NotFound("AGM tidak dijumpai")
    return agm


def create_agm(
    session: Session,
    actor: User,
    title: str,
    meeting_date: datetime,
    description: Optional[str] = None,
    resolutions: Iterable[Dict[str, Optional[str]]] = (),
) -> AGM:
    ensure_permission(actor, "agm:manage", NOT_ALLOWED_MESSAGE)
    title = (title or "").strip()
    if not title or meeting_date is None:
        raise ValidationFailed("Sila isi semua maklumat yang diperlukan")

    agm = AGM(title=title, description=description, meeting_date=meeting_date, status="DRAFT", created_by_id=actor.id)
    for index, item in enumerate(resolutions, start=1):
        resolution_title = (item.get("title") or "").strip()
        if not resolution_title:
            continue
        agm.resolutions.append(AGMResolution(title=resolution_title, description=item.get("description"), order=index))
    session.add(agm)
    session.commit()
    session.refresh(agm)

    audit_log(session, actor.id, "CREATE_AGM", f'AGM "{agm.title}" dicipta', target_entity_type="AGM", target_entity_id=agm.id)
    return agm


def update_agm(
    session: Session,
    agm: AGM,
    actor: User,
    title: Optional[str] = None,
    description: Optional[str] = None,
    meeting_date: Optional[datetime] = None,
) -> AGM:
    ensure_permission(actor, "agm:manage", NOT_ALLOWED_MESSAGE)
    if title is not None:
        if not title.strip():
            raise ValidationFailed("Sila isi semua maklumat yang diperlukan")
        agm.title = title.strip()
    if description is not None:
        agm.description = description
    if meeting_date is not None:
        agm.meeting_date = meeting_date
    session.commit()
    audit_log(session, actor.id, "UPDATE_AGM", f'AGM "{agm.title}" dikemaskini', target_entity_type="AGM", target_entity_id=agm.id)
    return agm


def update_agm_status(session: Session, agm: AGM, status: str, actor: User) -> AGM:
    ensure_permission(actor, "agm:manage", NOT_ALLOWED_MESSAGE)
    if status not in AGM_STATUS_TRANSITIONS:
        raise ValidationFailed("Status AGM tidak sah.")
    if status == agm.status:
        return agm
    if status not in AGM_STATUS_TRANSITIONS.get(agm.status, set()):
        raise StateConflict(f"Status AGM tidak boleh ditukar dari {agm.status} ke {status}.")
    agm.status = status
    session.commit()
    audit_log(
        session,
        actor.id,
        "UPDATE_AGM_STATUS",
        f'Status AGM "{agm.title}" dikemaskini kepada {status}',
        target_entity_type="AGM",
        target_entity_id=agm.id,
    )
    return agm


def delete_agm(session: Session, agm: AGM, actor: User) -> None:
    ensure_permission(actor, "agm:manage", NOT_ALLOWED_MESSAGE)
    if agm.status != "DRAFT":
        raise StateConflict("Hanya AGM berstatus DRAFT boleh dipadam.")
    title, agm_id = agm.title, agm.id
    session.delete(agm)
    session.commit()
    audit_log(session, actor.id, "DELETE_AGM", f'AGM "{title}" dipadam', target_entity_type="AGM", target_entity_id=agm_id)


def add_resolution(session: Session, agm: AGM, actor: User, title: str, description: Optional[str] = None) -> AGMResolution:
    ensure_permission(actor, "agm:manage", NOT_ALLOWED_MESSAGE)
    title = (title or "").strip()
    if not title:
        raise ValidationFailed("Sila isi tajuk resolusi")
    if agm.status == "CLOSED":
        raise StateConflict("AGM telah ditutup.")
    current_max = (
        session.query(func.max(AGMResolution.order)).filter(AGMResolution.agm_id == agm.id).scalar() or 0
    )
    resolution = AGMResolution(agm_id=agm.id, title=title, description=description, order=current_max + 1)
    session.add(resolution)
    session.commit()
    session.refresh(resolution)
    audit_log(
        session,
        actor.id,
        "ADD_RESOLUTION",
        f'Resolusi "{title}" ditambah ke AGM "{agm.title}"',
        target_entity_type="AGMResolution",
        target_entity_id=resolution.id,
    )
    return resolution


def delete_resolution(session: Session, resolution_id: int, actor: User) -> None:
    ensure_permission(actor, "agm:manage", NOT_ALLOWED_MESSAGE)
    resolution = session.get(AGMResolution, resolution_id)
    if resolution is None:
        raise NotFound("Resolusi tidak dijumpai")
    title = resolution.title
    session.delete(resolution)
    session.commit()
    audit_log(
        session,
        actor.id,
        "DELETE_RESOLUTION",
        f'Resolusi "{title}" dipadam',
        target_entity_type="AGMResolution",
        target_entity_id=resolution_id,
    )


def cast_vote(session: Session, user: User, resolution_id: int, choice: str) -> Vote:
    """Record or replace ``user``'s vote on a resolution.

    Eligibility is evaluated at call time, so settling arrears (or losing an
    override) takes effect on the very next vote.
    """
    if choice not in VOTE_CHOICES:
        raise ValidationFailed("Pilihan undi tidak sah.")
    eligibility = check_voting_eligibility(session, user)
    if not eligibility.eligible:
        raise PermissionDenied(eligibility.reason or "Tidak layak mengundi")

    resolution = session.get(AGMResolution, resolution_id, options=[joinedload(AGMResolution.agm)])
    if resolution is None:
        raise NotFound("Resolusi tidak dijumpai")
    if resolution.agm.status != "ACTIVE":
        raise StateConflict("AGM tidak aktif. Pengundian tidak dibenarkan.")

    units = units_for_user(session, user)
    unit_id = units[0].id if units else None
    vote = (
        session.query(Vote)
        .filter(Vote.resolution_id == resolution.id, Vote.user_id == user.id)
        .first()
    )
    if vote is None:
        vote = Vote(resolution_id=resolution.id, user_id=user.id, unit_id=unit_id, choice=choice)
        session.add(vote)
    else:
        vote.choice = choice
        vote.unit_id = unit_id
    session.commit()

    audit_log(
        session,
        user.id,
        "CAST_VOTE",
        f'Undian {choice} untuk resolusi "{resolution.title}"',
        target_entity_type="AGMResolution",
        target_entity_id=resolution.id,
    )
    return vote


def compute_results(session: Session, agm: AGM) -> List[Dict[str, object]]:
    rows = (
        session.query(Vote.resolution_id, Vote.choice, func.count(Vote.id))
        .join(AGMResolution, AGMResolution.id == Vote.resolution_id)
        .filter(AGMResolution.agm_id == agm.id)
        .group_by(Vote.resolution_id, Vote.choice)
        .all()
    )
    counts: Dict[int, Dict[str, int]] = {}
    for resolution_id, choice, count in rows:
        counts.setdefault(resolution_id, {})[choice] = count

    results: List[Dict[str, object]] = []
    for resolution in sorted(agm.resolutions, key=lambda item: item.order):
        tally = {choice: counts.get(resolution.id, {}).get(choice, 0) for choice in VOTE_CHOICES}
        results.append(
            {
                "resolution_id": resolution.id,
                "title": resolution.title,
                "order": resolution.order,
                "counts": tally,
                "total": sum(tally.values()),
            }
        )
    return results


def my_votes(session: Session, agm: AGM, user: User) -> Dict[int, str]:
    rows = (
        session.query(Vote.resolution_id, Vote.choice)
        .join(AGMResolution, AGMResolution.id == Vote.resolution_id)
        .filter(AGMResolution.agm_id == agm.id, Vote.user_id == user.id)
        .all()
    )
    return {resolution_id: choice for resolution_id, choice in rows}
