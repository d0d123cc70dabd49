from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from ..auth.jwt import get_password_hash, verify_password
from ..constants import COMMITTEE_TYPES, RESIDENT_ROLES, ROLE_NAMES
from ..core.errors import NotFound, PermissionDenied, StateConflict, ValidationFailed
from ..core.permissions import ensure_permission
from ..models.models import User
from .audit import audit_log

MIN_PASSWORD_LENGTH = 8


def authenticate(session: Session, email: str, password: str) -> Optional[User]:
    user = session.query(User).filter(func.lower(User.email) == (email or "").strip().lower()).first()
    if user is None or not user.is_active or not verify_password(password, user.hashed_password):
        return None
    return user


def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFound("Pengguna tidak dijumpai.")
    return user


def _email_taken(session: Session, email: str, exclude_id: Optional[int] = None) -> bool:
    query = session.query(User.id).filter(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def _phone_taken(session: Session, phone: str) -> bool:
    return session.query(User.id).filter(User.phone == phone).first() is not None


def _clean_committee(committee_type: Optional[str], committee_position: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    committee_type = (committee_type or "").strip().upper() or None
    if committee_type is not None and committee_type not in COMMITTEE_TYPES:
        raise ValidationFailed("Jenis jawatankuasa tidak sah.")
    if committee_type is None:
        return None, None
    return committee_type, (committee_position or "").strip() or None


def create_user(
    session: Session,
    actor: User,
    email: str,
    name: str,
    password: str,
    role: str = "OWNER",
    phone: Optional[str] = None,
    committee_type: Optional[str] = None,
    committee_position: Optional[str] = None,
) -> User:
    ensure_permission(actor, "users:manage")
    if role not in ROLE_NAMES:
        raise ValidationFailed("Peranan tidak sah.")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("Kata laluan mestilah sekurang-kurangnya 8 aksara.")
    committee_type, committee_position = _clean_committee(committee_type, committee_position)
    email = email.strip().lower()
    if _email_taken(session, email):
        raise StateConflict("E-mel sudah digunakan.")

    user = User(
        email=email,
        name=name.strip(),
        phone=phone,
        role=role,
        hashed_password=get_password_hash(password),
        committee_type=committee_type,
        committee_position=committee_position,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    audit_log(session, actor.id, "CREATE_USER", f"Pengguna {user.email} ({role}) dicipta", target_entity_type="User", target_entity_id=user.id)
    return user


def update_user(session: Session, user: User, actor: User, changes: Dict[str, Any]) -> User:
    ensure_permission(actor, "users:manage")
    if "role" in changes and changes["role"] not in ROLE_NAMES:
        raise ValidationFailed("Peranan tidak sah.")
    if changes.get("password") and len(changes["password"]) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("Kata laluan mestilah sekurang-kurangnya 8 aksara.")
    committee_changed = "committee_type" in changes or "committee_position" in changes
    if committee_changed:
        committee = _clean_committee(
            changes.get("committee_type", user.committee_type),
            changes.get("committee_position", user.committee_position),
        )
    if changes.get("email"):
        changes["email"] = changes["email"].strip().lower()
        if _email_taken(session, changes["email"], exclude_id=user.id):
            raise StateConflict("E-mel sudah digunakan.")

    applied = {}
    for key in ("email", "name", "phone", "role"):
        if key in changes and changes[key] is not None:
            setattr(user, key, changes[key])
            applied[key] = changes[key]
    if changes.get("password"):
        user.hashed_password = get_password_hash(changes["password"])
        applied["password"] = "***"
    if committee_changed:
        user.committee_type, user.committee_position = committee
        applied["committee"] = f"{committee[0] or '-'} / {committee[1] or '-'}"
    session.commit()
    audit_log(session, actor.id, "UPDATE_USER", {"user": user.email, "changes": applied}, target_entity_type="User", target_entity_id=user.id)
    return user


def deactivate_user(session: Session, user: User, actor: User) -> User:
    ensure_permission(actor, "users:manage")
    if user.id == actor.id:
        raise PermissionDenied("Anda tidak boleh menyahaktifkan akaun sendiri.")
    user.is_active = False
    session.commit()
    audit_log(session, actor.id, "DEACTIVATE_USER", f"Pengguna {user.email} dinyahaktifkan", target_entity_type="User", target_entity_id=user.id)
    return user


def update_profile(
    session: Session,
    user: User,
    name: Optional[str] = None,
    phone: Optional[str] = None,
    current_password: Optional[str] = None,
    new_password: Optional[str] = None,
) -> User:
    if name is not None:
        if not name.strip():
            raise ValidationFailed("Nama diperlukan.")
        user.name = name.strip()
    if phone is not None:
        user.phone = phone.strip() or None
    if new_password:
        if not current_password or not verify_password(current_password, user.hashed_password):
            raise ValidationFailed("Kata laluan semasa tidak betul.")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailed("Kata laluan mestilah sekurang-kurangnya 8 aksara.")
        user.hashed_password = get_password_hash(new_password)
    session.commit()
    audit_log(session, user.id, "UPDATE_PROFILE", f"Profil {user.email} dikemaskini", target_entity_type="User", target_entity_id=user.id)
    return user


def register_user(
    session: Session,
    email: str,
    name: str,
    phone: str,
    password: str,
    confirm_password: str,
    role: str = "OWNER",
) -> User:
    """Self-service sign-up; only resident roles can be chosen."""
    if role not in RESIDENT_ROLES:
        raise PermissionDenied("Pendaftaran sendiri hanya untuk pemilik atau penyewa.")
    name = (name or "").strip()
    phone = (phone or "").strip()
    if not name or len(phone) < 10:
        raise ValidationFailed("Nama dan nombor telefon (sekurang-kurangnya 10 digit) diperlukan.")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("Kata laluan mestilah sekurang-kurangnya 8 aksara.")
    if password != confirm_password:
        raise ValidationFailed("Kata laluan tidak sepadan.")
    email = email.strip().lower()
    if _phone_taken(session, phone):
        raise StateConflict("Nombor telefon sudah didaftarkan.")
    if _email_taken(session, email):
        raise StateConflict("E-mel sudah digunakan.")

    user = User(email=email, name=name, phone=phone, role=role, hashed_password=get_password_hash(password))
    session.add(user)
    session.commit()
    session.refresh(user)
    audit_log(session, user.id, "REGISTER", f"Pendaftaran {user.email} ({role})", target_entity_type="User", target_entity_id=user.id)
    return user


def committee_directory(session: Session) -> Dict[str, List[User]]:
    members = (
        session.query(User)
        .options(selectinload(User.owned_units), selectinload(User.rented_units))
        .filter(User.is_active.is_(True), User.committee_type.in_(COMMITTEE_TYPES))
        .order_by(User.name.asc())
        .all()
    )
    directory: Dict[str, List[User]] = {committee_type: [] for committee_type in COMMITTEE_TYPES}
    for member in members:
        directory[member.committee_type].append(member)
    return directory
