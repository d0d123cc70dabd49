from typing import Dict, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, aliased, joinedload

from ..core.permissions import is_allowed
from ..models.models import Unit, User

MIN_QUERY_LENGTH = 2
RESULT_LIMIT = 5


def search(session: Session, user: User, query: str) -> List[Dict[str, object]]:
    """Quick search for the header bar.

    Management searches users and units; residents only see their own units.
    """
    term = (query or "").strip().lower()
    if len(term) < MIN_QUERY_LENGTH:
        return []
    pattern = f"%{term}%"
    results: List[Dict[str, object]] = []

    if is_allowed(user.role, "search:all"):
        users = (
            session.query(User)
            .filter(User.is_active.is_(True))
            .filter(
                or_(
                    func.lower(User.name).like(pattern),
                    func.lower(User.email).like(pattern),
                    User.phone.like(pattern),
                )
            )
            .order_by(User.name.asc())
            .limit(RESULT_LIMIT)
            .all()
        )
        for match in users:
            results.append(
                {"type": "user", "id": match.id, "label": match.name, "subtitle": f"{match.phone or '-'} • {match.role}"}
            )

        owner = aliased(User)
        tenant = aliased(User)
        units = (
            session.query(Unit)
            .outerjoin(owner, owner.id == Unit.owner_id)
            .outerjoin(tenant, tenant.id == Unit.tenant_id)
            .options(joinedload(Unit.owner), joinedload(Unit.tenant))
            .filter(Unit.is_active.is_(True))
            .filter(
                or_(
                    func.lower(Unit.unit_number).like(pattern),
                    func.lower(owner.name).like(pattern),
                    owner.phone.like(pattern),
                    func.lower(tenant.name).like(pattern),
                    tenant.phone.like(pattern),
                )
            )
            .order_by(Unit.unit_number.asc())
            .limit(RESULT_LIMIT)
            .all()
        )
        for unit in units:
            owner_name = unit.owner.name if unit.owner else "Tiada pemilik"
            tenant_info = f" • Penyewa: {unit.tenant.name}" if unit.tenant else ""
            results.append(
                {"type": "unit", "id": unit.id, "label": unit.unit_number, "subtitle": f"Pemilik: {owner_name}{tenant_info}"}
            )
        return results

    units = (
        session.query(Unit)
        .filter(Unit.is_active.is_(True))
        .filter(or_(Unit.owner_id == user.id, Unit.tenant_id == user.id))
        .filter(func.lower(Unit.unit_number).like(pattern))
        .order_by(Unit.unit_number.asc())
        .limit(RESULT_LIMIT)
        .all()
    )
    for unit in units:
        results.append({"type": "unit", "id": unit.id, "label": unit.unit_number, "subtitle": "Unit anda"})
    return results
