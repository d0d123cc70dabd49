"""Central action to role policy.

Every role check in the API and service layers goes through :func:`is_allowed`,
either via the ``require_permission`` dependency or ``ensure_permission``.
Ownership rules (a resident acting on their own unit) are layered on top by the
callers that need them.
"""

from typing import Dict, FrozenSet, Iterable, Optional

from ..constants import COMMITTEE_ROLES, MANAGEMENT_ROLES, REFUND_APPROVER_ROLES, ROLE_NAMES
from .errors import PermissionDenied

ALL_ROLES = frozenset(ROLE_NAMES)
MANAGEMENT = frozenset(MANAGEMENT_ROLES)
COMMITTEE = frozenset(COMMITTEE_ROLES)
SUPER_ADMIN = frozenset({"SUPER_ADMIN"})

POLICY: Dict[str, FrozenSet[str]] = {
    # units
    "units:read": MANAGEMENT,
    "units:create": COMMITTEE,
    "units:update": MANAGEMENT,
    "units:deactivate": COMMITTEE,
    "units:pay_manual_arrears": MANAGEMENT,
    # billing
    "bills:read_all": MANAGEMENT,
    "bills:create": MANAGEMENT,
    "bills:generate": MANAGEMENT,
    "bills:upload_receipt": MANAGEMENT,
    "bills:verify": MANAGEMENT,
    "bills:manual_payment": MANAGEMENT,
    "bills:update_status": MANAGEMENT,
    "bills:initiate_refund": MANAGEMENT,
    "bills:approve_refund": frozenset(REFUND_APPROVER_ROLES),
    # settings
    "settings:read": MANAGEMENT,
    "settings:update": COMMITTEE,
    # finance
    "finance:read": MANAGEMENT | {"FINANCE"},
    "finance:create_expense": MANAGEMENT | {"FINANCE"},
    "finance:approve_expense": COMMITTEE,
    "finance:create_income": MANAGEMENT | {"FINANCE"},
    "finance:report": MANAGEMENT | {"FINANCE"},
    # agm
    "agm:manage": COMMITTEE,
    "agm:vote": ALL_ROLES,
    "agm:override_eligibility": COMMITTEE,
    # users
    "users:read": MANAGEMENT,
    "users:manage": SUPER_ADMIN,
    "committee:read": ALL_ROLES,
    # community
    "notices:create": MANAGEMENT,
    "complaints:read_all": MANAGEMENT,
    "complaints:update_status": MANAGEMENT,
    "activities:read_all": MANAGEMENT,
    "activities:update_status": MANAGEMENT,
    # oversight
    "audit_logs:read": MANAGEMENT,
    "dashboard:summary": MANAGEMENT | {"FINANCE"},
    "search:all": MANAGEMENT,
}


def roles_for(action: str) -> FrozenSet[str]:
    try:
        return POLICY[action]
    except KeyError:
        raise KeyError(f"Unknown action '{action}'") from None


def is_allowed(role: Optional[str], action: str) -> bool:
    return bool(role) and role in roles_for(action)


def ensure_permission(user, action: str, message: Optional[str] = None) -> None:
    if user is None or not getattr(user, "is_active", True) or not is_allowed(user.role, action):
        if message:
            raise PermissionDenied(message)
        raise PermissionDenied()


def is_management(role: Optional[str]) -> bool:
    return bool(role) and role in MANAGEMENT


def actions_for_role(role: str) -> Iterable[str]:
    return sorted(action for action, roles in POLICY.items() if role in roles)
