"""Key/value settings with hardcoded fallbacks.

Reads never raise: a missing row, an unparseable or non-positive value, or a
broken ``system_settings`` table all resolve to the default for that key.
Writes validate first and degrade to a logged no-op when the table is missing
or the database role lacks permission on it.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import (
    DEFAULT_SETTING_AMOUNTS,
    GENERIC_DEFAULT_AMOUNT,
    SETTING_BASE_BILL_ATAS,
    SETTING_BASE_BILL_BAWAH,
    SETTING_BASE_BILL_LEGACY,
    UNIT_TYPE_SETTING_KEYS,
)
from ..core.errors import ValidationFailed
from ..models.models import SystemSetting

logger = logging.getLogger(__name__)

TOLERATED_PGCODES = {"42P01", "42501"}
TOLERATED_MESSAGES = ("permission denied", "does not exist", "no such table")

UPSERT_SQL = text(
    "INSERT INTO system_settings (key, value, updated_at) VALUES (:key, :value, CURRENT_TIMESTAMP) "
    "ON CONFLICT (key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP"
)


def default_for(key: str) -> Decimal:
    return DEFAULT_SETTING_AMOUNTS.get(key, GENERIC_DEFAULT_AMOUNT)


def parse_positive_amount(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def _is_tolerated_error(exc: Exception) -> bool:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in TOLERATED_PGCODES:
        return True
    message = str(orig or exc).lower()
    return any(fragment in message for fragment in TOLERATED_MESSAGES)


def get_setting_amounts(session: Session, keys: Iterable[str]) -> Dict[str, Decimal]:
    keys = list(keys)
    resolved = {key: default_for(key) for key in keys}
    if not keys:
        return resolved
    try:
        with session.begin_nested():
            rows = (
                session.query(SystemSetting.key, SystemSetting.value)
                .filter(SystemSetting.key.in_(keys))
                .all()
            )
    except SQLAlchemyError as exc:
        logger.warning("Reading system settings failed, using defaults: %s", exc)
        return resolved

    for key, raw_value in rows:
        amount = parse_positive_amount(raw_value)
        if amount is None:
            logger.warning("Setting %s has invalid value %r, using default %s.", key, raw_value, resolved[key])
            continue
        resolved[key] = amount
    return resolved


def get_setting_amount(session: Session, key: str) -> Decimal:
    return get_setting_amounts(session, [key])[key]


def get_base_bill_amounts(session: Session) -> Dict[str, Decimal]:
    values = get_setting_amounts(session, [SETTING_BASE_BILL_ATAS, SETTING_BASE_BILL_BAWAH])
    return {unit_type: values[key] for unit_type, key in UNIT_TYPE_SETTING_KEYS.items()}


def base_amount_for_unit_type(amounts: Dict[str, Decimal], unit_type: Optional[str]) -> Decimal:
    if unit_type in amounts:
        return amounts[unit_type]
    return GENERIC_DEFAULT_AMOUNT


def _write_settings(session: Session, values: Dict[str, Decimal]) -> bool:
    try:
        for key, amount in values.items():
            session.execute(UPSERT_SQL, {"key": key, "value": str(amount)})
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        if _is_tolerated_error(exc):
            logger.warning("System settings table unavailable, settings not saved: %s", exc)
            return False
        raise
    logger.info("Saved system settings %s", sorted(values))
    return True


def _validated(label: str, value) -> Decimal:
    amount = parse_positive_amount(value)
    if amount is None:
        raise ValidationFailed(f"Nilai {label} mestilah nombor positif.")
    return amount


def save_base_bill_amounts(session: Session, atas, bawah) -> bool:
    """Persist both base amounts; returns False when the write was skipped."""
    values = {
        SETTING_BASE_BILL_ATAS: _validated("ATAS", atas),
        SETTING_BASE_BILL_BAWAH: _validated("BAWAH", bawah),
    }
    return _write_settings(session, values)


def save_legacy_base_amount(session: Session, amount) -> bool:
    return _write_settings(session, {SETTING_BASE_BILL_LEGACY: _validated("bil bulanan", amount)})
