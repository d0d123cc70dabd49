"""Scheduled jobs triggered over HTTP by the platform scheduler.

Both endpoints require ``Authorization: Bearer <CRON_SECRET>`` and act on the
current month.
"""

import hmac
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..config import settings
from ..schemas.schemas import CronBillingResult, CronReminderResult
from ..services.billing import generate_monthly_bills
from ..services.reminders import send_payment_reminders

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    secret = settings.cron_secret
    supplied = ""
    if authorization and authorization.lower().startswith("bearer "):
        supplied = authorization.split(" ", 1)[1].strip()
    if not secret or not supplied or not hmac.compare_digest(supplied.encode(), secret.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def _current_period() -> tuple:
    now = datetime.now(timezone.utc)
    return now.month, now.year


def _failure(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc) or exc.__class__.__name__})


@router.get("/billing", response_model=CronBillingResult, dependencies=[Depends(verify_cron_secret)])
def run_billing(db: Session = Depends(get_db)):
    month, year = _current_period()
    try:
        result = generate_monthly_bills(db, month, year)
    except Exception as exc:
        db.rollback()
        logger.exception("Scheduled bill generation failed for %02d/%d.", month, year)
        return _failure(exc)
    return CronBillingResult(success=True, count=result.count, month=month, year=year)


@router.get("/reminders", response_model=CronReminderResult, dependencies=[Depends(verify_cron_secret)])
def run_reminders(db: Session = Depends(get_db)):
    month, year = _current_period()
    try:
        result = send_payment_reminders(db, month, year)
    except Exception as exc:
        logger.exception("Scheduled payment reminders failed for %02d/%d.", month, year)
        return _failure(exc)
    return CronReminderResult(
        success=True,
        sent_count=result.sent_count,
        total_pending=result.total_pending,
        month=month,
        year=year,
    )
