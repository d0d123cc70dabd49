from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_permission
from ..models.models import User
from ..schemas.schemas import BillingSettingsRead, BillingSettingsSaved, BillingSettingsUpdate
from ..services import system_settings
from ..services.audit import audit_log

router = APIRouter()


@router.get("/billing", response_model=BillingSettingsRead)
def read_billing_settings(
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("settings:read")),
) -> BillingSettingsRead:
    amounts = system_settings.get_base_bill_amounts(db)
    return BillingSettingsRead(base_monthly_bill_atas=amounts["ATAS"], base_monthly_bill_bawah=amounts["BAWAH"])


@router.put("/billing", response_model=BillingSettingsSaved)
def update_billing_settings(
    payload: BillingSettingsUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("settings:update")),
) -> BillingSettingsSaved:
    saved = system_settings.save_base_bill_amounts(db, payload.base_monthly_bill_atas, payload.base_monthly_bill_bawah)
    if saved:
        audit_log(
            db,
            actor.id,
            "UPDATE_SETTINGS",
            f"Kadar bil bulanan: ATAS RM {payload.base_monthly_bill_atas:.2f}, BAWAH RM {payload.base_monthly_bill_bawah:.2f}",
            target_entity_type="SystemSetting",
        )
    amounts = system_settings.get_base_bill_amounts(db)
    return BillingSettingsSaved(
        base_monthly_bill_atas=amounts["ATAS"],
        base_monthly_bill_bawah=amounts["BAWAH"],
        saved=saved,
    )
