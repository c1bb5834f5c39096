from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalfy.db import get_db
from loyalfy.deps.merchant import get_active_merchant
from loyalfy.models.merchant import Merchant
from loyalfy.schemas.loyalty_settings import (
    LoyaltySettings,
    MerchantSettingsOut,
    MerchantSettingsUpdate,
    NotificationSettings,
)


router = APIRouter(prefix="/merchants", tags=["merchants"])


def _settings_out(merchant: Merchant) -> MerchantSettingsOut:
    return MerchantSettingsOut(
        merchantId=merchant.merchant_id,
        loyaltySettings=LoyaltySettings.model_validate(merchant.loyalty_settings or {}),
        notificationSettings=NotificationSettings.model_validate(merchant.notification_settings or {}),
    )


@router.get("/settings", response_model=MerchantSettingsOut)
def get_settings(merchant: Merchant = Depends(get_active_merchant)):
    return _settings_out(merchant)


@router.put("/settings", response_model=MerchantSettingsOut)
def update_settings(
    payload: MerchantSettingsUpdate,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    # validated by LoyaltySettingsUpdate (tier ordering, positive rates)
    if payload.loyaltySettings is not None:
        merchant.loyalty_settings = payload.loyaltySettings.model_dump()
    if payload.notificationSettings is not None:
        merchant.notification_settings = payload.notificationSettings.model_dump()

    db.commit()
    db.refresh(merchant)
    return _settings_out(merchant)
