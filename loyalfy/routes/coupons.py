from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from loyalfy.db import get_db
from loyalfy.deps.merchant import get_active_merchant
from loyalfy.models.coupon import Coupon
from loyalfy.models.merchant import Merchant
from loyalfy.schemas.coupon import CouponOut, CouponRedeem
from loyalfy.services.coupon_service import redeem_coupon
from loyalfy.services.notification_service import deliver_outbox_ids, discard_enqueued_ids, take_enqueued_ids


router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("/{coupon_id}/redeem", response_model=CouponOut)
def redeem(
    coupon_id: UUID,
    background_tasks: BackgroundTasks,
    payload: CouponRedeem | None = None,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    coupon = (
        db.query(Coupon)
        .filter(Coupon.id == coupon_id, Coupon.merchant_id == merchant.id)
        .with_for_update()
        .first()
    )
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")

    try:
        redeem_coupon(db, coupon, order_id=(payload.orderId if payload else None))
        db.commit()
    except Exception:
        db.rollback()
        discard_enqueued_ids(db)
        raise

    ids = take_enqueued_ids(db)
    if ids:
        background_tasks.add_task(deliver_outbox_ids, ids)

    db.refresh(coupon)
    return coupon
