from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from loyalfy.db import get_db, utcnow
from loyalfy.deps.merchant import get_active_merchant
from loyalfy.models.coupon import Coupon
from loyalfy.models.customer import Customer
from loyalfy.models.customer_loyalty_activity import CustomerLoyaltyActivity
from loyalfy.models.merchant import Merchant
from loyalfy.schemas.coupon import CouponOut
from loyalfy.schemas.customer import ActivityOut, ApplyRewardIn, CustomerOut
from loyalfy.services.coupon_service import find_reward_for_manual, find_unused_coupon
from loyalfy.services.engine import invoke
from loyalfy.services.notification_service import deliver_outbox_ids


router = APIRouter(prefix="/customers", tags=["customers"])


def _get_customer(db: Session, merchant: Merchant, customer_id: str) -> Customer:
    customer = (
        db.query(Customer)
        .filter(Customer.merchant_id == merchant.id, Customer.customer_id == customer_id)
        .filter(Customer.is_deleted.is_(False))
        .first()
    )
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(
    customer_id: str,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    return _get_customer(db, merchant, customer_id)


@router.get("/{customer_id}/activities", response_model=list[ActivityOut])
def list_activities(
    customer_id: str,
    limit: int = 100,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    customer = _get_customer(db, merchant, customer_id)
    return (
        db.query(CustomerLoyaltyActivity)
        .filter(CustomerLoyaltyActivity.customer_id == customer.id)
        .order_by(CustomerLoyaltyActivity.created_at.desc())
        .limit(max(1, min(limit, 500)))
        .all()
    )


@router.get("/{customer_id}/coupons", response_model=list[CouponOut])
def list_coupons(
    customer_id: str,
    active: bool | None = None,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    customer = _get_customer(db, merchant, customer_id)
    q = db.query(Coupon).filter(Coupon.customer_id == customer.id)
    if active is True:
        q = q.filter(Coupon.used.is_(False)).filter(Coupon.expires_at > utcnow())
    return q.order_by(Coupon.created_at.desc()).all()


@router.post("/{customer_id}/rewards/apply", response_model=CouponOut)
def apply_reward(
    customer_id: str,
    payload: ApplyRewardIn,
    background_tasks: BackgroundTasks,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    customer = _get_customer(db, merchant, customer_id)

    reward = find_reward_for_manual(db, merchant, reward_type=payload.rewardType)
    if not reward:
        raise HTTPException(status_code=404, detail="Reward not found or inactive")

    if (customer.points or 0) < reward.points_required:
        raise HTTPException(status_code=400, detail="Not enough points for this reward")

    if find_unused_coupon(db, customer, reward):
        raise HTTPException(status_code=409, detail="Customer already holds an unused coupon for this reward")

    result = invoke(
        db,
        event="manualReward",
        merchant=merchant,
        customer=customer,
        metadata={"rewardId": str(reward.id), "rewardType": reward.reward_type},
    )
    if not result.coupons:
        raise HTTPException(status_code=409, detail="Reward could not be applied")

    if result.notification_ids:
        background_tasks.add_task(deliver_outbox_ids, result.notification_ids)

    coupon = result.coupons[0]
    db.refresh(coupon)
    return coupon
