import logging
import uuid
from datetime import timedelta

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from loyalfy import config
from loyalfy.db import utcnow
from loyalfy.models.applied_reward import AppliedReward
from loyalfy.models.coupon import Coupon
from loyalfy.models.customer import Customer
from loyalfy.models.customer_loyalty_activity import CustomerLoyaltyActivity
from loyalfy.models.merchant import Merchant
from loyalfy.models.reward import Reward
from loyalfy.schemas.loyalty_settings import LoyaltySettings
from loyalfy.services.coupon_codes import get_coupon_code_provider
from loyalfy.services.ledger_service import apply_delta
from loyalfy.services.notification_service import notify, notify_admin


logger = logging.getLogger(__name__)


def _customer_label(customer) -> str:
    return customer.name or customer.email or customer.customer_id


def _active_reward_query(db: Session, merchant, now):
    return (
        db.query(Reward)
        .filter(Reward.merchant_id == merchant.id)
        .filter(or_(Reward.is_active.is_(True), Reward.enabled.is_(True)))
        .filter(or_(Reward.valid_from.is_(None), Reward.valid_from <= now))
        .filter(or_(Reward.valid_until.is_(None), Reward.valid_until > now))
    )


def find_active_reward(db: Session, merchant, now=None):
    """The reward rule consumed by threshold-triggered coupons."""
    now = now or utcnow()
    return (
        _active_reward_query(db, merchant, now)
        .filter(Reward.is_active.is_(True))
        .filter(Reward.points_required > 0)
        .order_by(Reward.created_at.asc(), Reward.id.asc())
        .first()
    )


def threshold_crossings(points_before: int, points_after: int, threshold: int) -> int:
    if not threshold or threshold <= 0 or points_after <= points_before:
        return 0
    return max(0, points_after // threshold - max(0, points_before) // threshold)


# ============================================================
# CREATE COUPON
# ============================================================
def _create_coupon(db: Session, customer, merchant, reward, *, code_provider, source: str) -> Coupon:
    now = utcnow()
    expires_at = now + timedelta(days=config.COUPON_VALIDITY_DAYS)

    code = code_provider.create_code(db, merchant, reward, starts_at=now, expires_at=expires_at)

    coupon = Coupon(
        code=code,
        customer_id=customer.id,
        merchant_id=merchant.id,
        reward_id=reward.id,
        used=False,
        expires_at=expires_at,
    )
    db.add(coupon)
    db.flush()

    meta = {
        "couponId": str(coupon.id),
        "rewardId": str(reward.id),
        "couponCode": code,
        "source": source,
    }
    db.add(
        CustomerLoyaltyActivity(
            customer_id=customer.id,
            merchant_id=merchant.id,
            event="coupon_generated",
            points=0,
            meta=meta,
        )
    )
    db.flush()

    logger.info(
        "coupon issued",
        extra={
            "coupon_id": str(coupon.id),
            "customer_id": str(customer.id),
            "reward_id": str(reward.id),
            "source": source,
        },
    )

    notify_admin(
        db,
        merchant,
        "New Coupon Generated Successfully",
        f"تم إنشاء كوبون جديد بنجاح للعميل {_customer_label(customer)} برمز: {code}",
        f"A new coupon has been successfully generated for customer {_customer_label(customer)} with code: {code}",
        code=code,
        event="coupon_generated",
        customer=customer,
    )
    return coupon


# ============================================================
# THRESHOLD COUPONS (called after every positive award)
# ============================================================
def issue_threshold_coupons(
    db: Session,
    customer,
    merchant,
    points_before: int,
    points_after: int,
    *,
    code_provider=None,
    settings: LoyaltySettings | None = None,
) -> list[Coupon]:
    settings = settings or LoyaltySettings.model_validate(merchant.loyalty_settings or {})
    reward = find_active_reward(db, merchant)

    threshold = reward.points_required if reward else settings.rewardThreshold
    crossings = threshold_crossings(points_before, points_after, threshold)
    if crossings <= 0:
        return []

    if reward is None:
        logger.warning(
            "threshold crossed but merchant has no active reward",
            extra={"merchant_id": str(merchant.id), "customer_id": str(customer.id), "crossings": crossings},
        )
        notify_admin(
            db,
            merchant,
            "No Active Reward Found",
            f"تنبيه: لا يوجد مكافأة نشطة للعميل {_customer_label(customer)}",
            f"Alert: No active reward found for customer {_customer_label(customer)}",
            event="reward_missing",
            customer=customer,
        )
        return []

    code_provider = code_provider or get_coupon_code_provider()

    coupons = []
    for _ in range(crossings):
        coupon = _create_coupon(db, customer, merchant, reward, code_provider=code_provider, source="threshold")
        notify(
            db,
            customer,
            merchant,
            "coupon_generated",
            0,
            {"couponId": str(coupon.id), "rewardId": str(reward.id), "couponCode": coupon.code},
        )
        coupons.append(coupon)

    logger.info(
        "coupon generation summary",
        extra={
            "customer_id": str(customer.id),
            "coupons": len(coupons),
            "points": points_after,
            "threshold": threshold,
        },
    )
    return coupons


# ============================================================
# MANUAL COUPON (manualReward event)
# ============================================================
def find_reward_for_manual(db: Session, merchant, *, reward_id=None, reward_type: str | None = None):
    if reward_id is not None and not isinstance(reward_id, uuid.UUID):
        try:
            reward_id = uuid.UUID(str(reward_id))
        except ValueError:
            return None

    q = _active_reward_query(db, merchant, utcnow())
    if reward_id:
        q = q.filter(Reward.id == reward_id)
    elif reward_type:
        q = q.filter(Reward.reward_type == reward_type)
    else:
        return None
    return q.order_by(Reward.created_at.asc(), Reward.id.asc()).first()


def issue_manual_coupon(
    db: Session,
    customer,
    merchant,
    *,
    reward_id=None,
    reward_type: str | None = None,
    code_provider=None,
):
    reward = find_reward_for_manual(db, merchant, reward_id=reward_id, reward_type=reward_type)
    if reward is None:
        logger.warning(
            "manual reward requested but no matching active reward",
            extra={"merchant_id": str(merchant.id), "reward_id": str(reward_id), "reward_type": reward_type},
        )
        notify_admin(
            db,
            merchant,
            "No Active Reward Found",
            f"تنبيه: لا يوجد مكافأة نشطة للعميل {_customer_label(customer)}",
            f"Alert: No active reward found for customer {_customer_label(customer)}",
            event="reward_missing",
            customer=customer,
        )
        return None

    coupon = _create_coupon(
        db,
        customer,
        merchant,
        reward,
        code_provider=code_provider or get_coupon_code_provider(),
        source="manual",
    )
    notify(
        db,
        customer,
        merchant,
        "manualReward",
        0,
        {"couponId": str(coupon.id), "rewardId": str(reward.id), "couponCode": coupon.code, "manual": True},
    )
    return coupon


def find_unused_coupon(db: Session, customer, reward):
    return (
        db.query(Coupon)
        .filter(Coupon.customer_id == customer.id)
        .filter(Coupon.reward_id == reward.id)
        .filter(Coupon.used.is_(False))
        .filter(Coupon.expires_at > utcnow())
        .first()
    )


# ============================================================
# REDEEM COUPON
# ============================================================
def redeem_coupon(db: Session, coupon: Coupon, order_id: str | None = None) -> Coupon:
    """
    Consumes a coupon: deducts the reward cost through the ledger and marks
    the coupon used. Flushes but does not commit.
    """
    if coupon.used:
        raise HTTPException(status_code=400, detail="Coupon has already been used")

    now = utcnow()
    if coupon.expires_at and coupon.expires_at < now:
        raise HTTPException(status_code=400, detail="Coupon has expired")

    reward = db.query(Reward).filter(Reward.id == coupon.reward_id).first()
    if not reward:
        raise HTTPException(status_code=404, detail="Reward not found")

    customer = (
        db.query(Customer)
        .filter(Customer.id == coupon.customer_id)
        .with_for_update()
        .populate_existing()
        .one()
    )
    merchant = db.query(Merchant).filter(Merchant.id == coupon.merchant_id).one()

    if (customer.points or 0) < reward.points_required:
        raise HTTPException(status_code=400, detail="Customer does not have enough points to redeem this reward")

    metadata = {
        "rewardType": reward.reward_type,
        "rewardValue": float(reward.reward_value or 0),
        "couponCode": coupon.code,
        "orderId": order_id,
        "expiresAt": coupon.expires_at.date().isoformat() if coupon.expires_at else None,
    }
    apply_delta(db, customer, merchant, -int(reward.points_required), "reward_redeemed", metadata)

    db.add(AppliedReward(customer_id=customer.id, reward_id=reward.id, coupon_id=coupon.id, applied_at=now))

    # one-way transition
    coupon.used = True
    coupon.used_at = now
    if order_id:
        coupon.used_on_order_id = order_id

    reward.current_usage = (reward.current_usage or 0) + 1
    db.flush()

    notify_admin(
        db,
        merchant,
        "Reward Coupon Redeemed",
        f"تم استخدام كوبون مكافأة للعميل {_customer_label(customer)}: {coupon.code}",
        f"A reward coupon was redeemed for customer {_customer_label(customer)}: {coupon.code}",
        code=coupon.code,
        event="reward_redeemed",
        customer=customer,
    )
    return coupon
