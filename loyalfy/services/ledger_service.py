import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from loyalfy.models.customer import Customer
from loyalfy.models.customer_loyalty_activity import CustomerLoyaltyActivity
from loyalfy.schemas.loyalty_settings import LoyaltySettings
from loyalfy.services.notification_service import notify
from loyalfy.services.tier_service import TierThresholds, resolve_tier, tier_rank


logger = logging.getLogger(__name__)


@dataclass
class LedgerResult:
    activity: CustomerLoyaltyActivity
    points_before: int
    points_applied: int
    new_balance: int
    old_tier: str
    new_tier: str

    @property
    def tier_changed(self) -> bool:
        return self.old_tier != self.new_tier

    @property
    def tier_upgraded(self) -> bool:
        return tier_rank(self.new_tier) > tier_rank(self.old_tier)


def lock_customer(db: Session, customer) -> Customer:
    # row lock held until the caller commits: serializes writers per customer
    return (
        db.query(Customer)
        .filter(Customer.id == customer.id)
        .with_for_update()
        .populate_existing()
        .one()
    )


# ============================================================
# APPLY DELTA
# ============================================================
def apply_delta(
    db: Session,
    customer,
    merchant,
    points: int,
    event: str,
    metadata: dict | None = None,
    *,
    settings: LoyaltySettings | None = None,
    send_notification: bool = True,
) -> LedgerResult:
    """
    Applies a signed point delta to a customer and records the activity.

    Deductions are clamped at the current balance; the activity stores the
    amount actually removed. Flushes but does not commit.
    """
    settings = settings or LoyaltySettings.model_validate(merchant.loyalty_settings or {})
    metadata = dict(metadata or {})

    customer = lock_customer(db, customer)

    before = int(customer.points or 0)
    requested = int(points)
    if requested >= 0:
        applied = requested
    else:
        applied = -min(-requested, before)

    customer.points = before + applied

    old_tier = customer.tier or resolve_tier(before, TierThresholds.from_settings(settings))
    new_tier = resolve_tier(customer.points, TierThresholds.from_settings(settings))
    customer.tier = new_tier

    if event == "shareReferral" and applied > 0:
        customer.share_count = (customer.share_count or 0) + 1

    if applied != requested:
        metadata.setdefault("requestedPoints", requested)

    activity = CustomerLoyaltyActivity(
        customer_id=customer.id,
        merchant_id=merchant.id,
        event=event,
        points=applied,
        meta=metadata,
    )
    db.add(activity)
    db.flush()

    if old_tier != new_tier:
        logger.info(
            "customer tier upgraded" if tier_rank(new_tier) > tier_rank(old_tier) else "customer tier downgraded",
            extra={
                "customer_id": str(customer.id),
                "from_tier": old_tier,
                "to_tier": new_tier,
                "event": event,
            },
        )

    logger.info(
        "ledger entry written",
        extra={
            "customer_id": str(customer.id),
            "merchant_id": str(merchant.id),
            "event": event,
            "points": applied,
            "balance": customer.points,
        },
    )

    if send_notification and applied != 0:
        notify(db, customer, merchant, event, abs(applied), metadata)

    return LedgerResult(
        activity=activity,
        points_before=before,
        points_applied=applied,
        new_balance=customer.points,
        old_tier=old_tier,
        new_tier=new_tier,
    )
