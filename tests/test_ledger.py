import random

from loyalfy.models.customer_loyalty_activity import CustomerLoyaltyActivity
from loyalfy.services.ledger_service import apply_delta
from loyalfy.services.reconciliation_service import ledger_balance

from tests.conftest import make_loyalty_settings


def _activities(db, customer):
    return (
        db.query(CustomerLoyaltyActivity)
        .filter(CustomerLoyaltyActivity.customer_id == customer.id)
        .order_by(CustomerLoyaltyActivity.created_at.asc())
        .all()
    )


def test_award_updates_balance_and_writes_activity(db, merchant, customer):
    result = apply_delta(db, customer, merchant, 120, "welcome")
    db.commit()

    assert result.points_before == 0
    assert result.points_applied == 120
    assert result.new_balance == 120
    assert customer.points == 120

    rows = _activities(db, customer)
    assert [(r.event, r.points) for r in rows] == [("welcome", 120)]


def test_deduction_is_clamped_at_current_balance(db, merchant, customer):
    customer.points = 30
    db.add(CustomerLoyaltyActivity(customer_id=customer.id, merchant_id=merchant.id, event="welcome", points=30))
    db.commit()

    result = apply_delta(db, customer, merchant, -100, "pointsDeduction", {"reason": "order_cancelled"})
    db.commit()

    assert result.points_applied == -30
    assert customer.points == 0

    last = next(r for r in _activities(db, customer) if r.event == "pointsDeduction")
    assert last.points == -30
    assert last.meta["requestedPoints"] == -100
    assert ledger_balance(db, customer.id) == 0


def test_tier_recomputed_on_crossing(db, merchant, customer):
    merchant.loyalty_settings = make_loyalty_settings(tierSilver=100, tierGold=500, tierPlatinum=1000)
    customer.points = 80
    db.add(CustomerLoyaltyActivity(customer_id=customer.id, merchant_id=merchant.id, event="welcome", points=80))
    db.commit()

    result = apply_delta(db, customer, merchant, 25, "ratingProductPoints")
    db.commit()

    assert result.old_tier == "bronze"
    assert result.new_tier == "silver"
    assert result.tier_changed
    assert result.tier_upgraded
    assert customer.tier == "silver"


def test_tier_drops_after_deduction(db, merchant, customer):
    merchant.loyalty_settings = make_loyalty_settings(tierSilver=100, tierGold=500, tierPlatinum=1000)
    db.commit()
    apply_delta(db, customer, merchant, 150, "welcome")
    result = apply_delta(db, customer, merchant, -100, "pointsDeduction")
    db.commit()

    assert customer.points == 50
    assert customer.tier == "bronze"
    assert result.tier_changed
    assert not result.tier_upgraded


def test_share_referral_increments_share_count(db, merchant, customer):
    apply_delta(db, customer, merchant, 15, "shareReferral")
    apply_delta(db, customer, merchant, 15, "shareReferral")
    db.commit()

    assert customer.share_count == 2


def test_null_tier_threshold_falls_back_to_default(db, merchant, customer):
    merchant.loyalty_settings = make_loyalty_settings(tierSilver=None)
    db.commit()

    result = apply_delta(db, customer, merchant, 1200, "welcome")
    db.commit()

    # tierSilver reads as its default of 1000
    assert result.new_tier == "silver"
    assert customer.points == 1200


def test_random_sequences_keep_balance_equal_to_ledger(db, merchant, customer):
    rng = random.Random(20240611)

    for _ in range(60):
        delta = rng.randint(-150, 200)
        if delta == 0:
            continue
        apply_delta(db, customer, merchant, delta, "welcome" if delta > 0 else "pointsDeduction")

        assert customer.points >= 0
        assert ledger_balance(db, customer.id) == customer.points

    db.commit()
    assert ledger_balance(db, customer.id) == customer.points
