from datetime import datetime

from loyalfy.models.customer import Customer
from loyalfy.services.engine import invoke
from loyalfy.services.reconciliation_service import (
    compute_next_run_at,
    ledger_balance,
    reconcile_all,
    reconcile_customer,
    refresh_merchant_points,
)


def test_consistent_customer_has_no_drift(db, merchant, customer):
    invoke(db, event="welcome", merchant=merchant, customer=customer)

    assert ledger_balance(db, customer.id) == 50
    assert reconcile_customer(db, customer) == 0


def test_drift_is_reported_not_corrected(db, merchant, customer):
    invoke(db, event="welcome", merchant=merchant, customer=customer)
    customer.points = 70
    db.commit()

    assert reconcile_customer(db, customer) == -20
    assert customer.points == 70


def test_merchant_aggregate_is_ledger_sum(db, merchant, customer):
    other = Customer(merchant_id=merchant.id, customer_id="cust-2", email="b@example.com")
    db.add(other)
    db.commit()

    invoke(db, event="welcome", merchant=merchant, customer=customer)
    invoke(db, event="birthday", merchant=merchant, customer=other)

    assert refresh_merchant_points(db, merchant.id) == 70
    db.commit()
    db.refresh(merchant)
    assert merchant.customers_points == 70


def test_reconcile_all_counts_drifted_customers(db, merchant, customer):
    invoke(db, event="welcome", merchant=merchant, customer=customer)
    customer.points = 10
    merchant.customers_points = 0
    db.commit()

    stats = reconcile_all(db)

    assert (stats.merchants, stats.customers, stats.drifted) == (1, 1, 1)
    db.refresh(merchant)
    assert merchant.customers_points == 50


def test_next_run_follows_cron_in_timezone():
    base = datetime(2026, 3, 10, 10, 15)

    assert compute_next_run_at(base_utc=base, cron_expr="0 * * * *") == datetime(2026, 3, 10, 11, 0)
    # 03:00 in Riyadh (UTC+3) is 00:00 UTC
    assert compute_next_run_at(base_utc=base, cron_expr="0 3 * * *", tz_name="Asia/Riyadh") == datetime(
        2026, 3, 11, 0, 0
    )
