from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from croniter import croniter
from sqlalchemy import func
from sqlalchemy.orm import Session

from loyalfy import config
from loyalfy.db import SessionLocal, utcnow
from loyalfy.models.customer import Customer
from loyalfy.models.customer_loyalty_activity import CustomerLoyaltyActivity
from loyalfy.models.merchant import Merchant


logger = logging.getLogger(__name__)


@dataclass
class ReconcileStats:
    merchants: int = 0
    customers: int = 0
    drifted: int = 0


def ledger_balance(db: Session, customer_id) -> int:
    balance = (
        db.query(func.coalesce(func.sum(CustomerLoyaltyActivity.points), 0))
        .filter(CustomerLoyaltyActivity.customer_id == customer_id)
        .scalar()
    )
    return int(balance or 0)


def reconcile_customer(db: Session, customer: Customer) -> int:
    """
    Compares ``customer.points`` with the activity ledger.

    Returns the drift (ledger - stored); 0 when consistent. The cached
    balance is left untouched: a drift means a writer bypassed the ledger
    and needs investigation.
    """
    ledger = ledger_balance(db, customer.id)
    stored = int(customer.points or 0)
    drift = ledger - stored

    if drift:
        logger.warning(
            "customer balance drifted from ledger",
            extra={"customer_id": str(customer.id), "stored": stored, "ledger": ledger},
        )

    return drift


def refresh_merchant_points(db: Session, merchant_id) -> int:
    """Recomputes ``merchant.customers_points`` from the ledger (no commit)."""
    total = (
        db.query(func.coalesce(func.sum(CustomerLoyaltyActivity.points), 0))
        .join(Customer, Customer.id == CustomerLoyaltyActivity.customer_id)
        .filter(CustomerLoyaltyActivity.merchant_id == merchant_id)
        .filter(Customer.is_deleted.is_(False))
        .scalar()
    )
    total = int(total or 0)

    merchant = db.query(Merchant).filter(Merchant.id == merchant_id).first()
    if merchant is not None:
        merchant.customers_points = total
        db.flush()
    return total


def reconcile_all(db: Session, *, merchant_id=None) -> ReconcileStats:
    stats = ReconcileStats()

    q = db.query(Merchant).filter(Merchant.is_active.is_(True))
    if merchant_id is not None:
        q = q.filter(Merchant.id == merchant_id)

    for merchant in q.all():
        stats.merchants += 1
        customers = (
            db.query(Customer)
            .filter(Customer.merchant_id == merchant.id)
            .filter(Customer.is_deleted.is_(False))
            .all()
        )
        for customer in customers:
            stats.customers += 1
            if reconcile_customer(db, customer):
                stats.drifted += 1

        refresh_merchant_points(db, merchant.id)
        db.commit()

    logger.info(
        "reconciliation finished",
        extra={"merchants": stats.merchants, "customers": stats.customers, "drifted": stats.drifted},
    )
    return stats


# ============================================================
# SCHEDULE
# ============================================================
def compute_next_run_at(*, base_utc: datetime, cron_expr: str, tz_name: str = "UTC") -> datetime:
    tz = ZoneInfo(tz_name or "UTC")

    if base_utc.tzinfo is None:
        base_utc = base_utc.replace(tzinfo=ZoneInfo("UTC"))
    base_local = base_utc.astimezone(tz)

    next_local: datetime = croniter(cron_expr, base_local).get_next(datetime)
    return next_local.astimezone(ZoneInfo("UTC")).replace(tzinfo=None)


def run_reconcile_loop(*, cron_expr: str, tz_name: str, max_sleep_seconds: int = 60):
    next_run_at = compute_next_run_at(base_utc=utcnow(), cron_expr=cron_expr, tz_name=tz_name)
    logger.info(
        "reconciliation scheduler started",
        extra={"cron": cron_expr, "timezone": tz_name, "next_run_at": next_run_at.isoformat()},
    )

    while True:
        now = utcnow()
        if now < next_run_at:
            time.sleep(min(max_sleep_seconds, max(1, int((next_run_at - now).total_seconds()))))
            continue

        db = SessionLocal()
        try:
            reconcile_all(db)
        except Exception:
            db.rollback()
            logger.exception("reconciliation run failed")
        finally:
            db.close()

        # keep moving forward on failure to avoid a tight retry loop
        next_run_at = compute_next_run_at(base_utc=utcnow(), cron_expr=cron_expr, tz_name=tz_name)


def main():
    run_reconcile_loop(cron_expr=config.RECONCILE_CRON, tz_name=config.RECONCILE_TIMEZONE)


if __name__ == "__main__":
    main()
