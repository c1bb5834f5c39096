from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from loyalfy.db import get_db
from loyalfy.deps.merchant import get_active_merchant
from loyalfy.exceptions import CouponIssueError
from loyalfy.models.customer import Customer
from loyalfy.models.merchant import Merchant
from loyalfy.schemas.event import EventCreate
from loyalfy.services.engine import invoke
from loyalfy.services.notification_service import deliver_outbox_ids

router = APIRouter()


@router.post("/events")
def create_event(
    payload: EventCreate,
    background_tasks: BackgroundTasks,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    customer = (
        db.query(Customer)
        .filter(Customer.merchant_id == merchant.id, Customer.customer_id == payload.customerId)
        .first()
    )

    try:
        result = invoke(
            db,
            event=payload.event,
            merchant=merchant,
            customer=customer,
            metadata=payload.metadata,
        )
    except CouponIssueError as e:
        raise HTTPException(status_code=502, detail=f"Coupon generation failed: {e}")

    # delivered after the response, never inside the ledger transaction
    if result.notification_ids:
        background_tasks.add_task(deliver_outbox_ids, result.notification_ids)

    return {
        "event": result.event,
        "status": result.state.value,
        "skippedReason": result.skipped_reason,
        "pointsApplied": result.points_applied,
        "coupons": [c.code for c in result.coupons],
    }
