from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalfy.db import get_db
from loyalfy.deps.merchant import get_active_merchant
from loyalfy.models.merchant import Merchant
from loyalfy.services.email_backend import build_default_backend
from loyalfy.services.notification_worker import drain_once
from loyalfy.services.reconciliation_service import reconcile_all


router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/reconcile")
def admin_reconcile(
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    stats = reconcile_all(db, merchant_id=merchant.id)
    db.refresh(merchant)
    return {
        "merchantId": merchant.merchant_id,
        "customers": stats.customers,
        "drifted": stats.drifted,
        "customersPoints": merchant.customers_points,
    }


@router.post("/notifications/flush")
def admin_flush_notifications(db: Session = Depends(get_db)):
    backend = build_default_backend()
    if backend is None:
        return {"processed": 0, "sent": 0, "failed": 0, "detail": "SMTP is not configured"}

    stats = drain_once(db, backend)
    return {"processed": stats.processed, "sent": stats.sent, "failed": stats.failed}
