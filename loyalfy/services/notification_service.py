"""
Customer and admin notifications.

Messages are written to the ``notification_outbox`` table inside the
caller's transaction (under a SAVEPOINT) and delivered after commit, either
by a FastAPI background task or by the outbox worker. Nothing in this module
raises into the ledger path.
"""

import html
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from loyalfy import config
from loyalfy.db import SessionLocal, utcnow
from loyalfy.models.notification_outbox import NotificationOutbox
from loyalfy.schemas.loyalty_settings import NotificationSettings


logger = logging.getLogger(__name__)

_SESSION_OUTBOX_KEY = "loyalfy.outbox"

POINTS_EARNED_EVENTS = {
    "purchase",
    "purchaseAmountThresholdPoints",
    "feedbackShippingPoints",
    "ratingAppPoints",
    "ratingProductPoints",
    "profileCompletion",
    "repeatPurchase",
    "welcome",
    "installApp",
}

_DEDUCTION_REASONS = {
    "order_deleted": ("لحذف الطلب", "due to order deletion"),
    "order_refunded": ("لاسترداد الطلب", "due to order refund"),
    "order_cancelled": ("لإلغاء الطلب", "due to order cancellation"),
}


@dataclass(frozen=True)
class Message:
    subject: str
    content_ar: str
    content_en: str
    code: str = ""


@dataclass
class DeliveryStats:
    processed: int = 0
    sent: int = 0
    failed: int = 0


def render_notification_html(link: str, content_ar: str, content_en: str, code: str = "") -> str:
    code_html = f'<p style="font-weight:bold;">Code: {html.escape(code)}</p>' if code else ""
    return (
        '<div style="font-family:Arial, sans-serif;text-align:center;">'
        '<h2 style="color:#4A90E2;">loyalfy</h2>'
        '<h3 style="margin-top: 20px">🎉🎊</h3>'
        f"<p>{html.escape(content_ar)}</p>"
        f"<p>{html.escape(content_en)}</p>"
        f"<p>{html.escape(link)}</p>"
        f"{code_html}"
        "</div>"
    )


def load_notification_settings(merchant) -> NotificationSettings:
    return NotificationSettings.model_validate(merchant.notification_settings or {})


def build_customer_message(event: str, customer, merchant, points: int, metadata: dict | None = None) -> Message | None:
    """
    Template for a customer notification, or None when the merchant disabled
    this kind of notification (or the event has no template).
    """
    toggles = load_notification_settings(merchant)
    metadata = metadata or {}
    store = merchant.name
    customer_name_ar = customer.name or "عزيزنا العميل"
    customer_name_en = customer.name or "Dear Customer"

    if event in POINTS_EARNED_EVENTS:
        if not toggles.earnNewPoints:
            return None
        return Message(
            subject="حصلت على نقاط إضافية! | You earned new points!",
            content_ar=f"تهانينا! لقد حصلت على {points} نقطة إضافية من متجر {store}",
            content_en=f"Congratulations! You earned {points} additional points from {store} store",
        )

    if event == "birthday":
        if not toggles.birthday:
            return None
        return Message(
            subject="عيد ميلاد سعيد! 🎉 | Happy Birthday! 🎉",
            content_ar=f"عيد ميلاد سعيد {customer_name_ar}! حصلت على {points} نقطة هدية من متجر {store}",
            content_en=f"Happy Birthday {customer_name_en}! You received {points} bonus points from {store} store",
        )

    if event == "shareReferral":
        if not toggles.earnNewCouponForShare:
            return None
        return Message(
            subject="شكراً لمشاركة المتجر! | Thanks for sharing!",
            content_ar=f"شكراً لك على مشاركة متجر {store}! حصلت على {points} نقطة",
            content_en=f"Thank you for sharing {store} store! You earned {points} points",
        )

    if event == "coupon_generated":
        if not toggles.earnNewCoupon or not metadata.get("couponCode"):
            return None
        return Message(
            subject="تم إنشاء كوبون خصم جديد! | A new coupon is ready!",
            content_ar=f"تهانينا! تم إنشاء كوبون خصم جديد لك من متجر {store}",
            content_en=f"Congratulations! A new discount coupon has been created for you from {store} store",
            code=str(metadata["couponCode"]),
        )

    if event == "manualReward":
        if not toggles.earnNewCoupon or not metadata.get("rewardId"):
            return None
        return Message(
            subject="تم إنشاء كوبون خصم جديد (يدوي)! | A reward was added for you!",
            content_ar=f"تمت إضافة مكافأة يدوية لك من متجر {store}. تحقق من الكوبون الجديد في حسابك.",
            content_en=f"A manual reward has been added for you from {store}. Check your account for the new coupon.",
            code=str(metadata.get("couponCode") or ""),
        )

    if event == "pointsDeduction":
        if not toggles.earnNewPoints:
            return None
        reason_ar, reason_en = _DEDUCTION_REASONS.get(
            metadata.get("reason"), _DEDUCTION_REASONS["order_cancelled"]
        )
        return Message(
            subject="تم خصم نقاط من رصيدك | Points deducted from your balance",
            content_ar=f"تم خصم {points} نقطة من رصيدك {reason_ar} في متجر {store}",
            content_en=f"{points} points have been deducted from your account {reason_en} at {store} store",
        )

    if event == "reward_redeemed":
        code = str(metadata.get("couponCode") or "")
        expires = metadata.get("expiresAt") or ""
        return Message(
            subject="تم تفعيل كوبون مكافأة! | Your reward coupon was redeemed!",
            content_ar=f"تم تفعيل كوبون مكافأة ({code}) بنجاح في متجر {store}, يمكنكم استخدامه في طلبكم القادم قبل {expires}",
            content_en=f"Your reward coupon ({code}) was successfully redeemed at {store}, you can use it on your next order before {expires}",
            code=code,
        )

    logger.debug("no notification template for event", extra={"event": event})
    return None


def _track(db: Session, row: NotificationOutbox) -> None:
    db.info.setdefault(_SESSION_OUTBOX_KEY, []).append(row.id)


def take_enqueued_ids(db: Session) -> list:
    """Outbox ids enqueued on this session since the last call."""
    return db.info.pop(_SESSION_OUTBOX_KEY, [])


def discard_enqueued_ids(db: Session) -> None:
    db.info.pop(_SESSION_OUTBOX_KEY, None)


def _enqueue(db: Session, **fields) -> NotificationOutbox:
    with db.begin_nested():
        row = NotificationOutbox(status="PENDING", attempts=0, **fields)
        db.add(row)
        db.flush()
    _track(db, row)
    return row


# ============================================================
# NOTIFY (customer)
# ============================================================
def notify(db: Session, customer, merchant, event: str, points: int, metadata: dict | None = None):
    try:
        if not customer.email:
            logger.debug("skipping notification: customer has no email", extra={"event": event})
            return None

        message = build_customer_message(event, customer, merchant, points, metadata)
        if message is None:
            return None

        html_body = render_notification_html(
            merchant.store_link, message.content_ar, message.content_en, message.code
        )
        return _enqueue(
            db,
            merchant_id=merchant.id,
            customer_id=customer.id,
            event=event,
            audience="CUSTOMER",
            recipient=customer.email,
            subject=message.subject,
            html_body=html_body,
            meta={"points": points},
        )
    except Exception:
        logger.exception("failed to enqueue customer notification", extra={"event": event})
        return None


# ============================================================
# NOTIFY (admin)
# ============================================================
def notify_admin(
    db: Session,
    merchant,
    subject: str,
    content_ar: str,
    content_en: str,
    *,
    code: str = "",
    event: str = "admin_alert",
    customer=None,
):
    try:
        recipient = config.ADMIN_NOTIFICATION_EMAIL or merchant.installer_email
        if not recipient:
            logger.warning(
                "admin notification dropped: no recipient configured",
                extra={"merchant_id": str(merchant.id), "subject": subject},
            )
            return None

        return _enqueue(
            db,
            merchant_id=merchant.id,
            customer_id=(customer.id if customer is not None else None),
            event=event,
            audience="ADMIN",
            recipient=recipient,
            subject=subject,
            html_body=render_notification_html(merchant.store_link, content_ar, content_en, code),
        )
    except Exception:
        logger.exception("failed to enqueue admin notification", extra={"subject": subject})
        return None


# ============================================================
# DELIVERY
# ============================================================
def deliver_notification(db: Session, row: NotificationOutbox, backend, *, max_attempts: int | None = None) -> bool:
    max_attempts = max_attempts or config.NOTIFICATION_MAX_ATTEMPTS
    row.attempts = (row.attempts or 0) + 1

    try:
        backend.send_email(row.recipient, row.subject, row.html_body)
    except Exception as e:
        row.last_error = str(e)[:2000]
        row.status = "FAILED" if row.attempts >= max_attempts else "PENDING"
        logger.warning(
            "notification delivery failed",
            extra={
                "notification_id": str(row.id),
                "event": row.event,
                "attempts": row.attempts,
                "status": row.status,
            },
        )
        return False

    row.status = "SENT"
    row.sent_at = utcnow()
    row.last_error = None
    return True


def claim_pending(
    db: Session,
    *,
    now: datetime,
    worker_id: str,
    batch_size: int,
    lock_ttl_seconds: int,
    ids=None,
):
    """
    Locks up to ``batch_size`` PENDING rows for ``worker_id``.

    Rows locked by someone else less than ``lock_ttl_seconds`` ago are left
    alone. The caller commits to publish the claim before sending.
    """
    lock_expired_before = now - timedelta(seconds=int(lock_ttl_seconds))

    q = (
        db.query(NotificationOutbox)
        .filter(NotificationOutbox.status == "PENDING")
        .filter(or_(NotificationOutbox.locked_at.is_(None), NotificationOutbox.locked_at < lock_expired_before))
    )
    if ids is not None:
        q = q.filter(NotificationOutbox.id.in_(list(ids)))

    rows = (
        q.order_by(NotificationOutbox.created_at.asc())
        .with_for_update(skip_locked=True)
        .limit(batch_size)
        .all()
    )
    for row in rows:
        row.locked_at = now
        row.locked_by = worker_id
    return rows


def deliver_pending(
    db: Session,
    backend,
    *,
    ids=None,
    limit: int = 50,
    max_attempts: int | None = None,
    worker_id: str = "post-commit",
    lock_ttl_seconds: int = 300,
) -> DeliveryStats:
    if ids is not None and not ids:
        return DeliveryStats()

    rows = claim_pending(
        db,
        now=utcnow(),
        worker_id=worker_id,
        batch_size=limit,
        lock_ttl_seconds=lock_ttl_seconds,
        ids=ids,
    )
    db.commit()

    stats = DeliveryStats()
    for row in rows:
        stats.processed += 1
        try:
            if deliver_notification(db, row, backend, max_attempts=max_attempts):
                stats.sent += 1
            else:
                stats.failed += 1
        finally:
            row.locked_at = None
            row.locked_by = None
            db.commit()

    return stats


def deliver_outbox_ids(ids, backend=None) -> None:
    """Post-commit delivery entry point (FastAPI BackgroundTasks)."""
    if not ids:
        return

    if backend is None:
        from loyalfy.services.email_backend import build_default_backend

        backend = build_default_backend()
        if backend is None:
            return

    db = SessionLocal()
    try:
        deliver_pending(db, backend, ids=ids)
    except Exception:
        db.rollback()
        logger.exception("post-commit notification delivery failed", extra={"count": len(ids)})
    finally:
        db.close()
