"""
Loyalty engine: the single entry point for every loyalty event.

``invoke`` runs one event through validate -> compute -> ledger -> coupon
check -> commit. Notifications are queued in the outbox inside the same
transaction and only leave the process after commit.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from loyalfy import config
from loyalfy.exceptions import CouponIssueError
from loyalfy.models.processed_event import ProcessedEvent
from loyalfy.schemas.loyalty_settings import LoyaltySettings
from loyalfy.services.coupon_service import issue_manual_coupon, issue_threshold_coupons
from loyalfy.services.ledger_service import apply_delta
from loyalfy.services.notification_service import (
    discard_enqueued_ids,
    notify_admin,
    take_enqueued_ids,
)
from loyalfy.services.point_calculator import (
    EventKind,
    normalize_deduction_reason,
    parse_event_kind,
    plan_entries,
)


logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    POINTS_CALCULATED = "POINTS_CALCULATED"
    LEDGER_APPLIED = "LEDGER_APPLIED"
    COUPON_CHECKED = "COUPON_CHECKED"
    NOTIFIED = "NOTIFIED"
    COMPLETE = "COMPLETE"
    SKIPPED = "SKIPPED"


@dataclass
class EngineResult:
    event: str
    state: EngineState = EngineState.RECEIVED
    points_applied: int = 0
    activities: list = field(default_factory=list)
    coupons: list = field(default_factory=list)
    notification_ids: list = field(default_factory=list)
    skipped_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.state is EngineState.SKIPPED


def _advance(result: EngineResult, state: EngineState) -> None:
    result.state = state
    logger.debug("engine state", extra={"event": result.event, "state": state.value})


def _skip(result: EngineResult, reason: str, **extra) -> EngineResult:
    result.state = EngineState.SKIPPED
    result.skipped_reason = reason
    logger.info("loyalty event skipped", extra={"event": result.event, "reason": reason, **extra})
    return result


def _claim_event(db: Session, merchant, customer, event: str, order_id: str) -> bool:
    """Records (merchant, event, orderId); False when it was already processed."""
    existing = (
        db.query(ProcessedEvent.id)
        .filter(ProcessedEvent.merchant_id == merchant.id)
        .filter(ProcessedEvent.event == event)
        .filter(ProcessedEvent.order_id == order_id)
        .first()
    )
    if existing:
        return False

    try:
        with db.begin_nested():
            db.add(
                ProcessedEvent(
                    merchant_id=merchant.id,
                    customer_id=customer.id,
                    event=event,
                    order_id=order_id,
                )
            )
            db.flush()
    except IntegrityError:
        return False
    return True


def _report_coupon_failure(db: Session, merchant, customer, error: CouponIssueError) -> None:
    label = customer.name or customer.email or customer.customer_id
    notify_admin(
        db,
        merchant,
        "Coupon Generation Failed",
        f"فشل إنشاء كوبون للعميل {label}: {error}",
        f"Failed to generate a coupon for customer {label}: {error}",
        event="coupon_failed",
        customer=customer,
    )
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("failed to record coupon failure alert", extra={"customer_id": str(customer.id)})
    discard_enqueued_ids(db)


# ============================================================
# INVOKE
# ============================================================
def invoke(
    db: Session,
    *,
    event: str,
    merchant,
    customer,
    metadata: dict | None = None,
    code_provider=None,
    dedupe: bool | None = None,
) -> EngineResult:
    """
    Processes one loyalty event for one customer.

    Missing merchant/customer, soft-deleted customers, merchants without
    loyalty settings and unknown events are no-ops (``state == SKIPPED``).
    Ledger entries, coupons and queued notifications commit together; any
    failure rolls all of them back and propagates.
    """
    result = EngineResult(event=str(event))

    if merchant is None or customer is None:
        return _skip(result, "missing merchant or customer")
    if customer.is_deleted:
        return _skip(result, "customer is deleted", customer_id=str(customer.id))
    if not merchant.loyalty_settings:
        return _skip(result, "merchant has no loyalty settings", merchant_id=str(merchant.id))

    kind = parse_event_kind(event)
    if kind is None:
        return _skip(result, "unknown event")

    result.event = kind.value
    settings = LoyaltySettings.model_validate(merchant.loyalty_settings)
    metadata = dict(metadata or {})
    if kind is EventKind.POINTS_DEDUCTION:
        metadata["reason"] = normalize_deduction_reason(metadata.get("reason"))

    if dedupe is None:
        dedupe = config.LOYALTY_DEDUPE_EVENTS

    _advance(result, EngineState.VALIDATED)

    try:
        order_id = metadata.get("orderId")
        if dedupe and order_id is not None:
            if not _claim_event(db, merchant, customer, kind.value, str(order_id)):
                db.rollback()
                return _skip(result, "duplicate event", order_id=str(order_id))

        entries = plan_entries(kind, settings, metadata)
        _advance(result, EngineState.POINTS_CALCULATED)

        points_before = None
        points_after = None
        for entry in entries:
            ledger = apply_delta(db, customer, merchant, entry.points, entry.event, metadata, settings=settings)
            if points_before is None:
                points_before = ledger.points_before
            points_after = ledger.new_balance
            result.points_applied += ledger.points_applied
            result.activities.append(ledger.activity)
        _advance(result, EngineState.LEDGER_APPLIED)

        if kind is EventKind.MANUAL_REWARD:
            coupon = issue_manual_coupon(
                db,
                customer,
                merchant,
                reward_id=metadata.get("rewardId"),
                reward_type=metadata.get("rewardType"),
                code_provider=code_provider,
            )
            if coupon is not None:
                result.coupons.append(coupon)
        elif result.points_applied > 0:
            result.coupons.extend(
                issue_threshold_coupons(
                    db,
                    customer,
                    merchant,
                    points_before,
                    points_after,
                    code_provider=code_provider,
                    settings=settings,
                )
            )
        _advance(result, EngineState.COUPON_CHECKED)

        db.commit()
    except CouponIssueError as e:
        db.rollback()
        discard_enqueued_ids(db)
        logger.error(
            "coupon issuance failed; event rolled back",
            extra={"event": kind.value, "customer_id": str(customer.id), "error": str(e)},
        )
        _report_coupon_failure(db, merchant, customer, e)
        raise
    except Exception:
        db.rollback()
        discard_enqueued_ids(db)
        logger.exception("loyalty event failed", extra={"event": kind.value, "customer_id": str(customer.id)})
        raise

    result.notification_ids = take_enqueued_ids(db)
    _advance(result, EngineState.NOTIFIED)

    _advance(result, EngineState.COMPLETE)
    logger.info(
        "loyalty event processed",
        extra={
            "event": kind.value,
            "customer_id": str(customer.id),
            "points": result.points_applied,
            "coupons": len(result.coupons),
        },
    )
    return result
