"""
Point computation for loyalty events.

Pure functions only: no session, no I/O. The engine turns an event into a
list of ledger entries through :func:`plan_entries`.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from enum import Enum

from loyalfy.schemas.loyalty_settings import LoyaltySettings


logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    PURCHASE = "purchase"
    PURCHASE_AMOUNT_THRESHOLD = "purchaseAmountThresholdPoints"
    BIRTHDAY = "birthday"
    WELCOME = "welcome"
    FEEDBACK_SHIPPING = "feedbackShippingPoints"
    RATING_APP = "ratingAppPoints"
    RATING_PRODUCT = "ratingProductPoints"
    PROFILE_COMPLETION = "profileCompletion"
    REPEAT_PURCHASE = "repeatPurchase"
    SHARE_REFERRAL = "shareReferral"
    INSTALL_APP = "installApp"
    MANUAL_REWARD = "manualReward"
    POINTS_DEDUCTION = "pointsDeduction"


_ALIASES = {
    "feedback": EventKind.FEEDBACK_SHIPPING,
    "rating": EventKind.RATING_PRODUCT,
}

# flat-award events -> key of their rule in LoyaltySettings
FIXED_POINT_RULES = {
    EventKind.BIRTHDAY: "birthdayPoints",
    EventKind.WELCOME: "welcomePoints",
    EventKind.FEEDBACK_SHIPPING: "feedbackShippingPoints",
    EventKind.RATING_APP: "ratingAppPoints",
    EventKind.RATING_PRODUCT: "ratingProductPoints",
    EventKind.PROFILE_COMPLETION: "profileCompletionPoints",
    EventKind.REPEAT_PURCHASE: "repeatPurchasePoints",
    EventKind.SHARE_REFERRAL: "shareReferralPoints",
    EventKind.INSTALL_APP: "installAppPoints",
}

DEDUCTION_REASONS = ("order_cancelled", "order_deleted", "order_refunded")


@dataclass(frozen=True)
class PlannedEntry:
    event: str
    points: int


def parse_event_kind(value) -> EventKind | None:
    if isinstance(value, EventKind):
        return value
    if not isinstance(value, str):
        return None
    key = value.strip()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return EventKind(key)
    except ValueError:
        return None


def _as_decimal(value) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def _floor_int(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def purchase_points(amount, points_per_currency_unit) -> int:
    a = _as_decimal(amount)
    unit = _as_decimal(points_per_currency_unit)
    # unit <= 0 is a disabled rule, not a division error
    if a is None or unit is None or unit <= 0 or a <= 0:
        return 0
    return _floor_int(a / unit)


def purchase_threshold_bonus(amount, settings: LoyaltySettings) -> int:
    rule = settings.purchaseAmountThresholdPoints
    if not rule.enabled:
        return 0
    a = _as_decimal(amount)
    threshold = _as_decimal(rule.thresholdAmount)
    if a is None or threshold is None:
        return 0
    if a >= threshold:
        return max(0, int(rule.points))
    return 0


def deduction_points(metadata: dict) -> int:
    requested = _as_decimal((metadata or {}).get("pointsDeducted"))
    if requested is None or requested <= 0:
        return 0
    return _floor_int(requested)


def normalize_deduction_reason(reason) -> str:
    if reason in DEDUCTION_REASONS:
        return reason
    return "order_cancelled"


def compute_points(event_type, merchant_config: LoyaltySettings, event_metadata: dict | None = None) -> int:
    """
    Signed point delta for a single event.

    Unknown event types yield 0. For ``purchase`` only the base award is
    returned; the purchase-amount threshold bonus is its own ledger entry
    (see :func:`plan_entries`).
    """
    kind = parse_event_kind(event_type)
    metadata = event_metadata or {}

    if kind is None:
        return 0

    if kind is EventKind.PURCHASE:
        if not merchant_config.purchasePoints.enabled:
            return 0
        return purchase_points(metadata.get("amount"), merchant_config.pointsPerCurrencyUnit)

    if kind is EventKind.PURCHASE_AMOUNT_THRESHOLD:
        return purchase_threshold_bonus(metadata.get("amount"), merchant_config)

    if kind in FIXED_POINT_RULES:
        rule = getattr(merchant_config, FIXED_POINT_RULES[kind])
        if not rule.enabled:
            return 0
        return max(0, int(rule.points))

    if kind is EventKind.POINTS_DEDUCTION:
        return -deduction_points(metadata)

    # manualReward moves no points; its coupon is issued by the engine
    return 0


def plan_entries(kind: EventKind, settings: LoyaltySettings, metadata: dict | None = None) -> list[PlannedEntry]:
    metadata = metadata or {}
    entries: list[PlannedEntry] = []

    if kind is EventKind.PURCHASE:
        base = compute_points(EventKind.PURCHASE, settings, metadata)
        if base > 0:
            entries.append(PlannedEntry(EventKind.PURCHASE.value, base))
        bonus = compute_points(EventKind.PURCHASE_AMOUNT_THRESHOLD, settings, metadata)
        if bonus > 0:
            entries.append(PlannedEntry(EventKind.PURCHASE_AMOUNT_THRESHOLD.value, bonus))
        return entries

    points = compute_points(kind, settings, metadata)
    if points != 0:
        entries.append(PlannedEntry(kind.value, points))
    else:
        logger.debug("event produced no points", extra={"event": kind.value})
    return entries
