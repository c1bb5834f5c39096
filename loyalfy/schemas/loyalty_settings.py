import math
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


_TRUTHY = {"1", "true", "yes", "on"}


def _lenient_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return False


def _lenient_number(value, default, cast=float):
    """Finite number parsed from ``value``; ``default`` for null or garbage."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return cast(number)


class EventRule(BaseModel):
    enabled: bool = False
    points: int = 0


class PurchaseAmountThresholdRule(BaseModel):
    enabled: bool = False
    thresholdAmount: float = 500
    points: int = 50


class LoyaltySettingsFields(BaseModel):
    # currency units needed to earn 1 point (e.g. 10 => 1 point per 10 SAR)
    pointsPerCurrencyUnit: float = 1
    # fallback threshold used only when no active reward rule exists
    rewardThreshold: int = 100

    tierBronze: int = 0
    tierSilver: int = 1000
    tierGold: int = 5000
    tierPlatinum: int = 15000

    purchasePoints: EventRule = Field(default_factory=EventRule)
    welcomePoints: EventRule = Field(default_factory=EventRule)
    birthdayPoints: EventRule = Field(default_factory=EventRule)
    ratingAppPoints: EventRule = Field(default_factory=EventRule)
    ratingProductPoints: EventRule = Field(default_factory=EventRule)
    installAppPoints: EventRule = Field(default_factory=EventRule)
    feedbackShippingPoints: EventRule = Field(default_factory=EventRule)
    repeatPurchasePoints: EventRule = Field(default_factory=EventRule)
    profileCompletionPoints: EventRule = Field(default_factory=EventRule)
    shareReferralPoints: EventRule = Field(default_factory=EventRule)

    purchaseAmountThresholdPoints: PurchaseAmountThresholdRule = Field(
        default_factory=PurchaseAmountThresholdRule
    )

    class Config:
        extra = "ignore"


class LoyaltySettings(LoyaltySettingsFields):
    """
    Per-merchant loyalty configuration, stored as JSON on the merchant row.

    Field names follow the JSON documents written by the merchant dashboard.
    Values are read leniently: a null or non-numeric number falls back to its
    default, and a broken rule reads as a rule that produces zero points, so
    one bad value never blocks unrelated events.
    """

    @field_validator(
        "pointsPerCurrencyUnit",
        "rewardThreshold",
        "tierBronze",
        "tierSilver",
        "tierGold",
        "tierPlatinum",
        mode="before",
    )
    @classmethod
    def _number_or_default(cls, value, info):
        field = cls.model_fields[info.field_name]
        return _lenient_number(value, field.default, field.annotation)

    @field_validator(
        "purchasePoints",
        "welcomePoints",
        "birthdayPoints",
        "ratingAppPoints",
        "ratingProductPoints",
        "installAppPoints",
        "feedbackShippingPoints",
        "repeatPurchasePoints",
        "profileCompletionPoints",
        "shareReferralPoints",
        mode="before",
    )
    @classmethod
    def _event_rule(cls, value):
        if isinstance(value, BaseModel):
            value = value.model_dump()
        if not isinstance(value, dict):
            return EventRule()
        return EventRule(
            enabled=_lenient_bool(value.get("enabled")),
            points=_lenient_number(value.get("points"), 0, int),
        )

    @field_validator("purchaseAmountThresholdPoints", mode="before")
    @classmethod
    def _threshold_rule(cls, value):
        if isinstance(value, BaseModel):
            value = value.model_dump()
        if not isinstance(value, dict):
            return PurchaseAmountThresholdRule()
        threshold = _lenient_number(value.get("thresholdAmount", 500), None)
        points = _lenient_number(value.get("points", 50), 0, int)
        if threshold is None:
            # no usable threshold: the bonus can never be earned
            return PurchaseAmountThresholdRule(enabled=False, points=points)
        return PurchaseAmountThresholdRule(
            enabled=_lenient_bool(value.get("enabled")),
            thresholdAmount=threshold,
            points=points,
        )


class LoyaltySettingsUpdate(LoyaltySettingsFields):
    """Write-side settings: rejects values the engine would otherwise neutralize."""

    @model_validator(mode="after")
    def _check_values(self):
        from loyalfy.services.tier_service import TierThresholds, validate_tier_thresholds

        if self.pointsPerCurrencyUnit <= 0:
            raise ValueError("pointsPerCurrencyUnit must be > 0")
        if self.rewardThreshold <= 0:
            raise ValueError("rewardThreshold must be > 0")
        if self.purchaseAmountThresholdPoints.thresholdAmount < 0:
            raise ValueError("purchaseAmountThresholdPoints.thresholdAmount must be >= 0")

        for name in EVENT_RULE_KEYS + ("purchaseAmountThresholdPoints",):
            if getattr(self, name).points < 0:
                raise ValueError(f"{name}.points must be >= 0")

        validate_tier_thresholds(TierThresholds.from_settings(self))
        return self


class NotificationSettings(BaseModel):
    earnNewPoints: bool = False
    earnNewCoupon: bool = False
    earnNewCouponForShare: bool = False
    birthday: bool = False

    @field_validator("*", mode="before")
    @classmethod
    def _toggle(cls, value):
        return _lenient_bool(value)

    class Config:
        extra = "ignore"


class MerchantSettingsOut(BaseModel):
    merchantId: str
    loyaltySettings: LoyaltySettings
    notificationSettings: NotificationSettings


class MerchantSettingsUpdate(BaseModel):
    loyaltySettings: Optional[LoyaltySettingsUpdate] = None
    notificationSettings: Optional[NotificationSettings] = None


EVENT_RULE_KEYS = (
    "purchasePoints",
    "welcomePoints",
    "birthdayPoints",
    "ratingAppPoints",
    "ratingProductPoints",
    "installAppPoints",
    "feedbackShippingPoints",
    "repeatPurchasePoints",
    "profileCompletionPoints",
    "shareReferralPoints",
)
