import pytest

from loyalfy.schemas.loyalty_settings import LoyaltySettings
from loyalfy.services.point_calculator import (
    EventKind,
    compute_points,
    normalize_deduction_reason,
    parse_event_kind,
    plan_entries,
    purchase_points,
)

from tests.conftest import make_loyalty_settings


def _settings(**overrides) -> LoyaltySettings:
    return LoyaltySettings.model_validate(make_loyalty_settings(**overrides))


def test_purchase_points_floor_of_amount_over_unit():
    assert purchase_points(250, 1) == 250
    assert purchase_points(255, 10) == 25
    assert purchase_points("99.99", 1) == 99


@pytest.mark.parametrize("amount,unit", [(250, 0), (250, -5), (None, 1), ("abc", 1), (-10, 1), (250, None)])
def test_purchase_points_invalid_inputs_yield_zero(amount, unit):
    assert purchase_points(amount, unit) == 0


def test_purchase_disabled_rule_yields_zero():
    settings = _settings(purchasePoints={"enabled": False, "points": 0})
    assert compute_points("purchase", settings, {"amount": 300}) == 0


def test_zero_points_per_currency_unit_is_not_a_crash():
    settings = LoyaltySettings.model_validate(make_loyalty_settings(pointsPerCurrencyUnit=0))
    assert compute_points("purchase", settings, {"amount": 300}) == 0


def test_fixed_rules_follow_enabled_flag():
    settings = _settings()
    assert compute_points("welcome", settings) == 50
    assert compute_points("birthday", settings) == 20
    assert compute_points("feedbackShippingPoints", settings) == 0
    # not configured at all -> defaults to disabled
    assert compute_points("installApp", settings) == 0


def test_aliases_resolve_to_canonical_events():
    assert parse_event_kind("feedback") is EventKind.FEEDBACK_SHIPPING
    assert parse_event_kind("rating") is EventKind.RATING_PRODUCT
    assert compute_points("rating", _settings()) == 5


def test_unknown_event_yields_zero():
    assert parse_event_kind("somethingElse") is None
    assert parse_event_kind(None) is None
    assert compute_points("somethingElse", _settings()) == 0


def test_deduction_is_negative_and_ignores_bad_values():
    settings = _settings()
    assert compute_points("pointsDeduction", settings, {"pointsDeducted": 40}) == -40
    assert compute_points("pointsDeduction", settings, {"pointsDeducted": -5}) == 0
    assert compute_points("pointsDeduction", settings, {}) == 0


def test_manual_reward_awards_no_points():
    assert compute_points("manualReward", _settings(), {"rewardId": "x"}) == 0


def test_deduction_reason_normalized():
    assert normalize_deduction_reason("order_refunded") == "order_refunded"
    assert normalize_deduction_reason("order_deleted") == "order_deleted"
    assert normalize_deduction_reason("lost_in_mail") == "order_cancelled"
    assert normalize_deduction_reason(None) == "order_cancelled"


def test_purchase_plans_threshold_bonus_as_separate_entry():
    settings = _settings(
        purchaseAmountThresholdPoints={"enabled": True, "thresholdAmount": 200, "points": 30}
    )
    entries = plan_entries(EventKind.PURCHASE, settings, {"amount": 250})

    assert [(e.event, e.points) for e in entries] == [
        ("purchase", 250),
        ("purchaseAmountThresholdPoints", 30),
    ]


def test_purchase_below_bonus_threshold_plans_base_only():
    settings = _settings(
        purchaseAmountThresholdPoints={"enabled": True, "thresholdAmount": 500, "points": 30}
    )
    entries = plan_entries(EventKind.PURCHASE, settings, {"amount": 250})
    assert [(e.event, e.points) for e in entries] == [("purchase", 250)]


def test_zero_point_events_plan_nothing():
    assert plan_entries(EventKind.INSTALL_APP, _settings(), {}) == []


def test_broken_rules_read_as_zero_point_rules():
    settings = _settings(
        birthdayPoints={"enabled": True, "points": None},
        welcomePoints=None,
        ratingProductPoints={"enabled": "yes", "points": "7"},
        shareReferralPoints="garbage",
    )

    assert compute_points("birthday", settings) == 0
    assert compute_points("welcome", settings) == 0
    assert compute_points("ratingProductPoints", settings) == 7
    assert compute_points("shareReferral", settings) == 0


def test_null_numbers_fall_back_to_defaults():
    settings = _settings(tierSilver=None, rewardThreshold="x", pointsPerCurrencyUnit=float("nan"))

    assert settings.tierSilver == 1000
    assert settings.rewardThreshold == 100
    assert settings.pointsPerCurrencyUnit == 1.0


def test_threshold_bonus_without_usable_amount_is_disabled():
    settings = _settings(purchaseAmountThresholdPoints={"enabled": True, "thresholdAmount": None, "points": 50})

    assert compute_points("purchaseAmountThresholdPoints", settings, {"amount": 10_000}) == 0
