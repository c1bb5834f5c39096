from dataclasses import dataclass

from loyalfy.exceptions import InvalidConfigurationError


TIER_BRONZE = "bronze"
TIER_SILVER = "silver"
TIER_GOLD = "gold"
TIER_PLATINUM = "platinum"

TIERS = (TIER_BRONZE, TIER_SILVER, TIER_GOLD, TIER_PLATINUM)


@dataclass(frozen=True)
class TierThresholds:
    bronze: int = 0
    silver: int = 1000
    gold: int = 5000
    platinum: int = 15000

    @classmethod
    def from_settings(cls, settings) -> "TierThresholds":
        return cls(
            bronze=int(settings.tierBronze),
            silver=int(settings.tierSilver),
            gold=int(settings.tierGold),
            platinum=int(settings.tierPlatinum),
        )

    def clamped(self) -> "TierThresholds":
        """Monotonic copy: each threshold is at least the one below it."""
        bronze = max(0, self.bronze)
        silver = max(self.silver, bronze)
        gold = max(self.gold, silver)
        platinum = max(self.platinum, gold)
        return TierThresholds(bronze=bronze, silver=silver, gold=gold, platinum=platinum)


def validate_tier_thresholds(thresholds: TierThresholds) -> TierThresholds:
    if thresholds.bronze < 0:
        raise InvalidConfigurationError("tierBronze must be >= 0")
    if not (thresholds.bronze < thresholds.silver < thresholds.gold < thresholds.platinum):
        raise InvalidConfigurationError(
            "Invalid tiers configuration: thresholds must strictly increase bronze < silver < gold < platinum"
        )
    return thresholds


def resolve_tier(points: int, thresholds: TierThresholds | None = None) -> str:
    t = (thresholds or TierThresholds()).clamped()
    p = int(points or 0)

    if p >= t.platinum:
        return TIER_PLATINUM
    if p >= t.gold:
        return TIER_GOLD
    if p >= t.silver:
        return TIER_SILVER
    return TIER_BRONZE


def tier_rank(tier: str | None) -> int:
    try:
        return TIERS.index(tier)
    except ValueError:
        return 0
