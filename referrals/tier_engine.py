from dataclasses import dataclass
from typing import Optional
import json


class TierErrors:
    INVALID_INDEX = "Invalid tier index"
    INVALID_PERCENTAGE = "Invalid bonus percentage"
    INVALID_THRESHOLD = "Invalid tier threshold"


class TierUpdateError(ValueError):
    pass


@dataclass
class ReferralTier:
    amount_threshold: int
    bonus_percentage: int

    def qualifies(self, cumulative: int, threshold_scale: int = 1) -> bool:
        return self.amount_threshold * threshold_scale <= cumulative

    def to_dict(self) -> dict:
        return {"amount_threshold": self.amount_threshold, "bonus_percentage": self.bonus_percentage}

    @classmethod
    def from_dict(cls, data: dict) -> "ReferralTier":
        return cls(amount_threshold=int(data["amount_threshold"]), bonus_percentage=int(data["bonus_percentage"]))


@dataclass(frozen=True)
class BonusSplit:
    percentage: int
    bonus: int
    remainder: int


DEFAULT_TIERS: tuple[tuple[int, int], ...] = (
    (500, 5),
    (1001, 7),
    (5001, 10),
    (10001, 12),
    (25001, 13),
    (50001, 14),
    (100001, 15),
)


class ReferralTierEngine:
    """Tiered referral bonus table.

    Tiers are kept in insertion order and are never removed. Qualification
    scans the whole table and keeps the highest percentage among tiers whose
    threshold is met, so a misplaced tier still wins if its percentage is
    higher than the others.
    """

    def __init__(self, tiers: Optional[list[ReferralTier]] = None, threshold_scale: int = 1):
        if threshold_scale <= 0:
            raise TierUpdateError(TierErrors.INVALID_THRESHOLD)
        self.tiers: list[ReferralTier] = list(tiers) if tiers is not None else create_default_tiers()
        self.threshold_scale = threshold_scale

    def list_tiers(self) -> list[ReferralTier]:
        return list(self.tiers)

    def bonus_percentage_for(self, cumulative: int) -> int:
        percentage = 0
        for tier in self.tiers:
            if tier.qualifies(cumulative, self.threshold_scale) and tier.bonus_percentage > percentage:
                percentage = tier.bonus_percentage
        return percentage

    def split(self, cumulative: int, amount: int) -> BonusSplit:
        percentage = self.bonus_percentage_for(cumulative)
        bonus = amount * percentage // 100
        return BonusSplit(percentage=percentage, bonus=bonus, remainder=amount - bonus)

    def update_tier(self, index: int, amount_threshold: int, bonus_percentage: int) -> ReferralTier:
        if index < 0 or index > len(self.tiers):
            raise TierUpdateError(TierErrors.INVALID_INDEX)
        if not 0 <= bonus_percentage <= 100:
            raise TierUpdateError(TierErrors.INVALID_PERCENTAGE)
        if amount_threshold < 0:
            raise TierUpdateError(TierErrors.INVALID_THRESHOLD)

        tier = ReferralTier(amount_threshold=amount_threshold, bonus_percentage=bonus_percentage)
        if index == len(self.tiers):
            self.tiers.append(tier)
        else:
            self.tiers[index] = tier
        return tier

    def to_json(self, indent: int = 2) -> str:
        return json.dumps([t.to_dict() for t in self.tiers], indent=indent)

    @classmethod
    def from_dicts(cls, data: list[dict], threshold_scale: int = 1) -> "ReferralTierEngine":
        return cls(tiers=[ReferralTier.from_dict(d) for d in data], threshold_scale=threshold_scale)


def create_default_tiers() -> list[ReferralTier]:
    return [ReferralTier(amount_threshold=t, bonus_percentage=p) for t, p in DEFAULT_TIERS]


if __name__ == "__main__":
    engine = ReferralTierEngine()
    for tier in engine.list_tiers():
        print(f"Tier: >= {tier.amount_threshold} -> {tier.bonus_percentage}%")

    split = engine.split(cumulative=1001, amount=1000)
    print("Split:", split)
