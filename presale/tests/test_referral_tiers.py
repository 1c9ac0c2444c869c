"""
Unit Tests for the Referral Tier Engine

Tests cover:
1. Default tier table
2. Max-percentage qualification
3. Bonus split (floor division)
4. Tier edits and appends
"""

import pytest

from referrals import (
    DEFAULT_TIERS,
    ReferralTier,
    ReferralTierEngine,
    TierErrors,
    TierUpdateError,
)


class TestDefaultTiers:
    """Tests for the default tier table."""

    def test_default_table(self):
        """Test the seven default tiers in order."""
        engine = ReferralTierEngine()

        assert [(t.amount_threshold, t.bonus_percentage) for t in engine.list_tiers()] == [
            (500, 5), (1001, 7), (5001, 10), (10001, 12), (25001, 13), (50001, 14), (100001, 15),
        ]
        assert len(DEFAULT_TIERS) == 7

    @pytest.mark.parametrize("cumulative,expected", [
        (0, 0),
        (499, 0),
        (500, 5),
        (1000, 5),
        (1001, 7),
        (5001, 10),
        (100000, 14),
        (100001, 15),
        (10 ** 12, 15),
    ])
    def test_qualifying_percentage(self, cumulative, expected):
        """Test the percentage at and around each threshold."""
        engine = ReferralTierEngine()

        assert engine.bonus_percentage_for(cumulative) == expected

    def test_threshold_scale(self):
        """Test thresholds expressed in whole units of a scaled value."""
        engine = ReferralTierEngine(threshold_scale=10 ** 6)

        assert engine.bonus_percentage_for(499_999_999) == 0
        assert engine.bonus_percentage_for(500_000_000) == 5
        assert engine.bonus_percentage_for(1_001_000_000) == 7


class TestQualification:
    """Tests for how tiers are selected."""

    def test_highest_percentage_wins_regardless_of_order(self):
        """Test that a later lower-threshold tier with a higher percentage wins."""
        engine = ReferralTierEngine(tiers=[
            ReferralTier(amount_threshold=1000, bonus_percentage=5),
            ReferralTier(amount_threshold=100, bonus_percentage=9),
        ])

        assert engine.bonus_percentage_for(1000) == 9
        assert engine.bonus_percentage_for(100) == 9
        assert engine.bonus_percentage_for(99) == 0

    def test_not_last_qualifying_tier(self):
        """Test that a later qualifying tier with a lower percentage does not win."""
        engine = ReferralTierEngine(tiers=[
            ReferralTier(amount_threshold=100, bonus_percentage=12),
            ReferralTier(amount_threshold=200, bonus_percentage=3),
        ])

        assert engine.bonus_percentage_for(500) == 12

    def test_empty_table(self):
        """Test that no tiers means no bonus."""
        engine = ReferralTierEngine(tiers=[])

        split = engine.split(cumulative=10 ** 9, amount=1000)
        assert split.percentage == 0
        assert split.bonus == 0
        assert split.remainder == 1000


class TestBonusSplit:
    """Tests for splitting a payment."""

    def test_split_floors_bonus(self):
        """Test that the bonus is floor-divided and the remainder absorbs the rest."""
        engine = ReferralTierEngine()

        split = engine.split(cumulative=1001, amount=401)
        assert split.percentage == 7
        assert split.bonus == 28  # 401 * 7 / 100 = 28.07
        assert split.remainder == 373
        assert split.bonus + split.remainder == 401


class TestTierUpdates:
    """Tests for editing the tier table."""

    def test_update_in_place(self):
        """Test overwriting an existing slot."""
        engine = ReferralTierEngine()

        engine.update_tier(0, 500, 20)

        assert engine.tiers[0] == ReferralTier(amount_threshold=500, bonus_percentage=20)
        assert len(engine.tiers) == 7
        assert engine.bonus_percentage_for(600) == 20
        assert engine.bonus_percentage_for(200000) == 20

    def test_append_at_end(self):
        """Test appending a tier at index == len."""
        engine = ReferralTierEngine()

        engine.update_tier(7, 250001, 17)

        assert len(engine.tiers) == 8
        assert engine.bonus_percentage_for(250001) == 17

    def test_invalid_index_rejected(self):
        """Test that gaps in the table cannot be created."""
        engine = ReferralTierEngine()

        with pytest.raises(TierUpdateError, match=TierErrors.INVALID_INDEX):
            engine.update_tier(9, 1, 1)
        with pytest.raises(TierUpdateError, match=TierErrors.INVALID_INDEX):
            engine.update_tier(-1, 1, 1)

    def test_invalid_percentage_rejected(self):
        """Test that percentages above 100 are rejected."""
        engine = ReferralTierEngine()

        with pytest.raises(TierUpdateError, match=TierErrors.INVALID_PERCENTAGE):
            engine.update_tier(0, 500, 101)

        assert engine.tiers[0].bonus_percentage == 5

    def test_json_round_trip(self):
        """Test exporting and reloading the table."""
        import json

        engine = ReferralTierEngine()
        restored = ReferralTierEngine.from_dicts(json.loads(engine.to_json()))

        assert restored.tiers == engine.tiers
