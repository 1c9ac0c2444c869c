"""
Referral Tiers Package

Provides the tiered referral bonus table used by the presale ledger:
tier representation, max-percentage qualification and bonus splitting.
"""

from .tier_engine import (
    ReferralTierEngine,
    ReferralTier,
    BonusSplit,
    TierErrors,
    TierUpdateError,
    DEFAULT_TIERS,
    create_default_tiers,
)

__all__ = [
    "ReferralTierEngine",
    "ReferralTier",
    "BonusSplit",
    "TierErrors",
    "TierUpdateError",
    "DEFAULT_TIERS",
    "create_default_tiers",
]
