"""
Unit Tests for Finalization, Claims and Owner Administration

Tests cover:
1. Finalization preconditions and escrow of the sold supply
2. Exactly-once claims
3. Integrity violations on custody shortfall
4. Treasury updates, tier edits and withdrawals
"""

import pytest

from presale.custody import InMemoryCustody
from presale.errors import (
    IntegrityViolationError,
    PresaleErrors,
    TransferFailedError,
    UnauthorizedError,
    ValidationRejectedError,
)
from presale.models import NATIVE_CURRENCY, STAGE_DURATION, ZERO_ADDRESS, CallContext, EventKind
from presale.pricing import SettlementCurrency, StaticPriceQuote
from presale.service import PresaleLedger


# Test constants
OWNER = "0xowner"
TREASURY = "0xtreasury"
CUSTODY = "presale"
ALICE = "0xalice"
BOB = "0xbob"
ASSET = "SALE"
START = 1_700_000_000
CLAIM_START = START + 10_000
FUNDING = 100_000 * 10 ** 6


def make_ledger():
    custody = InMemoryCustody()
    for buyer in (ALICE, BOB):
        custody.mint("USDT", buyer, FUNDING)

    ledger = PresaleLedger(
        ctx=CallContext(caller=OWNER, timestamp=START),
        currency_a=SettlementCurrency(symbol="USDT", decimals=6),
        currency_b=SettlementCurrency(symbol="USDC", decimals=6),
        price_source=StaticPriceQuote(2000_00000000, updated_at=START),
        treasury=TREASURY,
        transfers=custody,
    )
    return ledger, custody


def at(caller, offset=0):
    return CallContext(caller=caller, timestamp=START + offset)


def make_finalized_ledger():
    ledger, custody = make_ledger()
    ledger.buy_with_stable(at(ALICE), "USDT", 0, None, 200000000)
    ledger.buy_with_stable(at(BOB, 1), "USDT", 0, ALICE, 300000000)
    custody.mint(ASSET, TREASURY, ledger.totals.total_asset_sold)
    ledger.finalize(at(TREASURY, 100), CLAIM_START, ASSET)
    return ledger, custody


class TestFinalize:
    """Tests for finalizing the sale."""

    def test_finalize_escrows_sold_supply(self):
        """Test that finalization pulls exactly the sold amount into custody."""
        ledger, custody = make_ledger()
        ledger.buy_with_stable(at(ALICE), "USDT", 0, None, 200000000)
        sold = ledger.totals.total_asset_sold
        custody.mint(ASSET, TREASURY, sold + 12345)

        ledger.finalize(at(TREASURY, 100), CLAIM_START, ASSET)

        assert ledger.state.presale_finalized is True
        assert ledger.state.claim_start == CLAIM_START
        assert ledger.state.asset_token == ASSET
        assert custody.balance_of(ASSET, CUSTODY) == sold
        assert custody.balance_of(ASSET, TREASURY) == 12345
        assert ledger.events[-1].kind == EventKind.FINALIZED

    def test_finalize_transfer_failure_leaves_sale_open(self):
        """Test that a failed escrow pull leaves nothing finalized."""
        ledger, custody = make_ledger()
        ledger.buy_with_stable(at(ALICE), "USDT", 0, None, 200000000)
        custody.mint(ASSET, TREASURY, ledger.totals.total_asset_sold - 1)

        with pytest.raises(TransferFailedError):
            ledger.finalize(at(TREASURY, 100), CLAIM_START, ASSET)

        assert ledger.state.presale_finalized is False
        assert ledger.state.claim_start == 0
        assert ledger.state.asset_token is None
        assert custody.balance_of(ASSET, CUSTODY) == 0

    def test_finalize_only_once(self):
        """Test that a second finalization is rejected."""
        ledger, _ = make_finalized_ledger()

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.ALREADY_FINALIZED):
            ledger.finalize(at(TREASURY, 200), CLAIM_START + 1, ASSET)

    def test_finalize_requires_future_claim_start(self):
        """Test that the claim start must be strictly after now."""
        ledger, _ = make_ledger()

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.CLAIM_START_NOT_FUTURE):
            ledger.finalize(at(TREASURY, 100), START + 100, ASSET)

    def test_finalize_requires_asset(self):
        """Test that the asset reference must be set."""
        ledger, _ = make_ledger()

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.INVALID_TOKEN):
            ledger.finalize(at(TREASURY, 100), CLAIM_START, ZERO_ADDRESS)
        with pytest.raises(ValidationRejectedError, match=PresaleErrors.INVALID_TOKEN):
            ledger.finalize(at(TREASURY, 100), CLAIM_START, None)

    def test_finalize_blocked_while_last_stage_open(self):
        """Test that the final stage must be over before finalizing."""
        ledger, custody = make_ledger()
        for index in range(7):
            ledger.conclude_stage(at(TREASURY, 10 + index), index)

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.LAST_STAGE_ACTIVE):
            ledger.finalize(at(TREASURY, 100), CLAIM_START, ASSET)

        last_end = ledger.get_stage(7).end_time
        ledger.finalize(at(TREASURY, last_end - START + 1), last_end + 100, ASSET)
        assert ledger.state.presale_finalized is True

    def test_finalize_requires_treasury(self):
        """Test that the owner alone cannot finalize."""
        ledger, _ = make_ledger()

        with pytest.raises(UnauthorizedError, match=PresaleErrors.NOT_TREASURY):
            ledger.finalize(at(OWNER, 100), CLAIM_START, ASSET)


class TestClaim:
    """Tests for claiming purchased entitlement."""

    def test_claim_transfers_balance_once(self):
        """Test that a claim pays out and a second claim fails."""
        ledger, custody = make_finalized_ledger()
        expected = 200000000 * 10 ** 18 // 4000

        claimed = ledger.claim(at(ALICE, CLAIM_START - START))

        assert claimed == expected
        assert custody.balance_of(ASSET, ALICE) == expected
        assert ledger.get_account(ALICE).asset_balance == 0

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.NOTHING_TO_CLAIM):
            ledger.claim(at(ALICE, CLAIM_START - START + 1))

        assert custody.balance_of(ASSET, ALICE) == expected

    def test_all_buyers_can_claim(self):
        """Test that custody covers every buyer exactly."""
        ledger, custody = make_finalized_ledger()

        ledger.claim(at(ALICE, CLAIM_START - START))
        ledger.claim(at(BOB, CLAIM_START - START))

        assert custody.balance_of(ASSET, CUSTODY) == 0
        assert custody.balance_of(ASSET, ALICE) + custody.balance_of(ASSET, BOB) == ledger.totals.total_asset_sold

    def test_claim_before_start_rejected(self):
        """Test that claims wait for the claim window."""
        ledger, _ = make_finalized_ledger()

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.CLAIM_NOT_STARTED):
            ledger.claim(at(ALICE, CLAIM_START - START - 1))

        assert ledger.get_account(ALICE).asset_balance == 200000000 * 10 ** 18 // 4000

    def test_claim_before_finalization_rejected(self):
        """Test that claims require finalization."""
        ledger, _ = make_ledger()
        ledger.buy_with_stable(at(ALICE), "USDT", 0, None, 200000000)

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.NOT_FINALIZED):
            ledger.claim(at(ALICE, 20_000))

    def test_claim_without_purchase_rejected(self):
        """Test that accounts with nothing bought cannot claim."""
        ledger, _ = make_finalized_ledger()

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.NOTHING_TO_CLAIM):
            ledger.claim(at("0xstranger", CLAIM_START - START))

    def test_custody_shortfall_is_integrity_violation(self):
        """Test that a drained custody surfaces as a fatal error and restores the balance."""
        ledger, custody = make_finalized_ledger()
        # Simulate an out-of-band drain of the escrowed asset
        custody.transfer(ASSET, CUSTODY, "0xelsewhere", custody.balance_of(ASSET, CUSTODY))
        balance = ledger.get_account(ALICE).asset_balance

        with pytest.raises(IntegrityViolationError):
            ledger.claim(at(ALICE, CLAIM_START - START))

        assert ledger.get_account(ALICE).asset_balance == balance
        assert not isinstance(IntegrityViolationError(), ValidationRejectedError)

    def test_failed_claim_transfer_restores_balance(self):
        """Test that a rejected payout leaves the entitlement in place."""
        ledger, custody = make_finalized_ledger()
        balance = ledger.get_account(ALICE).asset_balance
        custody.reject_transfers_to(ALICE)

        with pytest.raises(TransferFailedError):
            ledger.claim(at(ALICE, CLAIM_START - START))

        assert ledger.get_account(ALICE).asset_balance == balance
        assert custody.balance_of(ASSET, CUSTODY) == ledger.totals.total_asset_sold


class TestOwnerAdministration:
    """Tests for owner-only operations."""

    def test_update_treasury(self):
        """Test moving the treasury role."""
        ledger, custody = make_ledger()

        ledger.update_treasury(at(OWNER), "0xnewtreasury")

        assert ledger.state.treasury == "0xnewtreasury"
        assert ledger.events[-1].kind == EventKind.TREASURY_UPDATED

        # Proceeds now go to the new treasury, and the old one lost its role
        ledger.buy_with_stable(at(ALICE, 1), "USDT", 0, None, 200000000)
        assert custody.balance_of("USDT", "0xnewtreasury") == 200000000
        with pytest.raises(UnauthorizedError):
            ledger.conclude_stage(at(TREASURY, 2), 0)

    def test_update_treasury_rejects_zero_address(self):
        """Test that the treasury cannot be cleared."""
        ledger, _ = make_ledger()

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.INVALID_TREASURY):
            ledger.update_treasury(at(OWNER), ZERO_ADDRESS)

    def test_update_treasury_requires_owner(self):
        """Test that the treasury cannot reassign itself."""
        ledger, _ = make_ledger()

        with pytest.raises(UnauthorizedError, match=PresaleErrors.NOT_OWNER):
            ledger.update_treasury(at(TREASURY), "0xnewtreasury")

        assert ledger.state.treasury == TREASURY

    def test_update_referral_tier(self):
        """Test that tier edits apply to later purchases."""
        ledger, custody = make_ledger()

        ledger.update_referral_tier(at(OWNER), 0, 100, 20)

        receipt = ledger.buy_with_stable(at(BOB, 1), "USDT", 0, ALICE, 200000000)
        assert receipt.bonus_percentage == 20
        assert custody.balance_of("USDT", ALICE) == FUNDING + 40000000

    def test_update_referral_tier_invalid_index(self):
        """Test that tier edits cannot leave gaps."""
        ledger, _ = make_ledger()

        with pytest.raises(ValidationRejectedError, match="Invalid tier index"):
            ledger.update_referral_tier(at(OWNER), 9, 100, 20)

        with pytest.raises(UnauthorizedError):
            ledger.update_referral_tier(at(ALICE), 0, 100, 20)

        assert len(ledger.referral_tiers.tiers) == 7

    def test_withdraw_native_sweeps_to_treasury(self):
        """Test sweeping stray native balance."""
        ledger, custody = make_ledger()
        custody.mint(NATIVE_CURRENCY, CUSTODY, 5000)

        assert ledger.withdraw_native(at(OWNER)) == 5000

        assert custody.balance_of(NATIVE_CURRENCY, TREASURY) == 5000
        assert custody.balance_of(NATIVE_CURRENCY, CUSTODY) == 0

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.NOTHING_TO_WITHDRAW):
            ledger.withdraw_native(at(OWNER))

    def test_withdraw_stable_sweeps_to_treasury(self):
        """Test sweeping stray stable balance."""
        ledger, custody = make_ledger()
        custody.mint("USDC", CUSTODY, 777)

        assert ledger.withdraw_stable(at(OWNER), "USDC") == 777
        assert custody.balance_of("USDC", TREASURY) == 777

    def test_withdraw_requires_owner(self):
        """Test that withdrawals are owner-only."""
        ledger, custody = make_ledger()
        custody.mint("USDC", CUSTODY, 777)

        with pytest.raises(UnauthorizedError):
            ledger.withdraw_stable(at(TREASURY), "USDC")

        assert custody.balance_of("USDC", CUSTODY) == 777

    def test_withdraw_escrowed_asset_rejected(self):
        """Test that the escrow backing claims cannot be swept."""
        ledger, custody = make_finalized_ledger()

        with pytest.raises(ValidationRejectedError, match=PresaleErrors.SALE_TOKEN_WITHDRAWAL):
            ledger.withdraw_stable(at(OWNER), ASSET)

        assert custody.balance_of(ASSET, CUSTODY) == ledger.totals.total_asset_sold

    def test_sale_window_unchanged_by_admin_failures(self):
        """Test that rejected admin calls leave stage windows untouched."""
        ledger, _ = make_ledger()

        with pytest.raises(UnauthorizedError):
            ledger.extend_stage(at(ALICE), 0, START + 1)

        assert ledger.get_stage(0).end_time == START + STAGE_DURATION
