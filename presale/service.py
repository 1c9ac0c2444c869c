import copy
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional

from loguru import logger

from referrals import ReferralTier, ReferralTierEngine, TierUpdateError

from .custody import ValueTransfer
from .errors import (
    IntegrityViolationError,
    PresaleErrors,
    PresaleError,
    TransferFailedError,
    UnauthorizedError,
    ValidationRejectedError,
)
from .guard import ReentrancyGuard
from .models import (
    NATIVE_CURRENCY,
    AccountState,
    CallContext,
    EventKind,
    LedgerEvent,
    PresaleState,
    PurchaseReceipt,
    SaleOverview,
    SaleTotals,
    Stage,
    StageView,
    is_zero_address,
)
from .pricing import (
    CurrencyNormalizer,
    PriceQuoteSource,
    ScalingConfig,
    SettlementCurrency,
    validate_settlement_currencies,
)
from .stages import DEFAULT_STAGE_SCHEDULE, StageSchedule


class Role(str, Enum):
    OWNER = "OWNER"
    TREASURY = "TREASURY"


class PresaleLedger:
    """Staged presale accounting engine.

    Every public mutator runs as one transaction: it holds the reentrancy
    guard, applies all bookkeeping before any outbound transfer, and restores
    state, tiers and custody if anything raises before it completes.
    """

    def __init__(
        self,
        ctx: CallContext,
        currency_a: SettlementCurrency,
        currency_b: SettlementCurrency,
        price_source: PriceQuoteSource,
        treasury: str,
        transfers: ValueTransfer,
        scaling: Optional[ScalingConfig] = None,
        max_price_age: Optional[int] = None,
        strict_stage_extension: bool = False,
        custody_address: str = "presale",
        schedule=DEFAULT_STAGE_SCHEDULE,
    ):
        if is_zero_address(treasury):
            raise ValidationRejectedError(PresaleErrors.INVALID_TREASURY)

        self.scaling = scaling or ScalingConfig()
        self.currencies = {c.symbol: c for c in (currency_a, currency_b)}
        validate_settlement_currencies([currency_a, currency_b], self.scaling)

        self.normalizer = CurrencyNormalizer(price_source, self.scaling, max_price_age)
        self.referral_tiers = ReferralTierEngine(threshold_scale=self.scaling.unit_scale)
        self.transfers = transfers
        self.custody_address = custody_address
        self.strict_stage_extension = strict_stage_extension
        self.guard = ReentrancyGuard()

        self.state = PresaleState(owner=ctx.caller, treasury=treasury)
        self.events: list[LedgerEvent] = []
        self._pending_events: list[LedgerEvent] = []

        with self._transaction("initialize", ctx):
            for index, stage in enumerate(self.schedule.initialize(schedule)):
                self._emit(EventKind.STAGE_CREATED, ctx.timestamp, stage_index=index,
                           price=stage.price, next_price=stage.next_price,
                           min_contribution=stage.min_contribution)
            first = self.schedule.activate_first_stage(ctx.timestamp)
            self._emit(EventKind.SALE_STARTED, ctx.timestamp, stage_index=0,
                       start_time=first.start_time, end_time=first.end_time)

    @property
    def schedule(self) -> StageSchedule:
        return StageSchedule(self.state)

    # Purchases

    def buy_with_native(self, ctx: CallContext, stage_index: int, referrer: Optional[str] = None) -> PurchaseReceipt:
        referrer = None if is_zero_address(referrer) else referrer
        with self._transaction("buy_with_native", ctx):
            self._validate_purchase(ctx, stage_index, referrer)
            self._send(NATIVE_CURRENCY, ctx.caller, self.custody_address, ctx.value)

            value = self.normalizer.native_to_unit(ctx.value, ctx.timestamp)
            receipt = self._record_purchase(ctx, stage_index, referrer, NATIVE_CURRENCY, ctx.value, value)
            self._pay_out(receipt, payer=self.custody_address)
            return receipt

    def buy_with_stable(
        self,
        ctx: CallContext,
        currency: str,
        stage_index: int,
        referrer: Optional[str],
        amount: int,
    ) -> PurchaseReceipt:
        referrer = None if is_zero_address(referrer) else referrer
        with self._transaction("buy_with_stable", ctx):
            if currency not in self.currencies:
                raise ValidationRejectedError(PresaleErrors.INVALID_PAYMENT_TOKEN)
            self._validate_purchase(ctx, stage_index, referrer)

            receipt = self._record_purchase(ctx, stage_index, referrer, currency, amount, amount)
            self._pay_out(receipt, payer=ctx.caller)
            return receipt

    def _validate_purchase(self, ctx: CallContext, stage_index: int, referrer: Optional[str]) -> Stage:
        if self.state.presale_finalized:
            raise ValidationRejectedError(PresaleErrors.ALREADY_FINALIZED)
        stage = self.schedule.get(stage_index)
        if referrer is not None and referrer == ctx.caller:
            raise ValidationRejectedError(PresaleErrors.SELF_REFERRAL)
        self.schedule.require_purchasable(stage_index, ctx.timestamp)
        return stage

    def _record_purchase(
        self,
        ctx: CallContext,
        stage_index: int,
        referrer: Optional[str],
        currency: str,
        paid_amount: int,
        value: int,
    ) -> PurchaseReceipt:
        stage = self.schedule.get(stage_index)
        if value < stage.min_contribution:
            raise ValidationRejectedError(PresaleErrors.BELOW_MINIMUM)

        asset_amount = self.normalizer.unit_to_asset(value, stage.price)

        bonus_percentage = 0
        referral_bonus = 0
        if referrer is not None:
            # Tier lookup sees the cumulative value including this purchase.
            referrer_account = self.state.account(referrer)
            referrer_account.cumulative_value_referred += value
            referrer_account.referral_count += 1
            split = self.referral_tiers.split(referrer_account.cumulative_value_referred, paid_amount)
            bonus_percentage = split.percentage
            referral_bonus = split.bonus
            referrer_account.referral_rewards_earned += value * split.percentage // 100

        stage.total_asset_sold += asset_amount
        stage.total_value_raised += value
        self.state.totals.total_asset_sold += asset_amount
        self.state.totals.total_value_raised += value

        buyer = self.state.account(ctx.caller)
        buyer.asset_balance += asset_amount
        buyer.total_value_invested += value

        receipt = PurchaseReceipt(
            stage_index=stage_index,
            buyer=ctx.caller,
            referrer=referrer,
            currency=currency,
            paid_amount=paid_amount,
            value_in_unit=value,
            asset_amount=asset_amount,
            bonus_percentage=bonus_percentage,
            referral_bonus=referral_bonus,
            treasury_amount=paid_amount - referral_bonus,
        )
        self._emit(EventKind.PURCHASE, ctx.timestamp, **receipt.model_dump())
        return receipt

    def _pay_out(self, receipt: PurchaseReceipt, payer: str) -> None:
        if receipt.referrer is not None and receipt.referral_bonus > 0:
            self._send(receipt.currency, payer, receipt.referrer, receipt.referral_bonus)
        if receipt.treasury_amount > 0:
            self._send(receipt.currency, payer, self.state.treasury, receipt.treasury_amount)

    # Finalization and claims

    def finalize(self, ctx: CallContext, claim_start: int, asset_token: Optional[str]) -> None:
        with self._transaction("finalize", ctx, role=Role.TREASURY):
            if self.state.presale_finalized:
                raise ValidationRejectedError(PresaleErrors.ALREADY_FINALIZED)
            if is_zero_address(asset_token):
                raise ValidationRejectedError(PresaleErrors.INVALID_TOKEN)
            if self.schedule.last_stage_open(ctx.timestamp):
                raise ValidationRejectedError(PresaleErrors.LAST_STAGE_ACTIVE)
            if claim_start <= ctx.timestamp:
                raise ValidationRejectedError(PresaleErrors.CLAIM_START_NOT_FUTURE)

            total = self.state.totals.total_asset_sold
            self.state.presale_finalized = True
            self.state.claim_start = claim_start
            self.state.asset_token = asset_token
            self._emit(EventKind.FINALIZED, ctx.timestamp, claim_start=claim_start,
                       asset_token=asset_token, total_asset_sold=total)

            self._send(asset_token, ctx.caller, self.custody_address, total)

    def claim(self, ctx: CallContext) -> int:
        with self._transaction("claim", ctx):
            if not self.state.presale_finalized:
                raise ValidationRejectedError(PresaleErrors.NOT_FINALIZED)
            if ctx.timestamp < self.state.claim_start:
                raise ValidationRejectedError(PresaleErrors.CLAIM_NOT_STARTED)

            account = self.state.accounts.get(ctx.caller)
            amount = account.asset_balance if account else 0
            if amount == 0:
                raise ValidationRejectedError(PresaleErrors.NOTHING_TO_CLAIM)

            account.asset_balance = 0

            asset_token = self.state.asset_token
            held = self.transfers.balance_of(asset_token, self.custody_address)
            if held < amount:
                raise IntegrityViolationError(
                    f"{PresaleErrors.INSUFFICIENT_CUSTODY}: holds {held}, claim {amount}"
                )

            self._emit(EventKind.CLAIMED, ctx.timestamp, account=ctx.caller, amount=amount)
            self._send(asset_token, self.custody_address, ctx.caller, amount)
            return amount

    # Stage administration

    def extend_stage(self, ctx: CallContext, stage_index: int, new_end_time: int) -> Stage:
        with self._transaction("extend_stage", ctx, role=Role.TREASURY):
            stage = self.schedule.extend_stage(
                stage_index, new_end_time, ctx.timestamp, strict=self.strict_stage_extension
            )
            self._emit(EventKind.STAGE_EXTENDED, ctx.timestamp, stage_index=stage_index,
                       new_end_time=new_end_time)
            return stage.model_copy()

    def conclude_stage(self, ctx: CallContext, stage_index: int) -> Stage:
        with self._transaction("conclude_stage", ctx, role=Role.TREASURY):
            opened = self.schedule.conclude_stage(stage_index, ctx.timestamp)
            self._emit(EventKind.NEXT_STAGE_ACTIVATED, ctx.timestamp, concluded_stage=stage_index,
                       stage_index=stage_index + 1, start_time=opened.start_time,
                       end_time=opened.end_time)
            return opened.model_copy()

    # Owner administration

    def update_treasury(self, ctx: CallContext, treasury: str) -> None:
        with self._transaction("update_treasury", ctx, role=Role.OWNER):
            if is_zero_address(treasury):
                raise ValidationRejectedError(PresaleErrors.INVALID_TREASURY)
            previous = self.state.treasury
            self.state.treasury = treasury
            self._emit(EventKind.TREASURY_UPDATED, ctx.timestamp, previous=previous, treasury=treasury)

    def update_referral_tier(self, ctx: CallContext, index: int, amount_threshold: int, bonus_percentage: int) -> ReferralTier:
        with self._transaction("update_referral_tier", ctx, role=Role.OWNER):
            try:
                tier = self.referral_tiers.update_tier(index, amount_threshold, bonus_percentage)
            except TierUpdateError as e:
                raise ValidationRejectedError(str(e)) from e
            self._emit(EventKind.REFERRAL_TIER_UPDATED, ctx.timestamp, index=index, **tier.to_dict())
            return tier

    def withdraw_native(self, ctx: CallContext) -> int:
        return self._sweep(ctx, NATIVE_CURRENCY, "withdraw_native")

    def withdraw_stable(self, ctx: CallContext, currency: str) -> int:
        return self._sweep(ctx, currency, "withdraw_stable")

    def _sweep(self, ctx: CallContext, currency: str, operation: str) -> int:
        with self._transaction(operation, ctx, role=Role.OWNER):
            if self.state.asset_token is not None and currency == self.state.asset_token:
                raise ValidationRejectedError(PresaleErrors.SALE_TOKEN_WITHDRAWAL)
            amount = self.transfers.balance_of(currency, self.custody_address)
            if amount == 0:
                raise ValidationRejectedError(PresaleErrors.NOTHING_TO_WITHDRAW)
            self._emit(EventKind.WITHDRAWN, ctx.timestamp, currency=currency, amount=amount,
                       treasury=self.state.treasury)
            self._send(currency, self.custody_address, self.state.treasury, amount)
            return amount

    # Views

    def get_stage(self, stage_index: int) -> Stage:
        with self.guard.read():
            return self.schedule.get(stage_index).model_copy()

    def stages(self, now: int) -> list[StageView]:
        with self.guard.read():
            return [
                StageView(index=i, status=stage.status(now), stage=stage.model_copy())
                for i, stage in enumerate(self.state.stages)
            ]

    def current_stage_index(self, now: int) -> Optional[int]:
        with self.guard.read():
            return self.schedule.find_current_stage_index(now)

    def get_account(self, address: str) -> AccountState:
        with self.guard.read():
            account = self.state.accounts.get(address)
            return account.model_copy() if account else AccountState()

    @property
    def totals(self) -> SaleTotals:
        with self.guard.read():
            return self.state.totals.model_copy()

    def overview(self, now: int) -> SaleOverview:
        with self.guard.read():
            return SaleOverview(
                owner=self.state.owner,
                treasury=self.state.treasury,
                current_stage_index=self.current_stage_index(now),
                totals=self.totals,
                presale_finalized=self.state.presale_finalized,
                claim_start=self.state.claim_start,
                asset_token=self.state.asset_token,
            )

    def list_referral_tiers(self) -> list[ReferralTier]:
        with self.guard.read():
            return [copy.copy(t) for t in self.referral_tiers.list_tiers()]

    def list_events(self, offset: int = 0, limit: int = 50) -> list[LedgerEvent]:
        with self.guard.read():
            return self.events[offset:offset + limit]

    def check_invariants(self) -> None:
        with self.guard.read():
            sold = sum(s.total_asset_sold for s in self.state.stages)
            raised = sum(s.total_value_raised for s in self.state.stages)
            totals = self.state.totals
            if sold != totals.total_asset_sold or raised != totals.total_value_raised:
                raise IntegrityViolationError(
                    f"{PresaleErrors.TOTALS_MISMATCH}: stages=({sold}, {raised}), "
                    f"global=({totals.total_asset_sold}, {totals.total_value_raised})"
                )

    # Transaction plumbing

    @contextmanager
    def _transaction(self, operation: str, ctx: CallContext, role: Optional[Role] = None) -> Iterator[None]:
        with self.guard.hold():
            if role is not None:
                self._authorize(ctx, role, operation)

            state_snapshot = self.state.model_copy(deep=True)
            tiers_snapshot = copy.deepcopy(self.referral_tiers.tiers)
            custody_snapshot = self.transfers.snapshot()
            self._pending_events = []
            try:
                yield
                self.check_invariants()
            except Exception as e:
                self.state = state_snapshot
                self.referral_tiers.tiers = tiers_snapshot
                self.transfers.restore(custody_snapshot)
                self._pending_events = []
                if isinstance(e, IntegrityViolationError):
                    logger.error(f"{operation} by {ctx.caller} aborted on integrity violation: {e}")
                elif isinstance(e, PresaleError):
                    logger.warning(f"{operation} by {ctx.caller} rejected: {e}")
                else:
                    logger.exception(f"{operation} by {ctx.caller} failed unexpectedly")
                raise

            committed, self._pending_events = self._pending_events, []
            for event in committed:
                self.events.append(event)
                logger.info(f"{event.kind.value} at {event.timestamp}: {event.payload}")

    def _authorize(self, ctx: CallContext, role: Role, operation: str) -> None:
        if role == Role.OWNER and ctx.caller != self.state.owner:
            logger.warning(f"{operation} denied for {ctx.caller}: not the owner")
            raise UnauthorizedError(PresaleErrors.NOT_OWNER)
        if role == Role.TREASURY and ctx.caller != self.state.treasury:
            logger.warning(f"{operation} denied for {ctx.caller}: not the treasury")
            raise UnauthorizedError(PresaleErrors.NOT_TREASURY)

    def _send(self, currency: str, sender: str, recipient: str, amount: int) -> None:
        if self.transfers.transfer(currency, sender, recipient, amount) is False:
            raise TransferFailedError(
                f"Transfer of {amount} {currency} from {sender} to {recipient} failed"
            )

    def _emit(self, kind: EventKind, timestamp: int, **payload) -> None:
        self._pending_events.append(LedgerEvent(kind=kind, timestamp=timestamp, payload=payload))
