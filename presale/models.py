from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
NATIVE_CURRENCY = "NATIVE"
STAGE_DURATION = 40 * 24 * 60 * 60


def is_zero_address(address: Optional[str]) -> bool:
    return address is None or address == "" or address == ZERO_ADDRESS


class StageStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SOLD_OUT = "SOLD_OUT"
    CONCLUDED = "CONCLUDED"


class EventKind(str, Enum):
    STAGE_CREATED = "STAGE_CREATED"
    SALE_STARTED = "SALE_STARTED"
    PURCHASE = "PURCHASE"
    NEXT_STAGE_ACTIVATED = "NEXT_STAGE_ACTIVATED"
    STAGE_EXTENDED = "STAGE_EXTENDED"
    FINALIZED = "FINALIZED"
    CLAIMED = "CLAIMED"
    TREASURY_UPDATED = "TREASURY_UPDATED"
    REFERRAL_TIER_UPDATED = "REFERRAL_TIER_UPDATED"
    WITHDRAWN = "WITHDRAWN"


class Stage(BaseModel):
    start_time: int = 0
    end_time: int = 0
    price: int
    next_price: int
    total_asset_sold: int = 0
    total_value_raised: int = 0
    min_contribution: int
    sold_out: bool = False

    def status(self, now: int) -> StageStatus:
        if self.start_time == 0:
            return StageStatus.PENDING
        if self.sold_out:
            return StageStatus.SOLD_OUT
        if now > self.end_time:
            return StageStatus.CONCLUDED
        if now < self.start_time:
            return StageStatus.PENDING
        return StageStatus.ACTIVE

    def contains(self, now: int) -> bool:
        return self.start_time > 0 and self.start_time <= now <= self.end_time


class AccountState(BaseModel):
    asset_balance: int = 0
    total_value_invested: int = 0
    referral_rewards_earned: int = 0
    referral_count: int = 0
    cumulative_value_referred: int = 0


class SaleTotals(BaseModel):
    total_asset_sold: int = 0
    total_value_raised: int = 0


class PresaleState(BaseModel):
    owner: str
    treasury: str
    stages: list[Stage] = Field(default_factory=list)
    accounts: dict[str, AccountState] = Field(default_factory=dict)
    totals: SaleTotals = Field(default_factory=SaleTotals)
    stages_initialized: bool = False
    presale_finalized: bool = False
    claim_start: int = 0
    asset_token: Optional[str] = None

    def account(self, address: str) -> AccountState:
        if address not in self.accounts:
            self.accounts[address] = AccountState()
        return self.accounts[address]


class CallContext(BaseModel):
    caller: str
    timestamp: int
    value: int = Field(default=0, ge=0, description="Native amount attached to the call")

    model_config = ConfigDict(frozen=True)


class PurchaseReceipt(BaseModel):
    stage_index: int
    buyer: str
    referrer: Optional[str] = None
    currency: str
    paid_amount: int
    value_in_unit: int
    asset_amount: int
    bonus_percentage: int = 0
    referral_bonus: int = 0
    treasury_amount: int


class LedgerEvent(BaseModel):
    kind: EventKind
    timestamp: int
    payload: dict[str, Any] = Field(default_factory=dict)


class StageView(BaseModel):
    index: int
    status: StageStatus
    stage: Stage


class SaleOverview(BaseModel):
    owner: str
    treasury: str
    current_stage_index: Optional[int] = None
    totals: SaleTotals
    presale_finalized: bool
    claim_start: int
    asset_token: Optional[str] = None


class CallerRequest(BaseModel):
    caller: str = Field(..., description="Address invoking the operation")


class NativePurchaseRequest(CallerRequest):
    stage_index: int
    referrer: Optional[str] = None
    value: int = Field(..., ge=0, description="Native amount attached, smallest units")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "caller": "0xbuyer",
            "stage_index": 0,
            "referrer": None,
            "value": 100000000000000000,
        }
    })


class StablePurchaseRequest(CallerRequest):
    currency: str
    stage_index: int
    referrer: Optional[str] = None
    amount: int = Field(..., ge=0)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "caller": "0xbuyer",
            "currency": "USDT",
            "stage_index": 0,
            "referrer": "0xreferrer",
            "amount": 200000000,
        }
    })


class FinalizeRequest(CallerRequest):
    claim_start: int
    asset_token: Optional[str] = None


class ExtendStageRequest(CallerRequest):
    new_end_time: int


class TreasuryUpdateRequest(CallerRequest):
    treasury: str


class ReferralTierUpdateRequest(CallerRequest):
    amount_threshold: int
    bonus_percentage: int


class ClaimResponse(BaseModel):
    account: str
    amount: int
