"""
Staged Presale Ledger

This package provides:
- An 8-stage sale schedule with treasury-driven stage transitions
- Native and stable-currency purchases normalized into a unit of account
- Tiered referral bonuses paid out of each purchase
- One-time finalization and exactly-once entitlement claims
- All-or-nothing operations guarded against reentry
"""

from .errors import (
    PresaleErrors,
    PresaleError,
    ValidationRejectedError,
    TransferFailedError,
    IntegrityViolationError,
    UnauthorizedError,
    ReentrantCallError,
    PriceQuoteError,
    ConfigurationError,
)
from .models import (
    ZERO_ADDRESS,
    NATIVE_CURRENCY,
    STAGE_DURATION,
    StageStatus,
    EventKind,
    Stage,
    AccountState,
    CallContext,
    PurchaseReceipt,
    LedgerEvent,
)
from .pricing import ScalingConfig, SettlementCurrency, StaticPriceQuote, CurrencyNormalizer
from .custody import InMemoryCustody, ValueTransfer
from .stages import DEFAULT_STAGE_SCHEDULE, StageSchedule
from .service import PresaleLedger

__all__ = [
    "PresaleErrors",
    "PresaleError",
    "ValidationRejectedError",
    "TransferFailedError",
    "IntegrityViolationError",
    "UnauthorizedError",
    "ReentrantCallError",
    "PriceQuoteError",
    "ConfigurationError",
    "ZERO_ADDRESS",
    "NATIVE_CURRENCY",
    "STAGE_DURATION",
    "StageStatus",
    "EventKind",
    "Stage",
    "AccountState",
    "CallContext",
    "PurchaseReceipt",
    "LedgerEvent",
    "ScalingConfig",
    "SettlementCurrency",
    "StaticPriceQuote",
    "CurrencyNormalizer",
    "InMemoryCustody",
    "ValueTransfer",
    "DEFAULT_STAGE_SCHEDULE",
    "StageSchedule",
    "PresaleLedger",
]
