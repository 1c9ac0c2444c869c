class PresaleErrors:
    """Stable rejection messages returned to callers."""

    INVALID_STAGE = "Invalid stage index"
    SOLD_OUT = "Sold out already! Wait for the next stage"
    STAGE_NOT_ACTIVE = "Presale stage not active"
    BELOW_MINIMUM = "Buy more than or equal to the minimum amount"
    SELF_REFERRAL = "Can't refer self"
    INVALID_PAYMENT_TOKEN = "Invalid payment token"
    CLAIM_NOT_STARTED = "Claim period not started"
    NOTHING_TO_CLAIM = "No tokens to claim"
    NOT_FINALIZED = "Presale not finalized"
    ALREADY_FINALIZED = "Presale already finalized"
    INVALID_TOKEN = "Invalid token address"
    LAST_STAGE_ACTIVE = "Last stage still active"
    CLAIM_START_NOT_FUTURE = "Claim start must be in the future"
    NO_NEXT_STAGE = "No next stage to activate"
    STAGES_INITIALIZED = "Stages already initialized"
    FIRST_STAGE_STARTED = "First stage already started"
    INVALID_END_TIME = "Invalid end time"
    INVALID_TREASURY = "Invalid treasury address"
    NOTHING_TO_WITHDRAW = "Nothing to withdraw"
    SALE_TOKEN_WITHDRAWAL = "Can't withdraw sale token"
    NOT_OWNER = "Caller is not the owner"
    NOT_TREASURY = "Caller is not the treasury"
    INSUFFICIENT_CUSTODY = "Insufficient token balance in contract"
    TOTALS_MISMATCH = "Global totals do not match stage totals"
    INVALID_PRICE = "Invalid price"
    STALE_PRICE = "Stale price"
    REENTRANT_CALL = "ReentrancyGuard: reentrant call"


class PresaleError(Exception):
    pass


class ValidationRejectedError(PresaleError):
    pass


class TransferFailedError(PresaleError):
    pass


class IntegrityViolationError(PresaleError):
    pass


class UnauthorizedError(PresaleError):
    pass


class ReentrantCallError(PresaleError):
    pass


class PriceQuoteError(PresaleError):
    pass


class ConfigurationError(PresaleError):
    pass
