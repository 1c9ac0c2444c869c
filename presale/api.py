import time
from typing import Callable, Optional

from fastapi import FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from referrals import ReferralTier

from .config import PresaleSettings, get_settings
from .custody import InMemoryCustody
from .errors import (
    ConfigurationError,
    IntegrityViolationError,
    PresaleError,
    PriceQuoteError,
    ReentrantCallError,
    TransferFailedError,
    UnauthorizedError,
    ValidationRejectedError,
)
from .logging import setup_logging
from .models import (
    AccountState,
    CallContext,
    CallerRequest,
    ClaimResponse,
    ExtendStageRequest,
    FinalizeRequest,
    LedgerEvent,
    NATIVE_CURRENCY,
    NativePurchaseRequest,
    PurchaseReceipt,
    ReferralTierUpdateRequest,
    SaleOverview,
    Stage,
    StablePurchaseRequest,
    StageView,
    TreasuryUpdateRequest,
)
from .pricing import ScalingConfig, SettlementCurrency, StaticPriceQuote
from .service import PresaleLedger


ERROR_STATUS = {
    ValidationRejectedError: status.HTTP_400_BAD_REQUEST,
    UnauthorizedError: status.HTTP_403_FORBIDDEN,
    ReentrantCallError: status.HTTP_409_CONFLICT,
    TransferFailedError: status.HTTP_502_BAD_GATEWAY,
    PriceQuoteError: status.HTTP_503_SERVICE_UNAVAILABLE,
    IntegrityViolationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def wall_clock() -> int:
    return int(time.time())


def build_ledger(settings: PresaleSettings, now: Optional[int] = None) -> PresaleLedger:
    scaling = ScalingConfig(
        native_decimals=settings.native_decimals,
        price_decimals=settings.price_decimals,
        unit_decimals=settings.unit_decimals,
        asset_decimals=settings.asset_decimals,
    )
    if now is None:
        now = wall_clock()
    # An unstamped static quote is taken as fresh at construction.
    quoted_at = settings.native_price_updated_at
    if quoted_at is None:
        quoted_at = now
    return PresaleLedger(
        ctx=CallContext(caller=settings.owner_address, timestamp=now),
        currency_a=SettlementCurrency(symbol=settings.currency_a, decimals=settings.unit_decimals),
        currency_b=SettlementCurrency(symbol=settings.currency_b, decimals=settings.unit_decimals),
        price_source=StaticPriceQuote(settings.native_price, quoted_at),
        treasury=settings.treasury_address,
        transfers=InMemoryCustody(),
        scaling=scaling,
        max_price_age=settings.max_price_age_seconds,
        strict_stage_extension=settings.strict_stage_extension,
        custody_address=settings.custody_address,
    )


def create_app(
    ledger: Optional[PresaleLedger] = None,
    clock: Callable[[], int] = wall_clock,
    root_path: str = "",
) -> FastAPI:
    if ledger is None:
        settings = get_settings()
        setup_logging(settings.log_level)
        ledger = build_ledger(settings, now=clock())

    app = FastAPI(
        title="Presale Ledger API",
        description="Staged presale ledger with tiered referral bonuses and post-sale claims",
        version="1.0.0",
        root_path=root_path,
    )
    app.state.ledger = ledger

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PresaleError)
    async def presale_error_handler(request: Request, exc: PresaleError) -> JSONResponse:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for error_type, error_code in ERROR_STATUS.items():
            if isinstance(exc, error_type):
                code = error_code
                break
        return JSONResponse(status_code=code, content={"detail": str(exc), "error": type(exc).__name__})

    def context(request: CallerRequest, value: int = 0) -> CallContext:
        return CallContext(caller=request.caller, timestamp=clock(), value=value)

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "presale-ledger"}

    @app.get("/sale", response_model=SaleOverview, tags=["Sale"])
    def get_sale() -> SaleOverview:
        return ledger.overview(clock())

    @app.get("/stages", response_model=list[StageView], tags=["Sale"])
    def list_stages() -> list[StageView]:
        return ledger.stages(clock())

    @app.get("/stages/current", response_model=Optional[StageView], tags=["Sale"])
    def current_stage() -> Optional[StageView]:
        now = clock()
        index = ledger.current_stage_index(now)
        if index is None:
            return None
        return ledger.stages(now)[index]

    @app.get("/accounts/{address}", response_model=AccountState, tags=["Accounts"])
    def get_account(address: str) -> AccountState:
        return ledger.get_account(address)

    @app.get("/referral-tiers", tags=["Referrals"])
    def list_referral_tiers() -> list[dict]:
        return [t.to_dict() for t in ledger.list_referral_tiers()]

    @app.get("/events", response_model=list[LedgerEvent], tags=["Sale"])
    def list_events(limit: int = Query(50, ge=0), offset: int = Query(0, ge=0)) -> list[LedgerEvent]:
        return ledger.list_events(offset, limit)

    @app.post("/purchases/native", response_model=PurchaseReceipt, status_code=status.HTTP_201_CREATED, tags=["Purchases"])
    def buy_with_native(request: NativePurchaseRequest) -> PurchaseReceipt:
        return ledger.buy_with_native(context(request, request.value), request.stage_index, request.referrer)

    @app.post("/purchases/stable", response_model=PurchaseReceipt, status_code=status.HTTP_201_CREATED, tags=["Purchases"])
    def buy_with_stable(request: StablePurchaseRequest) -> PurchaseReceipt:
        return ledger.buy_with_stable(
            context(request), request.currency, request.stage_index, request.referrer, request.amount
        )

    @app.post("/claims", response_model=ClaimResponse, tags=["Claims"])
    def claim(request: CallerRequest) -> ClaimResponse:
        amount = ledger.claim(context(request))
        return ClaimResponse(account=request.caller, amount=amount)

    @app.post("/admin/finalize", response_model=SaleOverview, tags=["Admin"])
    def finalize(request: FinalizeRequest) -> SaleOverview:
        ctx = context(request)
        ledger.finalize(ctx, request.claim_start, request.asset_token)
        return ledger.overview(ctx.timestamp)

    @app.post("/admin/stages/{stage_index}/extend", response_model=Stage, tags=["Admin"])
    def extend_stage(stage_index: int, request: ExtendStageRequest) -> Stage:
        return ledger.extend_stage(context(request), stage_index, request.new_end_time)

    @app.post("/admin/stages/{stage_index}/conclude", response_model=Stage, tags=["Admin"])
    def conclude_stage(stage_index: int, request: CallerRequest) -> Stage:
        return ledger.conclude_stage(context(request), stage_index)

    @app.put("/admin/treasury", response_model=SaleOverview, tags=["Admin"])
    def update_treasury(request: TreasuryUpdateRequest) -> SaleOverview:
        ctx = context(request)
        ledger.update_treasury(ctx, request.treasury)
        return ledger.overview(ctx.timestamp)

    @app.put("/admin/referral-tiers/{index}", tags=["Admin"])
    def update_referral_tier(index: int, request: ReferralTierUpdateRequest) -> dict:
        tier: ReferralTier = ledger.update_referral_tier(
            context(request), index, request.amount_threshold, request.bonus_percentage
        )
        return tier.to_dict()

    @app.post("/admin/withdrawals/native", tags=["Admin"])
    def withdraw_native(request: CallerRequest) -> dict:
        return {"currency": NATIVE_CURRENCY, "amount": ledger.withdraw_native(context(request))}

    @app.post("/admin/withdrawals/{currency}", tags=["Admin"])
    def withdraw_stable(currency: str, request: CallerRequest) -> dict:
        return {"currency": currency, "amount": ledger.withdraw_stable(context(request), currency)}

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
