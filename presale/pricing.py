"""
Currency normalization.

Native-currency payments are converted into the unit of account with an
externally quoted price; unit-of-account values are converted into asset
units with the stage price. Both conversions floor-divide.
"""

from typing import Optional, Protocol

from loguru import logger
from pydantic import BaseModel, Field, model_validator

from .errors import ConfigurationError, PresaleErrors, PriceQuoteError


class ScalingConfig(BaseModel):
    """Decimal scales of the currencies taking part in a purchase."""

    native_decimals: int = Field(default=18, ge=0)
    price_decimals: int = Field(default=8, ge=0)
    unit_decimals: int = Field(default=6, ge=0)
    asset_decimals: int = Field(default=18, ge=0)

    @model_validator(mode="after")
    def check_native_divisor(self) -> "ScalingConfig":
        if self.native_decimals + self.price_decimals < self.unit_decimals:
            raise ValueError(
                "native_decimals + price_decimals must be >= unit_decimals"
            )
        return self

    @property
    def native_divisor(self) -> int:
        return 10 ** (self.native_decimals + self.price_decimals - self.unit_decimals)

    @property
    def asset_scale(self) -> int:
        return 10 ** self.asset_decimals

    @property
    def unit_scale(self) -> int:
        return 10 ** self.unit_decimals


class SettlementCurrency(BaseModel):
    """A stable currency accepted at par with the unit of account."""

    symbol: str
    decimals: int = Field(default=6, ge=0)


class PriceQuote(BaseModel):
    price: int
    updated_at: int = 0


class PriceQuoteSource(Protocol):
    def latest_quote(self) -> PriceQuote:
        ...


class StaticPriceQuote:
    """Fixed quote, for deployments and tests without a live feed."""

    def __init__(self, price: int, updated_at: int = 0):
        self.quote = PriceQuote(price=price, updated_at=updated_at)

    def latest_quote(self) -> PriceQuote:
        return self.quote

    def set_price(self, price: int, updated_at: Optional[int] = None) -> None:
        self.quote = PriceQuote(
            price=price,
            updated_at=self.quote.updated_at if updated_at is None else updated_at,
        )


def validate_settlement_currencies(
    currencies: list[SettlementCurrency], scaling: ScalingConfig
) -> None:
    """Every settlement currency must share the unit-of-account scale."""
    symbols = [c.symbol for c in currencies]
    if len(set(symbols)) != len(symbols):
        raise ConfigurationError(f"Duplicate settlement currency in {symbols}")
    for currency in currencies:
        if currency.decimals != scaling.unit_decimals:
            raise ConfigurationError(
                f"Settlement currency {currency.symbol} has {currency.decimals} decimals, "
                f"expected {scaling.unit_decimals}"
            )


class CurrencyNormalizer:
    def __init__(
        self,
        source: PriceQuoteSource,
        scaling: Optional[ScalingConfig] = None,
        max_price_age: Optional[int] = None,
    ):
        self.source = source
        self.scaling = scaling or ScalingConfig()
        self.max_price_age = max_price_age

    def quote(self, now: int) -> PriceQuote:
        quote = self.source.latest_quote()
        if quote.price <= 0:
            logger.warning(f"Rejected non-positive native price quote: {quote.price}")
            raise PriceQuoteError(PresaleErrors.INVALID_PRICE)
        if self.max_price_age is not None and now - quote.updated_at > self.max_price_age:
            logger.warning(
                f"Rejected stale native price quote: updated_at={quote.updated_at}, now={now}"
            )
            raise PriceQuoteError(PresaleErrors.STALE_PRICE)
        return quote

    def native_to_unit(self, amount: int, now: int) -> int:
        quote = self.quote(now)
        return amount * quote.price // self.scaling.native_divisor

    def unit_to_asset(self, value: int, price: int) -> int:
        return value * self.scaling.asset_scale // price
