"""
Presale settings.

Loads deployment configuration from environment variables (prefix
``PRESALE_``) using pydantic-settings.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ZERO_ADDRESS


class PresaleSettings(BaseSettings):
    """Settings for the HTTP deployment of the ledger."""

    model_config = SettingsConfigDict(
        env_prefix="PRESALE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Roles
    owner_address: str = "0xowner"
    treasury_address: str = "0xtreasury"

    # Settlement currencies, both at unit-of-account scale
    currency_a: str = "USDT"
    currency_b: str = "USDC"
    unit_decimals: int = Field(default=6, ge=0)
    native_decimals: int = Field(default=18, ge=0)
    price_decimals: int = Field(default=8, ge=0)
    asset_decimals: int = Field(default=18, ge=0)

    # Static native quote (unit of account per native coin, price_decimals)
    native_price: int = Field(default=2000_00000000, gt=0)
    native_price_updated_at: Optional[int] = Field(
        default=None,
        description="Quote timestamp; unset stamps the quote when the ledger is built",
    )
    max_price_age_seconds: Optional[int] = Field(
        default=None,
        ge=0,
        description="Reject quotes older than this; unset disables the check",
    )

    # Stage administration
    strict_stage_extension: bool = False

    # Holder id of the ledger's own custody account
    custody_address: str = "presale"

    log_level: str = "INFO"

    @field_validator("treasury_address", "owner_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not v or v == ZERO_ADDRESS:
            raise ValueError("address must be set and non-zero")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v}")
        return level


def get_settings() -> PresaleSettings:
    return PresaleSettings()
