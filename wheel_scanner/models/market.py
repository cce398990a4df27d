"""Normalized market data records returned by the FinancialData.net client."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _parse_date(value: Any) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        return dt.datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
    raise ValueError("Unsupported date format")


class OptionType(str, Enum):
    PUT = "put"
    CALL = "call"


class _MarketRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    date: dt.date

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, value: Any) -> dt.date:
        return _parse_date(value)


class PriceBar(_MarketRecord):
    """One trading day of OHLCV for an underlying."""

    open: float
    high: float
    low: float
    close: float
    volume: float

    @field_validator("open", "high", "low", "close", "volume", mode="before")
    @classmethod
    def coerce_float(cls, value: Any) -> float:
        return float(value or 0.0)


class OptionGreeksRecord(_MarketRecord):
    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    rho: float = 0.0
    implied_volatility: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("implied_volatility", "impliedVolatility"),
    )

    @field_validator("delta", "gamma", "theta", "vega", "rho", mode="before")
    @classmethod
    def coerce_float(cls, value: Any) -> float:
        return float(value or 0.0)


class OptionPriceRecord(_MarketRecord):
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0
    volume: int = 0
    open_interest: int = Field(
        default=0,
        validation_alias=AliasChoices("open_interest", "openInterest"),
    )

    @field_validator("open", "high", "low", "close", mode="before")
    @classmethod
    def coerce_float(cls, value: Any) -> float:
        return float(value or 0.0)

    @field_validator("volume", "open_interest", mode="before")
    @classmethod
    def coerce_int(cls, value: Any) -> int:
        return int(float(value or 0))


class OptionContract(BaseModel):
    """Immutable identifier of a listed option contract."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    contract_name: str = Field(validation_alias=AliasChoices("contract_name", "identifier", "contractName"))
    ticker: str = Field(default="", validation_alias=AliasChoices("ticker", "trading_symbol", "symbol"))
    option_type: OptionType = Field(validation_alias=AliasChoices("option_type", "put_or_call", "type"))
    strike: float = Field(validation_alias=AliasChoices("strike", "strike_price"))
    expiration: dt.date = Field(validation_alias=AliasChoices("expiration", "expiration_date"))

    @field_validator("option_type", mode="before")
    @classmethod
    def parse_option_type(cls, value: Any) -> OptionType:
        if isinstance(value, OptionType):
            return value
        return OptionType(str(value).strip().lower())

    @field_validator("expiration", mode="before")
    @classmethod
    def parse_expiration(cls, value: Any) -> dt.date:
        return _parse_date(value)

    @field_validator("strike", mode="before")
    @classmethod
    def coerce_float(cls, value: Any) -> float:
        return float(value or 0.0)

    @property
    def is_put(self) -> bool:
        return self.option_type is OptionType.PUT

    def dte(self, as_of: dt.date) -> int:
        """Calendar days from ``as_of`` until expiration."""

        return (self.expiration - as_of).days


@dataclass(frozen=True)
class IVDataPoint:
    date: dt.date
    implied_volatility: float


RecordT = TypeVar("RecordT", bound=_MarketRecord)


def most_recent(records: Sequence[RecordT]) -> Optional[RecordT]:
    """Return the record with the latest date.

    Ties on date keep the record that appears first in ``records``.
    """

    latest: Optional[RecordT] = None
    for record in records:
        if latest is None or record.date > latest.date:
            latest = record
    return latest


__all__ = [
    "IVDataPoint",
    "OptionContract",
    "OptionGreeksRecord",
    "OptionPriceRecord",
    "OptionType",
    "PriceBar",
    "most_recent",
]
