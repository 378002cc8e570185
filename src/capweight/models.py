"""Pydantic models for market cap snapshots and allocation results."""

import re
from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Market(BaseModel):
    """A trading pair, identified by quote and base symbol."""

    model_config = ConfigDict(frozen=True)

    quote_symbol: str = Field(..., min_length=1)
    base_symbol: str = Field(..., min_length=1)

    @field_validator("quote_symbol", "base_symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: object) -> object:
        """Symbols are stripped and upper-cased."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def __str__(self) -> str:
        return f"{self.base_symbol}-{self.quote_symbol}"


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as a timezone-aware UTC datetime (naive means UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class MarketSnapshot(BaseModel):
    """One market cap observation for a trading pair."""

    model_config = ConfigDict(frozen=True)

    market: Market
    price: Decimal = Field(..., ge=0, description="Quote price of one base unit")
    market_cap: Decimal = Field(..., ge=0, description="Market cap in quote units")
    tags: frozenset[str] = Field(default_factory=frozenset)
    updated: datetime

    @field_validator("updated")
    @classmethod
    def normalize_updated(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class SmoothedMarketCap(BaseModel):
    """Latest snapshot of an asset with its market cap replaced by an EMA.

    ``raw_market_cap`` keeps the unsmoothed value of the same snapshot, so a
    smoothed record is never mistaken for a stored one.
    """

    model_config = ConfigDict(frozen=True)

    market: Market
    price: Decimal
    market_cap: Decimal
    raw_market_cap: Decimal
    tags: frozenset[str] = Field(default_factory=frozenset)
    updated: datetime
    points: int = Field(..., ge=1, description="Number of snapshots folded into the EMA")

    @property
    def base_symbol(self) -> str:
        return self.market.base_symbol


class AllocationTarget(BaseModel):
    """Ranked, un-normalised allocation weight for one base asset."""

    model_config = ConfigDict(frozen=True)

    base_symbol: str
    fraction: float = Field(..., ge=0)

    @property
    def absolute_allocation(self) -> float:
        return self.fraction


class AllocationConfig(BaseModel):
    """Parameters of the weighted power-law allocation ranking."""

    smoothing: int = Field(default=6, ge=1, description="EMA periods")
    tags_to_ignore: list[str] = Field(
        default_factory=list,
        description="Tag patterns (full match, case-insensitive) excluding an asset",
    )
    alt_weighting_factors: dict[str, float] = Field(
        default_factory=dict,
        description="Weighting override per base symbol; takes precedence over tag exclusion",
    )
    nth_root: float = Field(default=2.0, gt=0, description="Dampening root")
    top_ranking_count: int = Field(default=10, ge=0, description="Result cap")

    @field_validator("tags_to_ignore")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid tag pattern {pattern!r}: {e}") from e
        return v

    @field_validator("alt_weighting_factors")
    @classmethod
    def normalize_weighting_keys(cls, v: dict[str, float]) -> dict[str, float]:
        return {key.strip().upper(): weight for key, weight in v.items()}
