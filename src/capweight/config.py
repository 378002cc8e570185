"""Configuration management using Pydantic v2."""

import json
import os
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from capweight.models import AllocationConfig


def parse_list_env(value: Any) -> Any:
    """Parse list values from env (JSON array, comma-separated, or single item)."""
    if value is None:
        return value
    if isinstance(value, str):
        if value.strip() == "":
            return []
        try:
            parsed = json.loads(value)
            if isinstance(parsed, list):
                return parsed
        except json.JSONDecodeError:
            pass
        items = [item.strip() for item in value.split(",") if item.strip()]
        return items if items else value
    return value


def parse_mapping_env(value: Any) -> Any:
    """Parse mapping values from env (JSON object or ``KEY=VALUE`` pairs)."""
    if not isinstance(value, str):
        return value
    if value.strip() == "":
        return {}
    try:
        parsed = json.loads(value)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass
    pairs: dict[str, str] = {}
    for item in value.split(","):
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid mapping entry: {item!r}")
        pairs[key.strip()] = raw.strip()
    return pairs


def _find_env_file() -> str:
    """Find .env file: check project root first, then CWD."""
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    env_path = os.path.join(project_root, ".env")
    if os.path.exists(env_path):
        return env_path
    return ".env"


class CapWeightSettings(BaseSettings):
    """Main configuration for the market-cap store and allocation engine."""

    model_config = SettingsConfigDict(
        env_file=_find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
        env_ignore_empty=True,
    )

    # Storage
    db_path: str = Field(
        default="data/capweight.db",
        description="SQLite database file holding market cap snapshots",
    )
    quote_symbol: str = Field(
        default="EUR",
        min_length=1,
        description="Default quote currency for retrieval and allocation",
    )

    # Hourly bucket tolerances
    earlier_tolerance_minutes: float = Field(
        default=5.0,
        ge=0,
        le=30,
        description="Minutes before the whole hour a snapshot is still accepted",
    )
    later_tolerance_minutes: float = Field(
        default=5.0,
        ge=0,
        le=30,
        description="Minutes after the whole hour a snapshot is still accepted",
    )

    # Retrieval
    recency_window_hours: float = Field(
        default=2.0,
        gt=0,
        description="Lookback used to decide which assets are still being tracked",
    )
    default_history_hours: int = Field(
        default=24,
        gt=0,
        description="Default lookback for historical queries",
    )

    # Smoothing
    ema_min_points: int = Field(
        default=1,
        ge=1,
        description="Minimum number of snapshots required to compute an EMA",
    )

    # Allocation defaults
    smoothing: int = Field(default=6, ge=1, description="EMA periods")
    tags_to_ignore: list[str] = Field(
        default_factory=list,
        description="Tag patterns excluding an asset from allocation (case-insensitive)",
    )
    alt_weighting_factors: dict[str, float] = Field(
        default_factory=dict,
        description="Per base symbol weighting overrides",
    )
    nth_root: float = Field(
        default=2.0,
        gt=0,
        description="Root applied to weighted market caps to dampen large caps",
    )
    top_ranking_count: int = Field(
        default=10,
        ge=0,
        description="Maximum number of assets in an allocation",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level",
    )
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="Console log format",
    )

    @field_validator("quote_symbol")
    @classmethod
    def normalize_quote_symbol(cls, v: str) -> str:
        """Quote symbols are stored upper-cased."""
        return v.strip().upper()

    @field_validator("tags_to_ignore", mode="before")
    @classmethod
    def parse_tags_to_ignore(cls, v: Any) -> Any:
        """Parse tags_to_ignore from env, handling empty strings and JSON."""
        return parse_list_env(v)

    @field_validator("alt_weighting_factors", mode="before")
    @classmethod
    def parse_alt_weighting_factors(cls, v: Any) -> Any:
        """Parse alt_weighting_factors from env (JSON object or KEY=VALUE list)."""
        return parse_mapping_env(v)

    @field_validator("log_level", "log_format", mode="before")
    @classmethod
    def normalize_case(cls, v: Any, info: ValidationInfo) -> Any:
        """Accept log settings in any case."""
        if isinstance(v, str):
            return v.upper() if info.field_name == "log_level" else v.lower()
        return v

    def allocation_config(self) -> AllocationConfig:
        """Build the default allocation config from these settings."""
        return AllocationConfig(
            smoothing=self.smoothing,
            tags_to_ignore=list(self.tags_to_ignore),
            alt_weighting_factors=dict(self.alt_weighting_factors),
            nth_root=self.nth_root,
            top_ranking_count=self.top_ranking_count,
        )


# Global settings instance
settings = CapWeightSettings()
