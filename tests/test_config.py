"""Tests for configuration."""

import pytest
from pydantic import ValidationError

from capweight.config import CapWeightSettings


def test_default_settings(monkeypatch) -> None:
    for name in ("TAGS_TO_IGNORE", "ALT_WEIGHTING_FACTORS", "NTH_ROOT", "LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    settings = CapWeightSettings(_env_file=None)
    assert settings.earlier_tolerance_minutes == 5.0
    assert settings.later_tolerance_minutes == 5.0
    assert settings.recency_window_hours == 2.0
    assert settings.ema_min_points == 1
    assert settings.tags_to_ignore == []
    assert settings.log_format == "text"


def test_list_and_mapping_from_env(monkeypatch) -> None:
    """Tags accept comma lists; weightings accept JSON or KEY=VALUE pairs."""
    monkeypatch.setenv("TAGS_TO_IGNORE", "meme, stablecoin")
    monkeypatch.setenv("ALT_WEIGHTING_FACTORS", '{"btc": 2, "ETH": 0.5}')
    monkeypatch.setenv("QUOTE_SYMBOL", "usd")

    settings = CapWeightSettings(_env_file=None)

    assert settings.tags_to_ignore == ["meme", "stablecoin"]
    assert settings.alt_weighting_factors == {"btc": 2.0, "ETH": 0.5}
    assert settings.quote_symbol == "USD"

    config = settings.allocation_config()
    assert config.alt_weighting_factors == {"BTC": 2.0, "ETH": 0.5}
    assert config.tags_to_ignore == ["meme", "stablecoin"]

    monkeypatch.setenv("ALT_WEIGHTING_FACTORS", "ADA=3,DOT=0")
    assert CapWeightSettings(_env_file=None).alt_weighting_factors == {"ADA": 3.0, "DOT": 0.0}


def test_config_validation() -> None:
    with pytest.raises(ValidationError):
        CapWeightSettings(_env_file=None, nth_root=0)

    with pytest.raises(ValidationError):
        CapWeightSettings(_env_file=None, earlier_tolerance_minutes=45)

    with pytest.raises(ValidationError):
        CapWeightSettings(_env_file=None, ema_min_points=0)


def test_log_settings_are_case_insensitive() -> None:
    settings = CapWeightSettings(_env_file=None, log_level="debug", log_format="JSON")
    assert settings.log_level == "DEBUG"
    assert settings.log_format == "json"
