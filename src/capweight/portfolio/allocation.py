"""Weighted power-law allocation ranking."""

import re
from collections.abc import Iterable
from dataclasses import dataclass

from capweight.logging import get_logger
from capweight.models import AllocationConfig, AllocationTarget, SmoothedMarketCap

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Weighted:
    asset: SmoothedMarketCap
    weighting: float
    has_weighting: bool


def compile_tag_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in patterns]


def is_ignored(tags: Iterable[str], patterns: list[re.Pattern[str]]) -> bool:
    """True if any tag fully matches any pattern."""
    return any(pattern.fullmatch(tag) for tag in tags for pattern in patterns)


def absolute_allocation(weighting: float, market_cap: float, nth_root: float) -> float:
    """``(max(0, weighting) * market_cap) ** (1 / nth_root)``."""
    return (max(0.0, weighting) * market_cap) ** (1 / nth_root)


def rank_allocations(
    assets: Iterable[SmoothedMarketCap],
    config: AllocationConfig,
) -> list[AllocationTarget]:
    """Rank assets by dampened, weighted market cap and keep the top entries.

    Rules, in order:
    - weighting is the configured override for the base symbol, else 1
    - assets weighted at or below zero are dropped
    - assets with a tag matching ``tags_to_ignore`` are dropped, unless they
      have an explicit weighting override
    - allocation = (weighting * market_cap) ** (1 / nth_root)
    - sorted descending, truncated to ``top_ranking_count``

    The result is not normalised.
    """
    patterns = compile_tag_patterns(config.tags_to_ignore)
    overrides = config.alt_weighting_factors

    weighted = []
    for asset in assets:
        has_weighting = asset.base_symbol in overrides
        weighted.append(
            _Weighted(
                asset=asset,
                weighting=overrides[asset.base_symbol] if has_weighting else 1.0,
                has_weighting=has_weighting,
            )
        )

    eligible = [item for item in weighted if item.weighting > 0]
    eligible = [
        item
        for item in eligible
        if item.has_weighting or not is_ignored(item.asset.tags, patterns)
    ]

    targets = [
        AllocationTarget(
            base_symbol=item.asset.base_symbol,
            fraction=absolute_allocation(item.weighting, float(item.asset.market_cap), config.nth_root),
        )
        for item in eligible
    ]
    targets.sort(key=lambda target: target.fraction, reverse=True)

    dropped = len(weighted) - len(eligible)
    if dropped:
        logger.debug("Excluded %d of %d assets from allocation", dropped, len(weighted))

    return targets[: config.top_ranking_count]
