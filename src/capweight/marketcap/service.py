"""Market cap service: smoothed latest values and balanced allocations."""

from capweight.logging import clear_market_context, get_logger, set_market_context
from capweight.marketcap.retrieval import MarketCapRepository
from capweight.marketcap.smoothing import smooth_latest
from capweight.models import AllocationConfig, AllocationTarget, SmoothedMarketCap
from capweight.portfolio.allocation import rank_allocations

logger = get_logger(__name__)


class MarketCapService:
    """Entry point used by the rebalancing side of the system."""

    def __init__(self, repository: MarketCapRepository, ema_min_points: int = 1) -> None:
        if ema_min_points < 1:
            raise ValueError("ema_min_points must be at least 1")
        self._repository = repository
        self._ema_min_points = ema_min_points

    @classmethod
    def from_settings(cls, repository: MarketCapRepository, settings) -> "MarketCapService":
        return cls(repository, ema_min_points=settings.ema_min_points)

    async def list_latest(self, quote_symbol: str, smoothing: int) -> list[SmoothedMarketCap]:
        """Latest record per active asset, market cap replaced by its EMA.

        ``smoothing + 1`` hours of history are fetched so that an EMA over
        ``smoothing`` periods has enough points to be seeded.

        Raises:
            InsufficientSeriesError: an asset has fewer than ``ema_min_points`` snapshots.
        """
        set_market_context(quote_symbol=quote_symbol.strip().upper(), operation="list_latest")
        try:
            history = await self._repository.list_historical_many(quote_symbol, smoothing + 1)
            latest = [
                smooth_latest(snapshots, smoothing, self._ema_min_points)
                for snapshots in history.values()
            ]
        finally:
            clear_market_context()

        logger.debug("Smoothed %d assets for '%s'", len(latest), quote_symbol)
        return latest

    async def balanced_absolute_allocations(
        self,
        quote_symbol: str,
        config: AllocationConfig,
    ) -> list[AllocationTarget]:
        """Ranked, un-normalised allocations for ``quote_symbol``."""
        latest = await self.list_latest(quote_symbol, config.smoothing)
        targets = rank_allocations(latest, config)
        logger.info(
            "Ranked %d of %d assets for '%s'", len(targets), len(latest), quote_symbol.upper()
        )
        return targets
