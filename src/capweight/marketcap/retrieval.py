"""Historical market cap retrieval."""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from capweight.logging import get_logger
from capweight.marketcap.ingestion import IngestionPipeline, IngestionReport
from capweight.marketcap.time_bucket import TimeBucketPolicy
from capweight.models import Market, MarketSnapshot
from capweight.storage.base import MarketCapStore

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class MarketCapRepository:
    """Reads and writes market cap history on top of a :class:`MarketCapStore`.

    Every lookback window is padded by the earlier tolerance so that a record
    stored a few minutes before the hour still falls inside a nominal
    "last N hours" window.
    """

    def __init__(
        self,
        store: MarketCapStore,
        policy: TimeBucketPolicy | None = None,
        recency_window_hours: float = 2.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if recency_window_hours <= 0:
            raise ValueError("recency_window_hours must be positive")
        self._store = store
        self._policy = policy or TimeBucketPolicy()
        self._recency_window_hours = recency_window_hours
        self._clock = clock
        self._pipeline = IngestionPipeline(store, self._policy)

    @classmethod
    def from_settings(
        cls,
        store: MarketCapStore,
        settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> "MarketCapRepository":
        return cls(
            store,
            policy=TimeBucketPolicy.from_settings(settings),
            recency_window_hours=settings.recency_window_hours,
            clock=clock,
        )

    @property
    def store(self) -> MarketCapStore:
        return self._store

    def _since(self, hours: float) -> datetime:
        if hours < 0:
            raise ValueError(f"hours must be non-negative, got {hours}")
        padding = self._policy.earlier_tolerance / 60
        return self._clock() - timedelta(hours=hours + padding)

    async def init_database(self) -> None:
        await self._store.init_schema()

    async def insert_many(self, snapshots: Iterable[MarketSnapshot]) -> int:
        """Store the admissible snapshots of a batch, returning rows inserted."""
        return await self._pipeline.insert_many(snapshots)

    async def ingest(self, snapshots: Iterable[MarketSnapshot]) -> IngestionReport:
        return await self._pipeline.ingest(snapshots)

    async def list_historical(self, market: Market, hours: float = 24) -> list[MarketSnapshot]:
        """All snapshots of ``market`` within the last ``hours``, newest first."""
        logger.debug("Listing historical market cap for '%s' ..", market)
        return await self._store.query_range(
            market.quote_symbol,
            self._since(hours),
            base_symbols=[market.base_symbol],
        )

    async def list_historical_many(
        self,
        quote_symbol: str,
        hours: float = 24,
    ) -> dict[str, list[MarketSnapshot]]:
        """Per base asset history within the last ``hours``, newest first.

        Only assets with at least one snapshot inside the recency window
        (``min(recency_window_hours, hours)``) are returned, so assets that
        stopped being tracked drop out even if older history is in range.
        Groups are ordered by their most recent snapshot.
        """
        quote_symbol = quote_symbol.strip().upper()
        logger.debug("Listing many historical market cap for '%s' ..", quote_symbol)

        updated_since = self._since(hours)
        updated_recent = self._since(min(self._recency_window_hours, hours))

        recent = await self._store.query_range(quote_symbol, updated_recent)
        active = {snapshot.market.base_symbol for snapshot in recent}
        if not active:
            return {}

        history = await self._store.query_range(quote_symbol, updated_since, base_symbols=active)

        groups: dict[str, list[MarketSnapshot]] = {}
        for snapshot in history:
            groups.setdefault(snapshot.market.base_symbol, []).append(snapshot)
        return groups
