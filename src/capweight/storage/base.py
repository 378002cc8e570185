"""Storage interface for market cap snapshots."""

from abc import ABC, abstractmethod
from collections.abc import Collection
from datetime import datetime

from capweight.models import Market, MarketSnapshot


class MarketCapStore(ABC):
    """Keyed time-series store: insert snapshots, query by market and time."""

    @abstractmethod
    async def init_schema(self) -> None:
        """Create the backing table if absent. Idempotent."""

    @abstractmethod
    async def insert(self, snapshot: MarketSnapshot) -> int:
        """Persist one snapshot and return the number of rows affected (0 or 1)."""

    @abstractmethod
    async def query_latest(self, market: Market) -> MarketSnapshot | None:
        """Return the most recent snapshot stored for ``market``."""

    @abstractmethod
    async def query_range(
        self,
        quote_symbol: str,
        updated_since: datetime,
        base_symbols: Collection[str] | None = None,
    ) -> list[MarketSnapshot]:
        """Return snapshots with ``updated >= updated_since``, newest first.

        ``base_symbols`` restricts the result to those assets when given.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""
