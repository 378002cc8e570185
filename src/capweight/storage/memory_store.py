"""In-process market cap store."""

from collections import defaultdict
from collections.abc import Collection
from datetime import datetime

from capweight.errors import StoreError
from capweight.models import Market, MarketSnapshot, ensure_utc
from capweight.storage.base import MarketCapStore


class InMemoryMarketCapStore(MarketCapStore):
    """Dictionary-backed store with the same contract as the SQLite store."""

    def __init__(self) -> None:
        self._series: dict[Market, list[MarketSnapshot]] = defaultdict(list)
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("In-memory market cap store is closed")

    async def init_schema(self) -> None:
        self._check_open()

    async def insert(self, snapshot: MarketSnapshot) -> int:
        self._check_open()
        self._series[snapshot.market].append(snapshot)
        return 1

    async def query_latest(self, market: Market) -> MarketSnapshot | None:
        self._check_open()
        series = self._series.get(market)
        if not series:
            return None
        return max(reversed(series), key=lambda snapshot: snapshot.updated)

    async def query_range(
        self,
        quote_symbol: str,
        updated_since: datetime,
        base_symbols: Collection[str] | None = None,
    ) -> list[MarketSnapshot]:
        self._check_open()
        since = ensure_utc(updated_since)
        quote = quote_symbol.upper()
        wanted = {symbol.upper() for symbol in base_symbols} if base_symbols is not None else None

        result = [
            snapshot
            for market, series in self._series.items()
            if market.quote_symbol == quote
            and (wanted is None or market.base_symbol in wanted)
            for snapshot in series
            if snapshot.updated >= since
        ]
        # Stable sort keeps later inserts first among equal timestamps.
        result.reverse()
        result.sort(key=lambda snapshot: snapshot.updated, reverse=True)
        return result

    async def close(self) -> None:
        self._closed = True

    def __len__(self) -> int:
        return sum(len(series) for series in self._series.values())
