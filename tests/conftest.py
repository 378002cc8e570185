"""Shared test fixtures."""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from decimal import Decimal

import pytest
import pytest_asyncio

from capweight.marketcap.retrieval import MarketCapRepository
from capweight.marketcap.time_bucket import TimeBucketPolicy
from capweight.models import Market, MarketSnapshot
from capweight.storage import InMemoryMarketCapStore, SQLiteMarketCapStore

# Two minutes past the hour, inside the later tolerance.
NOW = datetime(2024, 1, 10, 12, 2, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_snapshot() -> Callable[..., MarketSnapshot]:
    """Factory for snapshots with sensible defaults."""

    def _make(
        base: str = "BTC",
        updated: datetime = NOW,
        market_cap: str | int | float = "1000",
        price: str | int | float = "1",
        tags: Iterable[str] = (),
        quote: str = "EUR",
    ) -> MarketSnapshot:
        return MarketSnapshot(
            market=Market(quote_symbol=quote, base_symbol=base),
            price=Decimal(str(price)),
            market_cap=Decimal(str(market_cap)),
            tags=frozenset(tags),
            updated=updated,
        )

    return _make


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    """Each storage backend, schema initialised."""
    if request.param == "memory":
        backend = InMemoryMarketCapStore()
    else:
        backend = SQLiteMarketCapStore(tmp_path / "capweight.db")
    await backend.init_schema()
    yield backend
    await backend.close()


@pytest.fixture
def repository(store) -> MarketCapRepository:
    return MarketCapRepository(
        store,
        policy=TimeBucketPolicy(earlier_tolerance=5, later_tolerance=5),
        recency_window_hours=2,
        clock=lambda: NOW,
    )
