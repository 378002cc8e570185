"""Tests for market cap stores."""

from datetime import timedelta
from decimal import Decimal

import pytest

from capweight.errors import StoreError
from capweight.models import Market
from capweight.storage import SQLiteMarketCapStore


@pytest.mark.asyncio
async def test_insert_then_query_latest_round_trips(store, make_snapshot, now) -> None:
    """A stored snapshot reads back as an equivalent record."""
    snapshot = make_snapshot(
        "sol",
        updated=now,
        price="123.456789012345678901",
        market_cap="98765432109876.54321",
        tags=["layer-1", "Solana Ecosystem"],
    )

    assert await store.insert(snapshot) == 1
    loaded = await store.query_latest(Market(quote_symbol="EUR", base_symbol="SOL"))

    assert loaded == snapshot
    assert loaded.price == Decimal("123.456789012345678901")
    assert loaded.tags == frozenset({"layer-1", "Solana Ecosystem"})
    assert loaded.updated.tzinfo is not None


@pytest.mark.asyncio
async def test_query_latest_picks_most_recent(store, make_snapshot, now) -> None:
    for hours in (2, 0, 1):
        await store.insert(make_snapshot(updated=now - timedelta(hours=hours), market_cap=hours))

    latest = await store.query_latest(Market(quote_symbol="EUR", base_symbol="BTC"))

    assert latest.updated == now
    assert await store.query_latest(Market(quote_symbol="EUR", base_symbol="ETH")) is None


@pytest.mark.asyncio
async def test_query_range_filters_and_orders(store, make_snapshot, now) -> None:
    snapshots = [
        make_snapshot("BTC", updated=now - timedelta(hours=1)),
        make_snapshot("ETH", updated=now),
        make_snapshot("ADA", updated=now - timedelta(minutes=30)),
        make_snapshot("BTC", updated=now - timedelta(hours=5)),
        make_snapshot("BTC", quote="USD", updated=now),
    ]
    for snapshot in snapshots:
        await store.insert(snapshot)

    since = now - timedelta(hours=2)
    result = await store.query_range("EUR", since)
    filtered = await store.query_range("eur", since, base_symbols=["btc", "ada"])

    assert [s.market.base_symbol for s in result] == ["ETH", "ADA", "BTC"]
    assert [s.market.base_symbol for s in filtered] == ["ADA", "BTC"]
    assert await store.query_range("EUR", since, base_symbols=[]) == []


@pytest.mark.asyncio
async def test_init_schema_is_idempotent(store) -> None:
    await store.init_schema()
    await store.init_schema()


@pytest.mark.asyncio
async def test_closed_store_raises(store, make_snapshot) -> None:
    await store.close()
    with pytest.raises(StoreError):
        await store.insert(make_snapshot())
    with pytest.raises(StoreError):
        await store.query_latest(Market(quote_symbol="EUR", base_symbol="BTC"))


@pytest.mark.asyncio
async def test_sqlite_persists_across_connections(tmp_path, make_snapshot) -> None:
    """Snapshots survive reopening the database file."""
    path = tmp_path / "nested" / "capweight.db"
    first = SQLiteMarketCapStore(path)
    await first.init_schema()
    await first.insert(make_snapshot())
    await first.close()

    second = SQLiteMarketCapStore(path)
    await second.init_schema()
    try:
        latest = await second.query_latest(Market(quote_symbol="EUR", base_symbol="BTC"))
    finally:
        await second.close()

    assert latest == make_snapshot()


@pytest.mark.asyncio
async def test_sqlite_without_schema_raises_store_error(tmp_path, make_snapshot) -> None:
    store = SQLiteMarketCapStore(tmp_path / "empty.db")
    try:
        with pytest.raises(StoreError):
            await store.query_latest(Market(quote_symbol="EUR", base_symbol="BTC"))
    finally:
        await store.close()
