"""Tests for batch ingestion."""

import asyncio
import gc
import logging
from datetime import timedelta

import pytest

from capweight.errors import StoreError
from capweight.marketcap.ingestion import IngestionPipeline
from capweight.marketcap.time_bucket import TimeBucketPolicy
from capweight.models import Market
from capweight.storage import InMemoryMarketCapStore


class FlakyStore(InMemoryMarketCapStore):
    """Reports zero affected rows for one asset and raises for another."""

    async def insert(self, snapshot):
        if snapshot.market.base_symbol == "ZERO":
            return 0
        if snapshot.market.base_symbol == "BOOM":
            raise StoreError("disk full")
        return await super().insert(snapshot)


class SlowStore(InMemoryMarketCapStore):
    """Yields to the event loop between the latest-record read and insert."""

    async def query_latest(self, market):
        result = await super().query_latest(market)
        await asyncio.sleep(0.01)
        return result


def _hour(now):
    return now.replace(minute=0, second=0, microsecond=0)


@pytest.mark.asyncio
async def test_insert_many_counts_inserted_rows(store, make_snapshot, now) -> None:
    """Every admissible snapshot of a batch is stored."""
    pipeline = IngestionPipeline(store, TimeBucketPolicy())
    batch = [make_snapshot(base) for base in ("BTC", "ETH", "ADA")]

    assert await pipeline.insert_many(batch) == 3
    stored = await store.query_latest(Market(quote_symbol="EUR", base_symbol="ETH"))
    assert stored == batch[1]


@pytest.mark.asyncio
async def test_duplicate_bucket_is_rejected(store, make_snapshot, now) -> None:
    """Two snapshots in the same hourly bucket only insert once."""
    pipeline = IngestionPipeline(store, TimeBucketPolicy())
    hour = _hour(now)
    batch = [
        make_snapshot(updated=hour),
        make_snapshot(updated=hour + timedelta(minutes=3)),
        make_snapshot(updated=hour + timedelta(hours=1)),
    ]

    report = await pipeline.ingest(batch)

    assert report.inserted == 2
    assert report.too_close == 1
    assert report.total == 3


@pytest.mark.asyncio
async def test_second_batch_respects_stored_record(store, make_snapshot, now) -> None:
    """The last stored record of a market gates later batches too."""
    pipeline = IngestionPipeline(store, TimeBucketPolicy())
    hour = _hour(now)

    assert await pipeline.insert_many([make_snapshot(updated=hour)]) == 1
    assert await pipeline.insert_many([make_snapshot(updated=hour + timedelta(minutes=4))]) == 0
    assert await pipeline.insert_many([make_snapshot(updated=hour + timedelta(minutes=58))]) == 1


@pytest.mark.asyncio
async def test_unaligned_snapshots_are_not_inserted(store, make_snapshot, now) -> None:
    """Off-schedule snapshots are counted as rejected, not as failures."""
    pipeline = IngestionPipeline(store, TimeBucketPolicy())
    batch = [
        make_snapshot("BTC", updated=_hour(now) + timedelta(minutes=20)),
        make_snapshot("ETH"),
    ]

    report = await pipeline.ingest(batch)

    assert report.inserted == 1
    assert report.not_aligned == 1
    assert report.failed == 0


@pytest.mark.asyncio
async def test_failed_inserts_do_not_abort_batch(make_snapshot, caplog) -> None:
    """Zero-row and failing inserts are logged and the rest of the batch proceeds."""
    store = FlakyStore()
    pipeline = IngestionPipeline(store, TimeBucketPolicy())
    batch = [make_snapshot(base) for base in ("ZERO", "BTC", "BOOM", "ETH")]

    with caplog.at_level(logging.ERROR, logger="capweight.marketcap.ingestion"):
        report = await pipeline.ingest(batch)

    assert report.inserted == 2
    assert report.failed == 2
    assert len(store) == 2
    assert "Failed to insert market cap of 'ZERO-EUR'" in caplog.text
    assert "Failed to insert market cap of 'BOOM-EUR'" in caplog.text


@pytest.mark.asyncio
async def test_concurrent_batches_for_same_market_insert_once(make_snapshot, now) -> None:
    """Concurrent ingestion through one pipeline cannot double-admit a bucket."""
    store = SlowStore()
    pipeline = IngestionPipeline(store, TimeBucketPolicy())

    counts = await asyncio.gather(
        pipeline.insert_many([make_snapshot(updated=now)]),
        pipeline.insert_many([make_snapshot(updated=now + timedelta(minutes=1))]),
    )

    assert sorted(counts) == [0, 1]
    assert len(store) == 1


@pytest.mark.asyncio
async def test_unavailable_store_fails_ingestion(make_snapshot) -> None:
    """A store that cannot be read fails the whole call."""
    store = InMemoryMarketCapStore()
    await store.close()
    pipeline = IngestionPipeline(store, TimeBucketPolicy())

    with pytest.raises(StoreError):
        await pipeline.insert_many([make_snapshot()])


@pytest.mark.asyncio
async def test_empty_batch(store) -> None:
    """An empty batch inserts nothing."""
    pipeline = IngestionPipeline(store)
    assert await pipeline.insert_many([]) == 0


class PartlyDownStore(InMemoryMarketCapStore):
    """Fails lookups for one asset and answers slowly for the others."""

    async def query_latest(self, market):
        if market.base_symbol == "BAD":
            raise StoreError("replica unavailable")
        await asyncio.sleep(0.05)
        return await super().query_latest(market)


@pytest.mark.asyncio
async def test_failed_market_settles_batch_before_raising(make_snapshot) -> None:
    """No write of the batch happens after the failure reaches the caller."""
    store = PartlyDownStore()
    pipeline = IngestionPipeline(store, TimeBucketPolicy())

    with pytest.raises(StoreError):
        await pipeline.insert_many([make_snapshot("BAD"), make_snapshot("GOOD")])
    written = len(store)
    assert written == 1

    await asyncio.sleep(0.2)
    assert len(store) == written


@pytest.mark.asyncio
async def test_out_of_order_batch_admits_every_hour(store, make_snapshot, now) -> None:
    """Snapshots of one market are admitted oldest first regardless of batch order."""
    pipeline = IngestionPipeline(store, TimeBucketPolicy())
    hour = _hour(now)
    batch = [
        make_snapshot(updated=hour),
        make_snapshot(updated=hour - timedelta(hours=2)),
        make_snapshot(updated=hour - timedelta(hours=1)),
    ]

    assert await pipeline.insert_many(batch) == 3
    latest = await store.query_latest(Market(quote_symbol="EUR", base_symbol="BTC"))
    assert latest.updated == hour


@pytest.mark.asyncio
async def test_locks_are_released_for_idle_markets(make_snapshot) -> None:
    """The per-market lock map does not keep markets that are no longer ingested."""
    pipeline = IngestionPipeline(InMemoryMarketCapStore(), TimeBucketPolicy())
    await pipeline.insert_many([make_snapshot(base) for base in ("BTC", "ETH", "ADA")])
    gc.collect()

    assert len(pipeline._locks) == 0
