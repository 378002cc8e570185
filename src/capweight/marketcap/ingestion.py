"""Batch ingestion of market cap snapshots."""

import asyncio
import weakref
from collections.abc import Iterable
from dataclasses import dataclass

from capweight.errors import StoreError
from capweight.logging import clear_market_context, get_logger, set_market_context
from capweight.marketcap.time_bucket import Admission, TimeBucketPolicy
from capweight.models import Market, MarketSnapshot
from capweight.storage.base import MarketCapStore

logger = get_logger(__name__)


@dataclass
class IngestionReport:
    """Per-batch outcome counts."""

    inserted: int = 0
    not_aligned: int = 0
    too_close: int = 0
    failed: int = 0

    @property
    def rejected(self) -> int:
        return self.not_aligned + self.too_close

    @property
    def total(self) -> int:
        return self.inserted + self.rejected + self.failed


class IngestionPipeline:
    """Filters incoming snapshots through the time bucket policy and stores them.

    The read-latest / admit / insert sequence for one market runs under a
    per-market lock, so two batches ingested concurrently through the same
    pipeline cannot both admit a snapshot for the same hourly bucket. Separate
    pipelines (or processes) sharing a store are not serialised. Locks are held
    weakly, so markets that are no longer being ingested do not accumulate.
    """

    def __init__(self, store: MarketCapStore, policy: TimeBucketPolicy | None = None) -> None:
        self._store = store
        self._policy = policy or TimeBucketPolicy()
        self._locks: weakref.WeakValueDictionary[Market, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def policy(self) -> TimeBucketPolicy:
        return self._policy

    def _lock_for(self, market: Market) -> asyncio.Lock:
        lock = self._locks.get(market)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[market] = lock
        return lock

    async def _insert(self, snapshot: MarketSnapshot, report: IngestionReport) -> None:
        logger.debug("Inserting market cap of '%s' ..", snapshot.market)

        last_stored = await self._store.query_latest(snapshot.market)
        decision = self._policy.evaluate(snapshot, last_stored)

        if decision is Admission.NOT_ALIGNED:
            report.not_aligned += 1
            return
        if decision is Admission.TOO_CLOSE:
            report.too_close += 1
            return

        try:
            rows_affected = await self._store.insert(snapshot)
        except StoreError:
            logger.error("Failed to insert market cap of '%s'.", snapshot.market, exc_info=True)
            report.failed += 1
            return

        if rows_affected == 0:
            logger.error("Failed to insert market cap of '%s'.", snapshot.market)
            report.failed += 1
            return

        report.inserted += rows_affected

    async def _ingest_market(
        self,
        market: Market,
        snapshots: list[MarketSnapshot],
        report: IngestionReport,
    ) -> None:
        set_market_context(quote_symbol=market.quote_symbol, base_symbol=market.base_symbol)
        async with self._lock_for(market):
            for snapshot in sorted(snapshots, key=lambda s: s.updated):
                await self._insert(snapshot, report)

    async def ingest(self, snapshots: Iterable[MarketSnapshot]) -> IngestionReport:
        """Ingest a batch and report what happened to every record.

        Records of different markets are processed concurrently; records of
        the same market are processed oldest first. A failed insert does not
        abort the batch. An unavailable store (failing the latest-record
        lookup) fails the whole call, once every market has settled.
        """
        by_market: dict[Market, list[MarketSnapshot]] = {}
        for snapshot in snapshots:
            by_market.setdefault(snapshot.market, []).append(snapshot)

        count = sum(len(group) for group in by_market.values())
        set_market_context(operation="insert_many")
        logger.debug("Inserting %d market cap records into database ..", count)

        report = IngestionReport()
        try:
            results = await asyncio.gather(
                *(self._ingest_market(market, group, report) for market, group in by_market.items()),
                return_exceptions=True,
            )
        finally:
            clear_market_context()

        errors = [result for result in results if isinstance(result, BaseException)]
        if errors:
            logger.error(
                "Market cap ingestion failed for %d of %d markets after inserting %d records.",
                len(errors),
                len(by_market),
                report.inserted,
            )
            raise errors[0]

        logger.info(
            "Inserted %d market cap records into database (%d not aligned, %d too close, %d failed).",
            report.inserted,
            report.not_aligned,
            report.too_close,
            report.failed,
        )
        return report

    async def insert_many(self, snapshots: Iterable[MarketSnapshot]) -> int:
        """Ingest a batch and return the number of rows actually inserted."""
        report = await self.ingest(snapshots)
        return report.inserted
