"""SQLite implementation of the market cap store."""

import json
import sqlite3
from collections.abc import Collection
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import aiosqlite

from capweight.errors import StoreError
from capweight.logging import get_logger
from capweight.models import Market, MarketSnapshot, ensure_utc
from capweight.storage.base import MarketCapStore

logger = get_logger(__name__)

# Fixed-width UTC text so that string comparison orders like time.
_TIMESTAMP_FMT = "%Y-%m-%dT%H:%M:%S.%f+00:00"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS market_cap_data (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    quote_symbol TEXT NOT NULL,
    base_symbol TEXT NOT NULL,
    price TEXT NOT NULL,
    market_cap TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    updated TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_market_cap_data_market_updated
    ON market_cap_data(quote_symbol, base_symbol, updated);
"""

_COLUMNS = "quote_symbol, base_symbol, price, market_cap, tags, updated"


def _format_timestamp(value: datetime) -> str:
    return ensure_utc(value).strftime(_TIMESTAMP_FMT)


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value).astimezone(UTC)


def _row_to_snapshot(row: sqlite3.Row | tuple) -> MarketSnapshot:
    quote_symbol, base_symbol, price, market_cap, tags, updated = row
    return MarketSnapshot(
        market=Market(quote_symbol=quote_symbol, base_symbol=base_symbol),
        price=Decimal(price),
        market_cap=Decimal(market_cap),
        tags=frozenset(json.loads(tags) if tags else []),
        updated=_parse_timestamp(updated),
    )


class SQLiteMarketCapStore(MarketCapStore):
    """Market cap store backed by a single SQLite table via aiosqlite.

    Prices and market caps are stored as decimal text so they round-trip
    exactly; tags are stored as a sorted JSON array.
    """

    def __init__(self, db_path: str | Path = "data/capweight.db") -> None:
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file (``:memory:`` is accepted)
        """
        self.db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._closed = False

    async def _get_connection(self) -> aiosqlite.Connection:
        if self._closed:
            raise StoreError(f"Market cap store {self.db_path} is closed")
        if self._conn is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._conn = await aiosqlite.connect(self.db_path)
            except sqlite3.Error as e:
                raise StoreError(f"Cannot open market cap store {self.db_path}: {e}") from e
        return self._conn

    async def init_schema(self) -> None:
        conn = await self._get_connection()
        try:
            await conn.executescript(_SCHEMA)
            await conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to initialise market cap schema: {e}") from e
        logger.debug("Market cap schema ready at %s", self.db_path)

    async def insert(self, snapshot: MarketSnapshot) -> int:
        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                f"INSERT INTO market_cap_data ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    snapshot.market.quote_symbol,
                    snapshot.market.base_symbol,
                    str(snapshot.price),
                    str(snapshot.market_cap),
                    json.dumps(sorted(snapshot.tags)),
                    _format_timestamp(snapshot.updated),
                ),
            )
            await conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to insert market cap of '{snapshot.market}': {e}") from e
        return max(cursor.rowcount, 0)

    async def query_latest(self, market: Market) -> MarketSnapshot | None:
        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                f"""SELECT {_COLUMNS} FROM market_cap_data
                WHERE quote_symbol = ? AND base_symbol = ?
                ORDER BY updated DESC, id DESC LIMIT 1""",
                (market.quote_symbol, market.base_symbol),
            )
            row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to query latest market cap of '{market}': {e}") from e
        if row is None:
            return None
        return _row_to_snapshot(row)

    async def query_range(
        self,
        quote_symbol: str,
        updated_since: datetime,
        base_symbols: Collection[str] | None = None,
    ) -> list[MarketSnapshot]:
        query = f"""SELECT {_COLUMNS} FROM market_cap_data
            WHERE quote_symbol = ? AND updated >= ?"""
        params: list[str] = [quote_symbol.upper(), _format_timestamp(updated_since)]

        if base_symbols is not None:
            symbols = sorted({symbol.upper() for symbol in base_symbols})
            if not symbols:
                return []
            placeholders = ", ".join("?" for _ in symbols)
            query += f" AND base_symbol IN ({placeholders})"
            params.extend(symbols)

        query += " ORDER BY updated DESC, id DESC"

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to query market caps for '{quote_symbol}': {e}") from e
        return [_row_to_snapshot(row) for row in rows]

    async def close(self) -> None:
        self._closed = True
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
