"""Market cap snapshot stores."""

from .base import MarketCapStore
from .memory_store import InMemoryMarketCapStore
from .sqlite_store import SQLiteMarketCapStore

__all__ = ["InMemoryMarketCapStore", "MarketCapStore", "SQLiteMarketCapStore"]
